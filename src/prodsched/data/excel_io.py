from __future__ import annotations

import io
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

import pandas as pd

from prodsched.core.models import MACHINE_OPERATIONAL, Machine, Operator, Part, ProductionRequest


logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, tuple[str, ...]] = {
    "requests": ("request_id", "quantity", "due_date"),
    "machines": ("machine_id",),
    "operators": ("operator_id",),
    "parts": ("part_id",),
}


@dataclass
class Snapshot:
    requests: list[ProductionRequest] = field(default_factory=list)
    machines: list[Machine] = field(default_factory=list)
    operators: list[Operator] = field(default_factory=list)
    parts: dict[str, Part] = field(default_factory=dict)


def normalize_col_name(name: str) -> str:
    """Normalize Excel column names to an ASCII-ish snake_case token.

    Handles accents, non-breaking spaces, tabs, and punctuation.
    """

    s = str(name or "").strip().lower()
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[\s\t]+", " ", s)
    # keep alnum + spaces, turn the rest into spaces
    s = re.sub(r"[^a-z0-9 ]+", " ", s)
    s = re.sub(r"\s+", "_", s).strip("_")
    return s


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [normalize_col_name(c) for c in df.columns]
    return df


def _is_blank(value) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return str(value).strip() == "" or str(value).strip().lower() == "nan"


def clean_str(value) -> str | None:
    if _is_blank(value):
        return None
    return str(value).replace("\u00a0", " ").strip()


def clean_id(value) -> str | None:
    """Identifiers typed as numbers come back from Excel as 10.0; keep them as '10'."""
    if _is_blank(value):
        return None
    if isinstance(value, float) and float(value).is_integer():
        return str(int(value))
    return clean_str(value)


def to_bool(value, *, default: bool = True) -> bool:
    """Coerce common Excel numeric/bool-ish values."""
    if _is_blank(value):
        return default
    s = str(value).strip().lower()
    if s in {"1", "1.0", "true", "yes", "y", "x"}:
        return True
    if s in {"0", "0.0", "false", "no", "n"}:
        return False
    raise ValueError(f"invalid boolean: {value!r}")


_DIGITS_RE = re.compile(r"^-?\d+$")


def parse_int_strict(value, *, field: str) -> int:
    """Accepts ints, floats like 12.0, and digit-only strings; raises ValueError otherwise."""
    if _is_blank(value):
        raise ValueError(f"{field} is empty")

    if isinstance(value, bool):
        raise ValueError(f"{field} invalid: {value!r}")

    if isinstance(value, int):
        return int(value)

    if isinstance(value, float):
        if float(value).is_integer():
            return int(value)
        raise ValueError(f"{field} invalid (not an integer): {value!r}")

    s = str(value).strip()
    if _DIGITS_RE.match(s):
        return int(s)

    raise ValueError(f"{field} invalid: {value!r}")


def coerce_datetime(value, *, field: str = "due_date") -> datetime:
    """Coerce common Excel/Pandas date representations to a naive datetime.

    Date-only values become midnight of that day.
    """
    if _is_blank(value):
        raise ValueError(f"{field} is empty")

    # pandas Timestamp
    if hasattr(value, "to_pydatetime"):
        value = value.to_pydatetime()

    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo is not None else value

    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())

    s = str(value).strip()
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass

    for fmt in ("%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d", "%d-%m-%Y %H:%M", "%d/%m/%Y %H:%M"):
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue

    raise ValueError(f"{field} invalid: {value!r}")


def _records(df: pd.DataFrame, sheet: str) -> list[dict]:
    df = normalize_columns(df)
    missing = [c for c in REQUIRED_COLUMNS[sheet] if c not in df.columns]
    if missing:
        raise ValueError(f"sheet {sheet!r} is missing column(s): {', '.join(missing)}")
    return df.to_dict(orient="records")


def _parse_parts(df: pd.DataFrame) -> dict[str, Part]:
    parts: dict[str, Part] = {}
    for row in _records(df, "parts"):
        part_id = clean_id(row.get("part_id"))
        if part_id is None:
            continue
        parts[part_id] = Part(
            part_id=part_id,
            part_name=clean_str(row.get("part_name")),
            part_type=clean_str(row.get("part_type")),
        )
    return parts


def _parse_requests(df: pd.DataFrame, parts: dict[str, Part]) -> list[ProductionRequest]:
    requests: list[ProductionRequest] = []
    for i, row in enumerate(_records(df, "requests"), start=2):
        request_id = clean_id(row.get("request_id"))
        if request_id is None:
            raise ValueError(f"requests row {i}: request_id is empty")

        part_id = clean_id(row.get("part_id"))
        part = parts.get(part_id) if part_id is not None else None
        if part_id is not None and part is None:
            logger.warning("Request %s references unknown part %s; default durations apply", request_id, part_id)

        requests.append(
            ProductionRequest(
                request_id=request_id,
                customer_name=clean_str(row.get("customer_name")),
                part=part,
                quantity=parse_int_strict(row.get("quantity"), field=f"requests row {i} quantity"),
                due_date=coerce_datetime(row.get("due_date"), field=f"requests row {i} due_date"),
                priority=(clean_str(row.get("priority")) or "normal").lower(),
            )
        )
    return requests


def _parse_machines(df: pd.DataFrame) -> list[Machine]:
    machines: list[Machine] = []
    for row in _records(df, "machines"):
        machine_id = clean_id(row.get("machine_id"))
        if machine_id is None:
            continue
        machines.append(
            Machine(
                machine_id=machine_id,
                machine_name=clean_str(row.get("machine_name")),
                machine_type=clean_str(row.get("machine_type")) or "",
                status=(clean_str(row.get("status")) or MACHINE_OPERATIONAL).lower(),
            )
        )
    return machines


def _parse_operators(df: pd.DataFrame) -> list[Operator]:
    operators: list[Operator] = []
    for row in _records(df, "operators"):
        operator_id = clean_id(row.get("operator_id"))
        if operator_id is None:
            continue
        operators.append(
            Operator(
                operator_id=operator_id,
                name=clean_str(row.get("name")),
                is_active=to_bool(row.get("is_active"), default=True),
            )
        )
    return operators


def snapshot_from_frames(frames: dict[str, pd.DataFrame]) -> Snapshot:
    """Build a snapshot from sheet name -> DataFrame.

    `requests` and `machines` are required; `operators` and `parts` are optional.
    """
    sheets = {normalize_col_name(name): df for name, df in frames.items()}
    for required in ("requests", "machines"):
        if required not in sheets:
            raise ValueError(f"snapshot is missing sheet {required!r}")

    parts = _parse_parts(sheets["parts"]) if "parts" in sheets else {}
    snapshot = Snapshot(
        requests=_parse_requests(sheets["requests"], parts),
        machines=_parse_machines(sheets["machines"]),
        operators=_parse_operators(sheets["operators"]) if "operators" in sheets else [],
        parts=parts,
    )
    logger.info(
        "Snapshot loaded: %d request(s), %d machine(s), %d operator(s), %d part(s)",
        len(snapshot.requests),
        len(snapshot.machines),
        len(snapshot.operators),
        len(snapshot.parts),
    )
    return snapshot


def read_snapshot_bytes(content: bytes) -> Snapshot:
    """Read an .xlsx snapshot (one sheet per entity)."""
    bio = io.BytesIO(content)
    frames = pd.read_excel(bio, sheet_name=None, engine="openpyxl")
    return snapshot_from_frames(frames)


def read_snapshot_file(path: Path | str) -> Snapshot:
    return read_snapshot_bytes(Path(path).read_bytes())
