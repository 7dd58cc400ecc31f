from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from prodsched.core.capability import (
    CapabilityPredicate,
    ConstraintCapability,
    MachineTypeCapability,
    all_machines_capable,
)
from prodsched.core.durations import DurationTable
from prodsched.core.planner import DEFAULT_PRIORITY_RANKS, OPERATOR_POLICIES, OPERATOR_POLICY_LEAST_LOADED
from prodsched.data.db import Db


logger = logging.getLogger(__name__)

KEY_DURATION_TABLE = "duration_table"
KEY_PRIORITY_MAP = "priority_rank_map"
KEY_CAPABILITY_MODE = "capability_mode"
KEY_CAPABILITY_RULES = "capability_rules"
KEY_OPERATOR_POLICY = "operator_policy"

CAPABILITY_ALL = "all"
CAPABILITY_MACHINE_TYPE = "machine_type"
CAPABILITY_CONSTRAINTS = "constraints"
CAPABILITY_MODES = (CAPABILITY_ALL, CAPABILITY_MACHINE_TYPE, CAPABILITY_CONSTRAINTS)


@dataclass
class AuditEntry:
    id: int
    timestamp: str
    category: str
    message: str
    details: str | None = None


class ConfigRepository:
    """Engine settings stored in the app_config table.

    Values are strings; structured values are JSON. Every change is written
    to the audit log.
    """

    def __init__(self, db: Db):
        self.db = db

    # ---------- Audit ----------
    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        try:
            with self.db.connect() as con:
                con.execute(
                    "INSERT INTO audit_log (category, message, details) VALUES (?, ?, ?)",
                    (category, message, details),
                )
        except Exception:
            logger.exception("Failed to write audit log")

    def get_audit_log(self, *, limit: int = 100) -> list[AuditEntry]:
        with self.db.connect() as con:
            rows = con.execute(
                "SELECT id, timestamp, category, message, details FROM audit_log ORDER BY id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return [AuditEntry(**dict(r)) for r in rows]

    # ---------- Raw config ----------
    def get_config(self, *, key: str, default: str | None = None) -> str | None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")
        with self.db.connect() as con:
            row = con.execute("SELECT config_value FROM app_config WHERE config_key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row[0])

    def set_config(self, *, key: str, value: str) -> None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")

        old_val = self.get_config(key=key, default="(none)")
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO app_config(config_key, config_value, updated_at)
                VALUES(?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_value = excluded.config_value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, str(value)),
            )
        self.log_audit("CONFIG", f"Updated '{key}'", f"From '{old_val}' to '{value}'")

    def _get_json(self, key: str) -> Any | None:
        raw = self.get_config(key=key)
        if raw is None or not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"config {key!r} is not valid JSON: {exc}") from exc

    # ---------- Typed settings ----------
    def get_duration_table(self) -> DurationTable:
        raw = self._get_json(KEY_DURATION_TABLE)
        if raw is None:
            return DurationTable()
        if not isinstance(raw, dict):
            raise ValueError(f"config {KEY_DURATION_TABLE!r} must be a JSON object")
        try:
            return DurationTable.from_dict(raw)
        except (KeyError, TypeError) as exc:
            raise ValueError(f"config {KEY_DURATION_TABLE!r} is malformed: {exc}") from exc

    def set_duration_table(self, table: DurationTable) -> None:
        self.set_config(key=KEY_DURATION_TABLE, value=json.dumps(table.to_dict(), sort_keys=True))

    def get_priority_map(self) -> dict[str, int]:
        raw = self._get_json(KEY_PRIORITY_MAP)
        if raw is None:
            return dict(DEFAULT_PRIORITY_RANKS)
        if not isinstance(raw, dict):
            raise ValueError(f"config {KEY_PRIORITY_MAP!r} must be a JSON object")
        try:
            return {str(k).strip().lower(): int(v) for k, v in raw.items()}
        except (TypeError, ValueError) as exc:
            raise ValueError(f"config {KEY_PRIORITY_MAP!r} must map labels to integers") from exc

    def get_operator_policy(self) -> str:
        policy = (self.get_config(key=KEY_OPERATOR_POLICY, default=OPERATOR_POLICY_LEAST_LOADED) or "").strip()
        if policy not in OPERATOR_POLICIES:
            raise ValueError(f"config {KEY_OPERATOR_POLICY!r}: unknown policy {policy!r}")
        return policy

    def get_capability(self) -> CapabilityPredicate:
        mode = (self.get_config(key=KEY_CAPABILITY_MODE, default=CAPABILITY_ALL) or "").strip()
        if mode == CAPABILITY_ALL:
            return all_machines_capable
        if mode == CAPABILITY_CONSTRAINTS:
            return ConstraintCapability()
        if mode == CAPABILITY_MACHINE_TYPE:
            rules = self._get_json(KEY_CAPABILITY_RULES) or {}
            if not isinstance(rules, dict):
                raise ValueError(f"config {KEY_CAPABILITY_RULES!r} must be a JSON object")
            return MachineTypeCapability({str(k): list(v) for k, v in rules.items()})
        raise ValueError(f"config {KEY_CAPABILITY_MODE!r}: unknown mode {mode!r}")
