from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from prodsched.core.errors import InvalidInputError
from prodsched.core.models import Part


DEFAULT_SETUP_MINUTES = 20
DEFAULT_MINUTES_PER_UNIT = 10


@dataclass(frozen=True)
class PartTypeTiming:
    setup_minutes: int
    minutes_per_unit: int


def check_quantity(quantity) -> int:
    """Quantities are whole, positive unit counts; anything else is rejected, never rounded."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidInputError(f"quantity must be a whole number, got {quantity!r}")
    if quantity <= 0:
        raise InvalidInputError(f"quantity must be positive, got {quantity!r}")
    return quantity


def _default_timings() -> dict[str, PartTypeTiming]:
    return {
        "cup": PartTypeTiming(setup_minutes=30, minutes_per_unit=15),
        "baffle": PartTypeTiming(setup_minutes=20, minutes_per_unit=10),
    }


@dataclass(frozen=True)
class DurationTable:
    """Setup/run lookup keyed by part type.

    Parts without a type, or with a type missing from the table, use the
    fallback constants so a run never fails on incomplete master data.
    """

    timings: dict[str, PartTypeTiming] = field(default_factory=_default_timings)
    default_setup_minutes: int = DEFAULT_SETUP_MINUTES
    default_minutes_per_unit: int = DEFAULT_MINUTES_PER_UNIT

    def timing_for(self, part_type: str | None) -> PartTypeTiming:
        if part_type:
            timing = self.timings.get(part_type)
            if timing is not None:
                return timing
        return PartTypeTiming(
            setup_minutes=self.default_setup_minutes,
            minutes_per_unit=self.default_minutes_per_unit,
        )

    def estimate(self, part: Part | None, quantity: int) -> tuple[int, int]:
        """Return (setup_minutes, run_minutes) for producing `quantity` units of `part`."""
        quantity = check_quantity(quantity)
        timing = self.timing_for(part.part_type if part is not None else None)
        return timing.setup_minutes, timing.minutes_per_unit * quantity

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DurationTable:
        """Build a table from its JSON config form.

        {"default": {"setup_minutes": 20, "minutes_per_unit": 10},
         "types": {"cup": {"setup_minutes": 30, "minutes_per_unit": 15}}}
        """
        default = dict(raw.get("default") or {})
        timings: dict[str, PartTypeTiming] = {}
        for part_type, row in dict(raw.get("types") or {}).items():
            setup = int(row["setup_minutes"])
            rate = int(row["minutes_per_unit"])
            if setup < 0 or rate <= 0:
                raise ValueError(f"invalid timing for part type {part_type!r}: setup={setup}, per unit={rate}")
            timings[str(part_type)] = PartTypeTiming(setup_minutes=setup, minutes_per_unit=rate)
        default_setup = int(default.get("setup_minutes", DEFAULT_SETUP_MINUTES))
        default_rate = int(default.get("minutes_per_unit", DEFAULT_MINUTES_PER_UNIT))
        if default_setup < 0 or default_rate <= 0:
            raise ValueError(f"invalid default timing: setup={default_setup}, per unit={default_rate}")
        return cls(timings=timings, default_setup_minutes=default_setup, default_minutes_per_unit=default_rate)

    def to_dict(self) -> dict[str, Any]:
        return {
            "default": {
                "setup_minutes": self.default_setup_minutes,
                "minutes_per_unit": self.default_minutes_per_unit,
            },
            "types": {
                part_type: {"setup_minutes": t.setup_minutes, "minutes_per_unit": t.minutes_per_unit}
                for part_type, t in sorted(self.timings.items())
            },
        }
