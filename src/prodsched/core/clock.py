from __future__ import annotations

from datetime import datetime
from typing import Iterable


class ResourceClock:
    """Per-machine "next free" time.

    The clock is a plain value: planning calls receive one, mutate it while
    placing jobs and hand it back, so callers can inspect or chain it.
    """

    def __init__(self, free_at: dict[str, datetime] | None = None):
        self._free_at: dict[str, datetime] = dict(free_at or {})

    @classmethod
    def starting_at(cls, machine_ids: Iterable[str], now: datetime) -> ResourceClock:
        return cls({machine_id: now for machine_id in machine_ids})

    def track(self, machine_id: str, free_at: datetime) -> None:
        """Start tracking a machine; machines already tracked keep their time."""
        self._free_at.setdefault(machine_id, free_at)

    def peek(self, machine_id: str) -> datetime:
        return self._free_at[machine_id]

    def reserve(self, machine_id: str, start: datetime, end: datetime) -> None:
        assert start < end, f"malformed interval on {machine_id}: {start} >= {end}"
        current = self._free_at.get(machine_id)
        # never moves backward
        if current is None or end > current:
            self._free_at[machine_id] = end

    def copy(self) -> ResourceClock:
        return ResourceClock(self._free_at)

    def snapshot(self) -> dict[str, datetime]:
        return dict(self._free_at)

    def __contains__(self, machine_id: object) -> bool:
        return machine_id in self._free_at

    def __repr__(self) -> str:
        return f"ResourceClock({self._free_at!r})"
