from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any


MACHINE_OPERATIONAL = "operational"

STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DELAYED = "delayed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})

CONFLICT_MACHINE = "machine"
CONFLICT_OPERATOR = "operator"


@dataclass(frozen=True)
class Part:
    part_id: str
    part_name: str | None = None
    part_type: str | None = None


@dataclass(frozen=True)
class ProductionRequest:
    request_id: str
    customer_name: str | None
    part: Part | None
    quantity: int
    due_date: datetime
    priority: str = "normal"

    @property
    def part_type(self) -> str | None:
        return self.part.part_type if self.part is not None else None


@dataclass(frozen=True)
class Machine:
    machine_id: str
    machine_name: str | None = None
    machine_type: str = ""
    status: str = MACHINE_OPERATIONAL
    constraints: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_operational(self) -> bool:
        return self.status == MACHINE_OPERATIONAL


@dataclass(frozen=True)
class Operator:
    operator_id: str
    name: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class ScheduledJob:
    job_id: str
    request_id: str
    machine_id: str
    operator_id: str | None
    scheduled_start: datetime
    scheduled_end: datetime
    setup_minutes: int
    run_minutes: int
    status: str
    priority: int
    part_type: str | None = None
    due_date: datetime | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None

    def __post_init__(self) -> None:
        assert self.setup_minutes >= 0 and self.run_minutes >= 0, f"negative duration on {self.job_id}"
        assert self.scheduled_start < self.scheduled_end, f"empty interval on {self.job_id}"
        assert self.scheduled_end == self.scheduled_start + timedelta(minutes=self.duration_minutes), (
            f"interval of {self.job_id} does not match its duration"
        )

    @property
    def duration_minutes(self) -> int:
        return self.setup_minutes + self.run_minutes

    @property
    def holds_machine(self) -> bool:
        """Cancelled jobs keep their record but free their machine and operator."""
        return self.status != STATUS_CANCELLED

    @property
    def is_started(self) -> bool:
        return self.actual_start is not None

    def overlaps(self, other: ScheduledJob) -> bool:
        """Half-open interval overlap: [start, end) against [other.start, other.end)."""
        return self.scheduled_start < other.scheduled_end and other.scheduled_start < self.scheduled_end


@dataclass(frozen=True)
class ScheduleConflict:
    job1: ScheduledJob
    job2: ScheduledJob
    type: str
    severity: str
    resolution: str

    @property
    def job_ids(self) -> tuple[str, str]:
        return (self.job1.job_id, self.job2.job_id)


@dataclass(frozen=True)
class PlanWarning:
    request_id: str
    reason: str
    part_type: str | None = None


@dataclass(frozen=True)
class ScheduleResult:
    jobs: list[ScheduledJob]
    conflicts: list[ScheduleConflict]
    warnings: list[PlanWarning]
    conflicts_resolved: int = 0
