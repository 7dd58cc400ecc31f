"""Caller-facing failures raised by the scheduling engine.

Every failure derives from ValueError so callers that already guard user
actions with ``except ValueError`` keep working, while the subclasses let a
caller render the specific case (unknown id, illegal transition, ...).
"""

from __future__ import annotations


class SchedulingError(ValueError):
    pass


class InvalidInputError(SchedulingError):
    pass


class UnknownJobError(SchedulingError):
    def __init__(self, job_id: str):
        super().__init__(f"unknown job: {job_id!r}")
        self.job_id = job_id


class IllegalTransitionError(SchedulingError):
    def __init__(self, job_id: str, current: str, attempted: str):
        super().__init__(f"illegal transition for {job_id}: {attempted!r} is not allowed from {current!r}")
        self.job_id = job_id
        self.current = current
        self.attempted = attempted


class MachineConflictError(SchedulingError):
    def __init__(self, machine_id: str, conflicting_job_ids: list[str]):
        super().__init__(
            f"machine {machine_id} is busy in that window (conflicts with {', '.join(conflicting_job_ids)})"
        )
        self.machine_id = machine_id
        self.conflicting_job_ids = list(conflicting_job_ids)
