"""Scheduling core.

Pure planning functions and the small domain models they work on. Nothing in
here touches storage; callers pass a snapshot in and get jobs/conflicts back.
"""

from prodsched.core.capability import (
    CapabilityPredicate,
    ConstraintCapability,
    MachineTypeCapability,
    all_machines_capable,
    check_constraints,
)
from prodsched.core.clock import ResourceClock
from prodsched.core.conflicts import detect_conflicts
from prodsched.core.durations import DurationTable, PartTypeTiming
from prodsched.core.errors import (
    IllegalTransitionError,
    InvalidInputError,
    MachineConflictError,
    SchedulingError,
    UnknownJobError,
)
from prodsched.core.lifecycle import apply_transition, reschedule_job
from prodsched.core.models import (
    Machine,
    Operator,
    Part,
    PlanWarning,
    ProductionRequest,
    ScheduleConflict,
    ScheduledJob,
    ScheduleResult,
)
from prodsched.core.optimizer import balance_machines, optimize_schedule
from prodsched.core.planner import plan_jobs, priority_rank

__all__ = [
    "CapabilityPredicate",
    "ConstraintCapability",
    "DurationTable",
    "IllegalTransitionError",
    "InvalidInputError",
    "Machine",
    "MachineConflictError",
    "MachineTypeCapability",
    "Operator",
    "Part",
    "PartTypeTiming",
    "PlanWarning",
    "ProductionRequest",
    "ResourceClock",
    "ScheduleConflict",
    "ScheduleResult",
    "ScheduledJob",
    "SchedulingError",
    "UnknownJobError",
    "all_machines_capable",
    "apply_transition",
    "balance_machines",
    "check_constraints",
    "detect_conflicts",
    "optimize_schedule",
    "plan_jobs",
    "priority_rank",
    "reschedule_job",
]
