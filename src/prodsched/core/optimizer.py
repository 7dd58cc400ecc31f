from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Sequence

from prodsched.core.capability import CapabilityPredicate, all_machines_capable
from prodsched.core.conflicts import detect_conflicts
from prodsched.core.durations import DurationTable
from prodsched.core.models import Machine, Operator, PlanWarning, ProductionRequest, ScheduleConflict, ScheduledJob
from prodsched.core.planner import (
    OPERATOR_POLICY_LEAST_LOADED,
    capable_machines,
    operational_machines,
    plan_jobs,
    priority_rank,
    validate_requests,
)


logger = logging.getLogger(__name__)


@dataclass
class OptimizeOutcome:
    jobs: list[ScheduledJob]
    conflicts: list[ScheduleConflict]
    warnings: list[PlanWarning]
    conflicts_before: int
    conflicts_resolved: int
    kept_baseline: bool = False


def optimizer_sort_key(ranks: dict[str, int] | None = None) -> Callable[[ProductionRequest], Any]:
    """Cluster identical part types (setup reuse), then priority."""

    def key(r: ProductionRequest):
        part_type = r.part_type
        return (part_type is None, part_type or "", priority_rank(r.priority, ranks), r.due_date, r.request_id)

    return key


def balance_machines(
    requests: Sequence[ProductionRequest],
    machines: Sequence[Machine],
    *,
    durations: DurationTable | None = None,
    capability: CapabilityPredicate = all_machines_capable,
    initial_load: dict[str, int] | None = None,
) -> dict[str, str]:
    """Least-cumulative-load machine for each request, in the given order.

    Unlike the planner this ignores when a machine becomes free: it trades
    earliest start for balance. Requests with no capable machine are left
    out of the result.

    Returns: request_id -> machine_id
    """
    durations = durations or DurationTable()
    fleet = operational_machines(machines)
    loads: dict[str, int] = {m.machine_id: int((initial_load or {}).get(m.machine_id, 0)) for m in fleet}
    assignment: dict[str, str] = {}

    for request in requests:
        candidates = capable_machines(request, fleet, capability)
        if not candidates:
            continue
        chosen = min(candidates, key=lambda m: loads[m.machine_id])
        setup, run = durations.estimate(request.part, request.quantity)
        loads[chosen.machine_id] += setup + run
        assignment[request.request_id] = chosen.machine_id

    return assignment


def optimize_schedule(
    requests: Sequence[ProductionRequest],
    machines: Sequence[Machine],
    operators: Sequence[Operator] = (),
    *,
    now: datetime,
    current_jobs: Sequence[ScheduledJob] | None = None,
    durations: DurationTable | None = None,
    capability: CapabilityPredicate = all_machines_capable,
    pinned: Sequence[ScheduledJob] = (),
    priority_ranks: dict[str, int] | None = None,
    operator_policy: str = OPERATOR_POLICY_LEAST_LOADED,
    initial_load: dict[str, int] | None = None,
) -> OptimizeOutcome:
    """Re-cluster by part type, rebalance machine load and re-plan.

    `current_jobs` is the schedule being replaced; its conflict count is the
    "before" figure. Without it the before figure comes from a fresh
    baseline plan of the same inputs. If the optimized schedule ends up with
    more conflicts than that baseline plan, the baseline plan is returned.
    """
    validate_requests(requests)
    durations = durations or DurationTable()
    common = dict(
        now=now,
        durations=durations,
        capability=capability,
        pinned=pinned,
        priority_ranks=priority_ranks,
        operator_policy=operator_policy,
    )

    baseline = plan_jobs(requests, machines, operators, **common)
    baseline_conflicts = detect_conflicts(baseline.jobs)
    if current_jobs is not None:
        before = len(detect_conflicts(current_jobs))
    else:
        before = len(baseline_conflicts)

    key = optimizer_sort_key(priority_ranks)
    pinned_request_ids = {j.request_id for j in pinned}
    ordered = sorted((r for r in requests if r.request_id not in pinned_request_ids), key=key)

    load: dict[str, int] = dict(initial_load or {})
    for job in (j for j in pinned if j.holds_machine):
        load[job.machine_id] = load.get(job.machine_id, 0) + job.duration_minutes

    hint = balance_machines(ordered, machines, durations=durations, capability=capability, initial_load=load)
    optimized = plan_jobs(requests, machines, operators, sort_key=key, machine_hint=hint, **common)
    conflicts = detect_conflicts(optimized.jobs)

    kept_baseline = False
    jobs, warnings = optimized.jobs, optimized.warnings
    if len(conflicts) > len(baseline_conflicts):
        logger.info(
            "Optimized schedule has %d conflict(s) vs %d for the baseline plan; keeping baseline",
            len(conflicts),
            len(baseline_conflicts),
        )
        jobs, warnings, conflicts = baseline.jobs, baseline.warnings, baseline_conflicts
        kept_baseline = True

    resolved = before - len(conflicts)
    logger.info(
        "Schedule optimized: %d job(s), conflicts %d -> %d (resolved %d)",
        len(jobs),
        before,
        len(conflicts),
        resolved,
    )
    return OptimizeOutcome(
        jobs=jobs,
        conflicts=conflicts,
        warnings=warnings,
        conflicts_before=before,
        conflicts_resolved=resolved,
        kept_baseline=kept_baseline,
    )
