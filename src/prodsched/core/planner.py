from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Sequence

from prodsched.core.capability import CapabilityPredicate, all_machines_capable
from prodsched.core.clock import ResourceClock
from prodsched.core.durations import DurationTable, check_quantity
from prodsched.core.errors import InvalidInputError
from prodsched.core.models import (
    STATUS_DELAYED,
    STATUS_SCHEDULED,
    Machine,
    Operator,
    PlanWarning,
    ProductionRequest,
    ScheduledJob,
)


logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_RANKS: dict[str, int] = {"rush": 0, "high": 1, "normal": 2, "low": 3}
UNKNOWN_PRIORITY_RANK = 3

OPERATOR_POLICY_LEAST_LOADED = "least_loaded"
OPERATOR_POLICY_ROUND_ROBIN = "round_robin"
OPERATOR_POLICIES = (OPERATOR_POLICY_LEAST_LOADED, OPERATOR_POLICY_ROUND_ROBIN)

NO_CAPABLE_MACHINE = "no operational machine can produce this part"


def priority_rank(priority: str | None, ranks: dict[str, int] | None = None) -> int:
    ranks = DEFAULT_PRIORITY_RANKS if ranks is None else ranks
    return ranks.get(str(priority or "").strip().lower(), UNKNOWN_PRIORITY_RANK)


def job_id_for(request: ProductionRequest) -> str:
    return f"job-{request.request_id}"


def validate_requests(requests: Sequence[ProductionRequest]) -> None:
    """Reject the whole batch before anything is planned."""
    seen: set[str] = set()
    for r in requests:
        try:
            check_quantity(r.quantity)
        except InvalidInputError as exc:
            raise InvalidInputError(f"request {r.request_id}: {exc}") from exc
        if r.request_id in seen:
            raise InvalidInputError(f"duplicate request id: {r.request_id!r}")
        seen.add(r.request_id)


def operational_machines(machines: Iterable[Machine]) -> list[Machine]:
    # sorted by id so "first found" on ties is deterministic
    return sorted((m for m in machines if m.is_operational), key=lambda m: m.machine_id)


def capable_machines(
    request: ProductionRequest,
    machines: Sequence[Machine],
    capability: CapabilityPredicate,
) -> list[Machine]:
    return [m for m in machines if capability(m, request.part)]


class OperatorPool:
    """Deterministic operator assignment.

    least_loaded: among active operators free over [start, end), the one with
    the fewest assigned minutes; if nobody is free, the least loaded overall.
    round_robin: cycle through active operators in id order.
    """

    def __init__(self, operators: Iterable[Operator], policy: str = OPERATOR_POLICY_LEAST_LOADED):
        if policy not in OPERATOR_POLICIES:
            raise InvalidInputError(f"unknown operator policy: {policy!r}")
        self.policy = policy
        self.operator_ids = [o.operator_id for o in sorted(operators, key=lambda o: o.operator_id) if o.is_active]
        self.loads: dict[str, int] = {oid: 0 for oid in self.operator_ids}
        self.bookings: dict[str, list[tuple[datetime, datetime]]] = {oid: [] for oid in self.operator_ids}
        self._next = 0

    def is_free(self, operator_id: str, start: datetime, end: datetime) -> bool:
        return all(not (s < end and start < e) for s, e in self.bookings.get(operator_id, []))

    def book(self, operator_id: str, start: datetime, end: datetime) -> None:
        if operator_id not in self.loads:
            # pinned jobs may carry operators outside the active pool
            return
        self.bookings[operator_id].append((start, end))
        self.loads[operator_id] += int((end - start).total_seconds() // 60)

    def pick(self, start: datetime, end: datetime) -> str | None:
        if not self.operator_ids:
            return None

        if self.policy == OPERATOR_POLICY_ROUND_ROBIN:
            chosen = self.operator_ids[self._next % len(self.operator_ids)]
            self._next += 1
            return chosen

        free = [oid for oid in self.operator_ids if self.is_free(oid, start, end)]
        candidates = free or self.operator_ids
        return min(candidates, key=lambda oid: self.loads[oid])


@dataclass
class PlanOutcome:
    jobs: list[ScheduledJob]
    warnings: list[PlanWarning]
    clock: ResourceClock


def planner_sort_key(ranks: dict[str, int] | None = None) -> Callable[[ProductionRequest], Any]:
    def key(r: ProductionRequest):
        return (priority_rank(r.priority, ranks), r.due_date, r.request_id)

    return key


def plan_jobs(
    requests: Sequence[ProductionRequest],
    machines: Sequence[Machine],
    operators: Sequence[Operator] = (),
    *,
    now: datetime,
    durations: DurationTable | None = None,
    capability: CapabilityPredicate = all_machines_capable,
    clock: ResourceClock | None = None,
    pinned: Sequence[ScheduledJob] = (),
    priority_ranks: dict[str, int] | None = None,
    operator_policy: str = OPERATOR_POLICY_LEAST_LOADED,
    sort_key: Callable[[ProductionRequest], Any] | None = None,
    machine_hint: dict[str, str] | None = None,
) -> PlanOutcome:
    """Greedy assignment of requests to machines.

    Args:
        requests: Pending requests (read-only snapshot).
        machines: Fleet; non-operational machines are ignored.
        operators: Operator pool; inactive operators are ignored.
        now: Time every machine becomes free unless `clock` says otherwise.
        durations: Setup/run lookup (default table when omitted).
        capability: Which machines can produce which parts.
        clock: Optional clock to continue from; a copy is used, never mutated.
        pinned: Jobs a re-plan must not touch (started or finished work).
            They are returned first, unchanged, and their requests are not
            planned again. All but cancelled ones are reserved on the clock
            and booked on their operator.
        priority_ranks: Priority label -> rank (lower goes first).
        operator_policy: "least_loaded" or "round_robin".
        sort_key: Request ordering; defaults to (priority rank, due date, id).
        machine_hint: request_id -> preferred machine_id. A capable hinted
            machine wins over the earliest-free rule.

    Returns:
        PlanOutcome with pinned + new jobs, warnings for skipped requests,
        and the clock after all reservations.
    """
    validate_requests(requests)
    durations = durations or DurationTable()
    fleet = operational_machines(machines)

    clock = clock.copy() if clock is not None else ResourceClock()
    for m in fleet:
        clock.track(m.machine_id, now)

    pool = OperatorPool(operators, operator_policy)
    jobs: list[ScheduledJob] = []
    warnings: list[PlanWarning] = []

    for job in pinned:
        if job.holds_machine:
            clock.reserve(job.machine_id, job.scheduled_start, job.scheduled_end)
            if job.operator_id:
                pool.book(job.operator_id, job.scheduled_start, job.scheduled_end)
        jobs.append(job)

    pinned_request_ids = {j.request_id for j in pinned}
    ordered = sorted(
        (r for r in requests if r.request_id not in pinned_request_ids),
        key=sort_key or planner_sort_key(priority_ranks),
    )
    hints = machine_hint or {}

    for request in ordered:
        candidates = capable_machines(request, fleet, capability)
        if not candidates:
            logger.warning(
                "Skipping request %s (part type %s): %s",
                request.request_id,
                request.part_type,
                NO_CAPABLE_MACHINE,
            )
            warnings.append(
                PlanWarning(request_id=request.request_id, reason=NO_CAPABLE_MACHINE, part_type=request.part_type)
            )
            continue

        hinted = hints.get(request.request_id)
        chosen = next((m for m in candidates if m.machine_id == hinted), None)
        if chosen is None:
            # min() keeps the first machine on ties
            chosen = min(candidates, key=lambda m: clock.peek(m.machine_id))

        setup, run = durations.estimate(request.part, request.quantity)
        start = clock.peek(chosen.machine_id)
        end = start + timedelta(minutes=setup + run)
        status = STATUS_DELAYED if end > request.due_date else STATUS_SCHEDULED

        operator_id = pool.pick(start, end)
        if operator_id is not None:
            pool.book(operator_id, start, end)

        jobs.append(
            ScheduledJob(
                job_id=job_id_for(request),
                request_id=request.request_id,
                machine_id=chosen.machine_id,
                operator_id=operator_id,
                scheduled_start=start,
                scheduled_end=end,
                setup_minutes=setup,
                run_minutes=run,
                status=status,
                priority=priority_rank(request.priority, priority_ranks),
                part_type=request.part_type,
                due_date=request.due_date,
            )
        )
        clock.reserve(chosen.machine_id, start, end)

    logger.info(
        "Planned %d job(s) from %d request(s) on %d machine(s); %d skipped",
        len(jobs) - len(pinned),
        len(requests),
        len(fleet),
        len(warnings),
    )
    return PlanOutcome(jobs=jobs, warnings=warnings, clock=clock)
