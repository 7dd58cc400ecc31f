from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Sequence

from prodsched.core.capability import CapabilityPredicate, all_machines_capable
from prodsched.core.conflicts import detect_conflicts, machine_overlaps
from prodsched.core.durations import DurationTable
from prodsched.core.errors import InvalidInputError, MachineConflictError, UnknownJobError
from prodsched.core.lifecycle import apply_transition, place_request, reschedule_job
from prodsched.core.models import (
    STATUS_CANCELLED,
    TERMINAL_STATUSES,
    Machine,
    Operator,
    PlanWarning,
    ProductionRequest,
    ScheduleConflict,
    ScheduledJob,
    ScheduleResult,
)
from prodsched.core.optimizer import optimize_schedule
from prodsched.core.planner import OPERATOR_POLICY_LEAST_LOADED, plan_jobs, validate_requests

if TYPE_CHECKING:
    from prodsched.data.config_repository import ConfigRepository


logger = logging.getLogger(__name__)


class SchedulingSession:
    """One authoritative schedule for one shop floor.

    The session keeps the last snapshot (requests, machines, operators) and
    the job list built from it. Every operation takes the session lock, so
    two runs never interleave on the same job list. Operations return the
    updated jobs/conflicts directly; the caller decides how to persist or
    display them.
    """

    def __init__(
        self,
        *,
        durations: DurationTable | None = None,
        capability: CapabilityPredicate = all_machines_capable,
        priority_ranks: dict[str, int] | None = None,
        operator_policy: str = OPERATOR_POLICY_LEAST_LOADED,
        now_fn: Callable[[], datetime] = datetime.now,
    ):
        self.durations = durations or DurationTable()
        self.capability = capability
        self.priority_ranks = priority_ranks
        self.operator_policy = operator_policy
        self._now_fn = now_fn
        self._lock = threading.RLock()

        self._requests: dict[str, ProductionRequest] = {}
        self._machines: list[Machine] = []
        self._operators: list[Operator] = []
        self._jobs: list[ScheduledJob] = []
        self._conflicts: list[ScheduleConflict] = []
        self._warnings: list[PlanWarning] = []

    @classmethod
    def from_config(cls, config: ConfigRepository, **kwargs) -> SchedulingSession:
        return cls(
            durations=config.get_duration_table(),
            capability=config.get_capability(),
            priority_ranks=config.get_priority_map(),
            operator_policy=config.get_operator_policy(),
            **kwargs,
        )

    # ---------- read ----------
    @property
    def jobs(self) -> list[ScheduledJob]:
        with self._lock:
            return list(self._jobs)

    @property
    def conflicts(self) -> list[ScheduleConflict]:
        with self._lock:
            return list(self._conflicts)

    @property
    def warnings(self) -> list[PlanWarning]:
        with self._lock:
            return list(self._warnings)

    def get_job(self, job_id: str) -> ScheduledJob:
        with self._lock:
            return self._jobs[self._index_of(job_id)]

    def list_jobs(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        machine_id: str | None = None,
        status: str | None = None,
    ) -> list[ScheduledJob]:
        """Jobs inside [start, end] on a machine/status, ordered by start."""
        with self._lock:
            rows = list(self._jobs)
        if start is not None:
            rows = [j for j in rows if j.scheduled_start >= start]
        if end is not None:
            rows = [j for j in rows if j.scheduled_end <= end]
        if machine_id is not None:
            rows = [j for j in rows if j.machine_id == machine_id]
        if status is not None:
            rows = [j for j in rows if j.status == status]
        return sorted(rows, key=lambda j: (j.scheduled_start, j.job_id))

    # ---------- runs ----------
    def plan(
        self,
        requests: Sequence[ProductionRequest],
        machines: Sequence[Machine],
        operators: Sequence[Operator] = (),
        *,
        now: datetime | None = None,
    ) -> ScheduleResult:
        """Full planner + conflict detector run over a fresh snapshot.

        Started and finished jobs (in progress, paused, completed, cancelled)
        stay as they are and their requests are not planned again; new jobs
        are planned around the ones still holding a machine.
        """
        validate_requests(requests)
        with self._lock:
            now = now or self._now_fn()
            pinned = self._kept_jobs()
            outcome = plan_jobs(
                requests,
                machines,
                operators,
                now=now,
                durations=self.durations,
                capability=self.capability,
                pinned=pinned,
                priority_ranks=self.priority_ranks,
                operator_policy=self.operator_policy,
            )
            conflicts = detect_conflicts(outcome.jobs)
            self._store_snapshot(requests, machines, operators)
            self._jobs = outcome.jobs
            self._conflicts = conflicts
            self._warnings = outcome.warnings
            logger.info("Schedule planned: %d job(s), %d conflict(s)", len(self._jobs), len(conflicts))
            return ScheduleResult(jobs=list(self._jobs), conflicts=list(conflicts), warnings=list(outcome.warnings))

    def optimize(
        self,
        requests: Sequence[ProductionRequest] | None = None,
        machines: Sequence[Machine] | None = None,
        operators: Sequence[Operator] | None = None,
        *,
        now: datetime | None = None,
    ) -> ScheduleResult:
        """Optimizer run; the new job list supersedes the current one.

        Omitted inputs default to the snapshot of the last run.
        """
        with self._lock:
            requests = list(self._requests.values()) if requests is None else list(requests)
            machines = list(self._machines) if machines is None else list(machines)
            operators = list(self._operators) if operators is None else list(operators)
            validate_requests(requests)

            now = now or self._now_fn()
            outcome = optimize_schedule(
                requests,
                machines,
                operators,
                now=now,
                current_jobs=self._jobs if self._jobs else None,
                durations=self.durations,
                capability=self.capability,
                pinned=self._kept_jobs(),
                priority_ranks=self.priority_ranks,
                operator_policy=self.operator_policy,
            )
            self._store_snapshot(requests, machines, operators)
            self._jobs = outcome.jobs
            self._conflicts = outcome.conflicts
            self._warnings = outcome.warnings
            return ScheduleResult(
                jobs=list(outcome.jobs),
                conflicts=list(outcome.conflicts),
                warnings=list(outcome.warnings),
                conflicts_resolved=outcome.conflicts_resolved,
            )

    # ---------- single-job operations ----------
    def reschedule(
        self,
        job_id: str,
        new_start: datetime,
        new_machine_id: str | None = None,
    ) -> tuple[ScheduledJob, list[ScheduleConflict]]:
        """Move one job and re-run the conflict detector over the full set."""
        with self._lock:
            idx = self._index_of(job_id)
            if new_machine_id is not None:
                self._require_machine(new_machine_id)

            moved = reschedule_job(self._jobs[idx], new_start, new_machine_id)
            jobs = list(self._jobs)
            jobs[idx] = moved
            conflicts = detect_conflicts(jobs)

            self._jobs = jobs
            self._conflicts = conflicts
            logger.info(
                "Job rescheduled: %s -> %s on %s (%d conflict(s))",
                job_id,
                moved.scheduled_start.isoformat(),
                moved.machine_id,
                len(conflicts),
            )
            return moved, list(conflicts)

    def transition(
        self,
        job_id: str,
        action: str,
        *,
        operator_id: str | None = None,
        now: datetime | None = None,
    ) -> ScheduledJob:
        with self._lock:
            idx = self._index_of(job_id)
            updated = apply_transition(self._jobs[idx], action, now=now or self._now_fn(), operator_id=operator_id)
            self._jobs[idx] = updated
            # timing is unchanged: no detector run, the stored conflicts just get the new job
            # (a cancelled job drops out of them)
            self._conflicts = self._swap_job_in_conflicts(updated)
            logger.info("Job %s: %s -> %s", job_id, action, updated.status)
            return updated

    def schedule_request(
        self,
        request_id: str,
        machine_id: str,
        start: datetime,
        *,
        operator_id: str | None = None,
    ) -> tuple[ScheduledJob, list[ScheduleConflict]]:
        """Manually place a request from the current snapshot.

        Rejected when the machine already has a non-cancelled job in that
        window, or when the request already has a job.
        """
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise InvalidInputError(f"unknown request: {request_id!r}")
            self._require_machine(machine_id)
            if any(j.request_id == request_id for j in self._jobs):
                raise InvalidInputError(f"request {request_id} is already scheduled")

            job = place_request(
                request,
                machine_id=machine_id,
                start=start,
                operator_id=operator_id,
                durations=self.durations,
                priority_ranks=self.priority_ranks,
            )
            busy = machine_overlaps(self._jobs, job, ignore_statuses=frozenset({STATUS_CANCELLED}))
            if busy:
                raise MachineConflictError(machine_id, [j.job_id for j in busy])

            self._jobs = [*self._jobs, job]
            self._conflicts = detect_conflicts(self._jobs)
            self._warnings = [w for w in self._warnings if w.request_id != request_id]
            logger.info("Job scheduled manually: %s on %s at %s", job.job_id, machine_id, start.isoformat())
            return job, list(self._conflicts)

    # ---------- helpers ----------
    def _index_of(self, job_id: str) -> int:
        for idx, job in enumerate(self._jobs):
            if job.job_id == job_id:
                return idx
        raise UnknownJobError(job_id)

    def _require_machine(self, machine_id: str) -> Machine:
        for m in self._machines:
            if m.machine_id == machine_id:
                if not m.is_operational:
                    raise InvalidInputError(f"machine {machine_id} is not operational (status {m.status!r})")
                return m
        raise InvalidInputError(f"unknown machine: {machine_id!r}")

    def _kept_jobs(self) -> list[ScheduledJob]:
        """Started or finished work; a re-plan carries these over untouched."""
        return [j for j in self._jobs if j.is_started or j.status in TERMINAL_STATUSES]

    def _swap_job_in_conflicts(self, job: ScheduledJob) -> list[ScheduleConflict]:
        refreshed = []
        for c in self._conflicts:
            if job.job_id not in c.job_ids:
                refreshed.append(c)
            elif job.holds_machine:
                refreshed.append(
                    replace(
                        c,
                        job1=job if c.job1.job_id == job.job_id else c.job1,
                        job2=job if c.job2.job_id == job.job_id else c.job2,
                    )
                )
        return refreshed

    def _store_snapshot(
        self,
        requests: Sequence[ProductionRequest],
        machines: Sequence[Machine],
        operators: Sequence[Operator],
    ) -> None:
        self._requests = {r.request_id: r for r in requests}
        self._machines = list(machines)
        self._operators = list(operators)
