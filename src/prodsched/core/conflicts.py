from __future__ import annotations

import logging
from typing import Sequence

from prodsched.core.models import CONFLICT_MACHINE, CONFLICT_OPERATOR, ScheduleConflict, ScheduledJob


logger = logging.getLogger(__name__)

SEVERITY_BY_TYPE = {CONFLICT_MACHINE: "high", CONFLICT_OPERATOR: "medium"}

RESOLUTION_BY_TYPE = {
    CONFLICT_MACHINE: "Reschedule one job to a different machine or time slot",
    CONFLICT_OPERATOR: "Assign a different operator to one of the jobs",
}


def _conflict(a: ScheduledJob, b: ScheduledJob, kind: str) -> ScheduleConflict:
    return ScheduleConflict(
        job1=a,
        job2=b,
        type=kind,
        severity=SEVERITY_BY_TYPE[kind],
        resolution=RESOLUTION_BY_TYPE[kind],
    )


def detect_conflicts(jobs: Sequence[ScheduledJob]) -> list[ScheduleConflict]:
    """Every pairwise machine/operator double-booking in `jobs`.

    Pairs are scanned in list order and a pair can yield a machine conflict,
    an operator conflict, or both. Cancelled jobs hold no machine time and
    never collide. O(n^2): fine for a horizon of days with job counts in the
    low hundreds, not meant for more.
    """
    live = [j for j in jobs if j.holds_machine]
    conflicts: list[ScheduleConflict] = []
    for i, a in enumerate(live):
        for b in live[i + 1 :]:
            if a.job_id == b.job_id or not a.overlaps(b):
                continue
            if a.machine_id == b.machine_id:
                conflicts.append(_conflict(a, b, CONFLICT_MACHINE))
            if a.operator_id and a.operator_id == b.operator_id:
                conflicts.append(_conflict(a, b, CONFLICT_OPERATOR))

    if conflicts:
        logger.info("Detected %d conflict(s) across %d job(s)", len(conflicts), len(jobs))
    return conflicts


def machine_overlaps(
    jobs: Sequence[ScheduledJob],
    candidate: ScheduledJob,
    *,
    ignore_statuses: frozenset[str] = frozenset(),
) -> list[ScheduledJob]:
    """Jobs on the candidate's machine whose interval overlaps it."""
    return [
        j
        for j in jobs
        if j.job_id != candidate.job_id
        and j.machine_id == candidate.machine_id
        and j.status not in ignore_statuses
        and j.overlaps(candidate)
    ]
