from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from prodsched.core.durations import DurationTable
from prodsched.core.errors import IllegalTransitionError, InvalidInputError
from prodsched.core.models import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_DELAYED,
    STATUS_IN_PROGRESS,
    STATUS_SCHEDULED,
    TERMINAL_STATUSES,
    ProductionRequest,
    ScheduledJob,
)
from prodsched.core.planner import job_id_for, priority_rank


ACTION_START = "start"
ACTION_COMPLETE = "complete"
ACTION_DELAY = "delay"
ACTION_CANCEL = "cancel"

# action -> (allowed source statuses, target status)
TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    ACTION_START: (frozenset({STATUS_SCHEDULED, STATUS_DELAYED}), STATUS_IN_PROGRESS),
    ACTION_COMPLETE: (frozenset({STATUS_IN_PROGRESS}), STATUS_COMPLETED),
    ACTION_DELAY: (frozenset({STATUS_SCHEDULED, STATUS_IN_PROGRESS}), STATUS_DELAYED),
    ACTION_CANCEL: (frozenset({STATUS_SCHEDULED, STATUS_DELAYED, STATUS_IN_PROGRESS}), STATUS_CANCELLED),
}


def apply_transition(
    job: ScheduledJob,
    action: str,
    *,
    now: datetime,
    operator_id: str | None = None,
) -> ScheduledJob:
    """Return the job after `action`; the input job is never modified.

    start records actual_start (and takes over the operator when given),
    complete records actual_end. A started job that is delayed is paused:
    starting it again resumes it and keeps the first actual_start. None of
    the actions touch the scheduled interval.
    """
    action = str(action or "").strip().lower()
    if action not in TRANSITIONS:
        raise InvalidInputError(f"unknown action: {action!r} (expected one of {', '.join(TRANSITIONS)})")

    allowed_from, target = TRANSITIONS[action]
    if job.status not in allowed_from:
        raise IllegalTransitionError(job.job_id, job.status, action)

    changes: dict = {"status": target}
    if action == ACTION_START:
        if not job.is_started:
            changes["actual_start"] = now
        if operator_id:
            changes["operator_id"] = operator_id
    elif action == ACTION_COMPLETE:
        changes["actual_end"] = now
    return replace(job, **changes)


def recompute_status(job: ScheduledJob) -> str:
    """delayed/scheduled is derived from the due date for jobs not yet started; other states stay."""
    if job.status not in (STATUS_SCHEDULED, STATUS_DELAYED) or job.is_started or job.due_date is None:
        return job.status
    return STATUS_DELAYED if job.scheduled_end > job.due_date else STATUS_SCHEDULED


def reschedule_job(job: ScheduledJob, new_start: datetime, new_machine_id: str | None = None) -> ScheduledJob:
    """Move a job keeping its setup/run duration."""
    if job.status in TERMINAL_STATUSES:
        raise IllegalTransitionError(job.job_id, job.status, "reschedule")

    moved = replace(
        job,
        machine_id=new_machine_id or job.machine_id,
        scheduled_start=new_start,
        scheduled_end=new_start + timedelta(minutes=job.duration_minutes),
    )
    return replace(moved, status=recompute_status(moved))


def place_request(
    request: ProductionRequest,
    *,
    machine_id: str,
    start: datetime,
    operator_id: str | None = None,
    durations: DurationTable | None = None,
    priority_ranks: dict[str, int] | None = None,
) -> ScheduledJob:
    """Build a job for a manually chosen machine and start time."""
    setup, run = (durations or DurationTable()).estimate(request.part, request.quantity)
    end = start + timedelta(minutes=setup + run)
    return ScheduledJob(
        job_id=job_id_for(request),
        request_id=request.request_id,
        machine_id=machine_id,
        operator_id=operator_id,
        scheduled_start=start,
        scheduled_end=end,
        setup_minutes=setup,
        run_minutes=run,
        status=STATUS_DELAYED if end > request.due_date else STATUS_SCHEDULED,
        priority=priority_rank(request.priority, priority_ranks),
        part_type=request.part_type,
        due_date=request.due_date,
    )
