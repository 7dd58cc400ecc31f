from datetime import timedelta

import pytest

from prodsched.core.capability import MachineTypeCapability
from prodsched.core.clock import ResourceClock
from prodsched.core.conflicts import detect_conflicts
from prodsched.core.errors import InvalidInputError
from prodsched.core.models import Machine, Operator
from prodsched.core.planner import plan_jobs, priority_rank


def test_rush_request_goes_first_and_jobs_do_not_overlap(now, make_request, one_machine):
    # A: normal, due in 5 days, 10 units -> 20 + 100 = 120 min
    # B: rush, due tomorrow, 5 units -> 20 + 50 = 70 min
    a = make_request("A", quantity=10, priority="normal", due_in=timedelta(days=5))
    b = make_request("B", quantity=5, priority="rush", due_in=timedelta(days=1))

    outcome = plan_jobs([a, b], one_machine, now=now)
    jobs = {j.request_id: j for j in outcome.jobs}

    assert [j.request_id for j in outcome.jobs] == ["B", "A"]
    assert jobs["B"].scheduled_start == now
    assert jobs["B"].scheduled_end == now + timedelta(minutes=70)
    assert jobs["A"].scheduled_start == now + timedelta(minutes=70)
    assert jobs["A"].scheduled_end == now + timedelta(minutes=190)
    assert jobs["A"].status == jobs["B"].status == "scheduled"
    assert detect_conflicts(outcome.jobs) == []


def test_unknown_part_type_duration(now, make_request, one_machine):
    request = make_request("R1", quantity=3, part_type="mystery")

    job = plan_jobs([request], one_machine, now=now).jobs[0]

    assert (job.setup_minutes, job.run_minutes) == (20, 30)
    assert job.scheduled_end == job.scheduled_start + timedelta(minutes=50)


def test_request_whose_only_capable_machine_is_down_is_skipped(now, make_request):
    machines = [
        Machine(machine_id="M1", machine_type="CNC Mill", status="maintenance"),
        Machine(machine_id="M2", machine_type="Lathe"),
    ]
    capability = MachineTypeCapability({"cup": ["mill"]})

    outcome = plan_jobs([make_request("R1", part_type="cup")], machines, now=now, capability=capability)
    assert outcome.jobs == []
    assert len(outcome.warnings) == 1
    assert outcome.warnings[0].request_id == "R1"
    assert outcome.warnings[0].part_type == "cup"

    # the rest of the run still goes through
    outcome = plan_jobs(
        [make_request("R1", part_type="cup"), make_request("R2")],
        machines,
        now=now,
        capability=capability,
    )
    assert [j.request_id for j in outcome.jobs] == ["R2"]
    assert outcome.jobs[0].machine_id == "M2"
    assert [w.request_id for w in outcome.warnings] == ["R1"]


def test_no_operational_machine_skips_everything(now, make_request):
    machines = [Machine(machine_id="M1", status="down")]
    outcome = plan_jobs([make_request("R1"), make_request("R2")], machines, now=now)
    assert outcome.jobs == []
    assert [w.request_id for w in outcome.warnings] == ["R1", "R2"]


def test_priority_ordering_with_same_due_date(now, make_request, one_machine):
    normal = make_request("N", priority="normal", due_in=timedelta(days=2))
    rush = make_request("R", priority="rush", due_in=timedelta(days=2))

    jobs = {j.request_id: j for j in plan_jobs([normal, rush], one_machine, now=now).jobs}

    assert jobs["R"].scheduled_start <= jobs["N"].scheduled_start
    assert jobs["R"].priority == 0
    assert jobs["N"].priority == 2


def test_due_date_breaks_priority_ties(now, make_request, one_machine):
    late = make_request("LATE", due_in=timedelta(days=9))
    early = make_request("EARLY", due_in=timedelta(days=3))

    jobs = plan_jobs([late, early], one_machine, now=now).jobs
    assert [j.request_id for j in jobs] == ["EARLY", "LATE"]


def test_unknown_priority_ranks_like_low():
    assert priority_rank("rush") == 0
    assert priority_rank("HIGH") == 1
    assert priority_rank("normal") == 2
    assert priority_rank("low") == 3
    assert priority_rank("someday") == 3
    assert priority_rank(None) == 3
    assert priority_rank("vip", {"vip": 0}) == 0


def test_delay_flag_matches_due_date(now, make_request, one_machine):
    # 3 units, no part -> 50 min
    on_the_dot = make_request("A", quantity=3, due_in=timedelta(minutes=50))
    outcome = plan_jobs([on_the_dot], one_machine, now=now)
    assert outcome.jobs[0].status == "scheduled"

    too_tight = make_request("B", quantity=3, due_in=timedelta(minutes=49))
    outcome = plan_jobs([too_tight], one_machine, now=now)
    assert outcome.jobs[0].status == "delayed"

    requests = [make_request(f"R{i}", quantity=5, due_in=timedelta(hours=i)) for i in range(1, 8)]
    by_id = {r.request_id: r for r in requests}
    for job in plan_jobs(requests, one_machine, now=now).jobs:
        assert (job.status == "delayed") == (job.scheduled_end > by_id[job.request_id].due_date)


def test_single_machine_plan_never_overlaps(now, make_request, one_machine):
    requests = [make_request(f"R{i}", quantity=i + 1, due_in=timedelta(days=i + 1)) for i in range(6)]

    jobs = sorted(plan_jobs(requests, one_machine, now=now).jobs, key=lambda j: j.scheduled_start)

    for a, b in zip(jobs, jobs[1:]):
        assert a.scheduled_end <= b.scheduled_start


def test_earliest_free_machine_wins_with_first_machine_on_ties(now, make_request, two_machines):
    # each request: 20 + 10 = 30 min
    requests = [make_request(f"R{i}", due_in=timedelta(days=i)) for i in (1, 2, 3)]

    jobs = plan_jobs(requests, two_machines, now=now).jobs

    assert [(j.request_id, j.machine_id) for j in jobs] == [("R1", "M1"), ("R2", "M2"), ("R3", "M1")]
    assert jobs[2].scheduled_start == now + timedelta(minutes=30)


def test_non_operational_machines_are_ignored(now, make_request):
    machines = [Machine(machine_id="M1", status="down"), Machine(machine_id="M2")]
    jobs = plan_jobs([make_request("R1"), make_request("R2")], machines, now=now).jobs
    assert {j.machine_id for j in jobs} == {"M2"}


def test_operators_least_loaded_and_free(now, make_request, two_machines, two_operators):
    requests = [make_request(f"R{i}", due_in=timedelta(days=i)) for i in (1, 2, 3)]

    jobs = plan_jobs(requests, two_machines, two_operators, now=now).jobs

    # R1 and R2 run in parallel, so they need different operators
    assert [j.operator_id for j in jobs] == ["O1", "O2", "O1"]
    assert detect_conflicts(jobs) == []


def test_inactive_operators_are_never_assigned(now, make_request, one_machine):
    operators = [Operator(operator_id="O1", is_active=False), Operator(operator_id="O2")]
    jobs = plan_jobs([make_request("R1"), make_request("R2")], one_machine, operators, now=now).jobs
    assert {j.operator_id for j in jobs} == {"O2"}


def test_no_operators_means_no_assignment(now, make_request, one_machine):
    jobs = plan_jobs([make_request("R1")], one_machine, now=now).jobs
    assert jobs[0].operator_id is None


def test_round_robin_operator_policy(now, make_request, one_machine, two_operators):
    requests = [make_request(f"R{i}", due_in=timedelta(days=i)) for i in (1, 2, 3)]
    jobs = plan_jobs(requests, one_machine, two_operators, now=now, operator_policy="round_robin").jobs
    assert [j.operator_id for j in jobs] == ["O1", "O2", "O1"]

    with pytest.raises(InvalidInputError):
        plan_jobs(requests, one_machine, two_operators, now=now, operator_policy="random")


def test_invalid_quantity_rejects_the_whole_batch(now, make_request, one_machine):
    good = make_request("R1")
    bad = make_request("R2", quantity=0)
    with pytest.raises(InvalidInputError, match="R2"):
        plan_jobs([good, bad], one_machine, now=now)


def test_fractional_quantity_rejects_the_whole_batch(now, make_request, one_machine):
    with pytest.raises(InvalidInputError, match="R2: quantity must be a whole number"):
        plan_jobs([make_request("R1"), make_request("R2", quantity=2.5)], one_machine, now=now)


def test_duplicate_request_ids_are_rejected(now, make_request, one_machine):
    with pytest.raises(InvalidInputError, match="duplicate"):
        plan_jobs([make_request("R1"), make_request("R1")], one_machine, now=now)


def test_pinned_jobs_are_kept_and_planned_around(now, make_request, make_job, one_machine):
    running = make_job("job-OLD", machine_id="M1", offset=-60, minutes=120, status="in_progress")

    outcome = plan_jobs([make_request("R1")], one_machine, now=now, pinned=[running])

    assert outcome.jobs[0] is running
    new_job = outcome.jobs[1]
    assert new_job.scheduled_start == now + timedelta(minutes=60)
    assert detect_conflicts(outcome.jobs) == []


def test_cancelled_pinned_job_is_carried_but_holds_no_time(now, make_request, make_job, one_machine):
    cancelled = make_job("job-R1", machine_id="M1", offset=0, minutes=60, operator_id="O1", status="cancelled")

    outcome = plan_jobs(
        [make_request("R1"), make_request("R2")],
        one_machine,
        [Operator(operator_id="O1")],
        now=now,
        pinned=[cancelled],
    )

    assert [j.job_id for j in outcome.jobs] == ["job-R1", "job-R2"]
    assert outcome.jobs[0] is cancelled
    assert outcome.jobs[1].scheduled_start == now
    assert outcome.jobs[1].operator_id == "O1"


def test_machine_hint_overrides_earliest_free(now, make_request, two_machines):
    requests = [make_request("R1")]

    jobs = plan_jobs(requests, two_machines, now=now, machine_hint={"R1": "M2"}).jobs
    assert jobs[0].machine_id == "M2"

    # a hint to a machine that is not a candidate is ignored
    jobs = plan_jobs(requests, two_machines, now=now, machine_hint={"R1": "M9"}).jobs
    assert jobs[0].machine_id == "M1"


def test_clock_is_returned_and_input_clock_untouched(now, make_request, one_machine):
    clock = ResourceClock.starting_at(["M1"], now + timedelta(hours=1))

    outcome = plan_jobs([make_request("R1", quantity=2)], one_machine, now=now, clock=clock)

    assert outcome.jobs[0].scheduled_start == now + timedelta(hours=1)
    assert outcome.clock.peek("M1") == outcome.jobs[0].scheduled_end
    assert clock.peek("M1") == now + timedelta(hours=1)


def test_job_ids_and_carried_fields(now, make_request, one_machine):
    request = make_request("1042", quantity=2, part_type="cup", priority="high")
    job = plan_jobs([request], one_machine, now=now).jobs[0]

    assert job.job_id == "job-1042"
    assert job.request_id == "1042"
    assert job.part_type == "cup"
    assert job.due_date == request.due_date
    assert job.priority == 1
    assert (job.setup_minutes, job.run_minutes) == (30, 30)
