from __future__ import annotations

import shutil
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from prodsched.core.models import Machine, Operator, Part, ProductionRequest, ScheduledJob
from prodsched.data.config_repository import ConfigRepository
from prodsched.data.db import Db


NOW = datetime(2026, 1, 5, 8, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_request():
    """Factory for requests; due dates are relative to NOW."""

    def _make(
        request_id: str,
        *,
        quantity: int = 1,
        priority: str = "normal",
        due_in: timedelta = timedelta(days=5),
        part_type: str | None = None,
        customer: str = "ACME Audio",
    ) -> ProductionRequest:
        part = Part(part_id=f"PART-{part_type}", part_name=f"{part_type} part", part_type=part_type) if part_type else None
        return ProductionRequest(
            request_id=request_id,
            customer_name=customer,
            part=part,
            quantity=quantity,
            due_date=NOW + due_in,
            priority=priority,
        )

    return _make


@pytest.fixture
def make_job():
    """Factory for jobs placed `offset` minutes after NOW."""

    def _make(
        job_id: str,
        *,
        machine_id: str = "M1",
        offset: int = 0,
        minutes: int = 60,
        operator_id: str | None = None,
        status: str = "scheduled",
        due_in: timedelta = timedelta(days=5),
    ) -> ScheduledJob:
        start = NOW + timedelta(minutes=offset)
        return ScheduledJob(
            job_id=job_id,
            request_id=job_id.removeprefix("job-"),
            machine_id=machine_id,
            operator_id=operator_id,
            scheduled_start=start,
            scheduled_end=start + timedelta(minutes=minutes),
            setup_minutes=10,
            run_minutes=minutes - 10,
            status=status,
            priority=2,
            due_date=NOW + due_in,
        )

    return _make


@pytest.fixture
def one_machine() -> list[Machine]:
    return [Machine(machine_id="M1", machine_name="Mill 1", machine_type="CNC Mill")]


@pytest.fixture
def two_machines() -> list[Machine]:
    return [
        Machine(machine_id="M1", machine_name="Mill 1", machine_type="CNC Mill"),
        Machine(machine_id="M2", machine_name="Lathe 1", machine_type="Lathe"),
    ]


@pytest.fixture
def two_operators() -> list[Operator]:
    return [Operator(operator_id="O1", name="Ana"), Operator(operator_id="O2", name="Luis")]


@pytest.fixture
def temp_db():
    tmpdir = tempfile.mkdtemp()
    db = Db(Path(tmpdir) / "test.db")
    db.ensure_schema()
    yield db
    import gc
    gc.collect()
    try:
        shutil.rmtree(tmpdir)
    except PermissionError:
        pass


@pytest.fixture
def config(temp_db) -> ConfigRepository:
    return ConfigRepository(temp_db)
