from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from prodsched.core.errors import SchedulingError
from prodsched.core.models import ScheduleResult
from prodsched.data.config_repository import ConfigRepository
from prodsched.data.db import Db
from prodsched.data.excel_io import read_snapshot_file
from prodsched.engine import SchedulingSession
from prodsched.logging_conf import configure_logging
from prodsched.settings import Settings, default_db_path


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Production scheduler")
    parser.add_argument("--db", type=Path, default=None, help="config database (default: db/prodsched.db)")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None, help="also append log records to this file")
    sub = parser.add_subparsers(dest="cmd", required=True)

    for name, help_text in (
        ("plan", "Plan a snapshot and report conflicts"),
        ("optimize", "Plan, then optimize the snapshot"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--snapshot", type=Path, required=True, help="xlsx with requests/machines/operators/parts sheets")
        p.add_argument("--now", type=datetime.fromisoformat, default=None, help="planning start (ISO), default: now")

    return parser


def format_result(result: ScheduleResult) -> list[str]:
    lines = []
    for job in sorted(result.jobs, key=lambda j: (j.machine_id, j.scheduled_start)):
        lines.append(
            f"{job.job_id}\t{job.machine_id}\t{job.operator_id or '-'}\t"
            f"{job.scheduled_start:%Y-%m-%d %H:%M}\t{job.scheduled_end:%Y-%m-%d %H:%M}\t"
            f"{job.setup_minutes}+{job.run_minutes}min\t{job.status}"
        )
    for w in result.warnings:
        lines.append(f"WARNING\t{w.request_id}\t{w.reason}")
    for c in result.conflicts:
        lines.append(f"CONFLICT\t{c.type}/{c.severity}\t{c.job1.job_id}\t{c.job2.job_id}\t{c.resolution}")
    return lines


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    settings = Settings(db_path=args.db or default_db_path(), log_level=args.log_level, log_file=args.log_file)
    configure_logging(settings.log_level, log_file=settings.log_file)

    db = Db(settings.db_path)
    db.ensure_schema()
    config = ConfigRepository(db)

    try:
        snapshot = read_snapshot_file(args.snapshot)
        session = SchedulingSession.from_config(config)
        result = session.plan(snapshot.requests, snapshot.machines, snapshot.operators, now=args.now)
        if args.cmd == "optimize":
            result = session.optimize(now=args.now)
    except SchedulingError as exc:
        logger.error("Scheduling failed: %s", exc)
        return 2
    except (OSError, ValueError) as exc:
        logger.error("Run aborted (snapshot %s): %s", args.snapshot, exc)
        return 1

    for line in format_result(result):
        print(line)
    if args.cmd == "optimize":
        print(f"conflicts resolved: {result.conflicts_resolved}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
