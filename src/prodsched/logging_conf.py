from __future__ import annotations

import logging
import sys
from pathlib import Path


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# workbook reads log every unknown extension at INFO/WARNING
QUIET_LOGGERS = {"openpyxl": logging.ERROR}


def resolve_level(level: str | int) -> int | None:
    """'debug', 'INFO', 20 -> numeric level; None when the name is unknown."""
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(str(level).strip().upper())
    return numeric if isinstance(numeric, int) else None


def configure_logging(level: str | int = "INFO", *, log_file: Path | str | None = None) -> None:
    """Configures the root logger for the CLI.

    Records go to stderr: stdout carries the schedule itself, so it can be
    piped or redirected without log lines mixed in. `log_file` adds a second
    handler appending to that file.
    """
    numeric_level = resolve_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level if numeric_level is not None else logging.INFO)

    # Called again (e.g. from tests): drop our previous handlers, closing files
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    if numeric_level is None:
        logging.getLogger(__name__).warning("Invalid log level %r, defaulting to INFO", level)
