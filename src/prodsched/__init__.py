"""Production scheduling and conflict-detection engine."""

from prodsched.engine import SchedulingSession

__all__ = ["SchedulingSession"]

__version__ = "0.1.0"
