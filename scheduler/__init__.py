"""Generic interval scheduler."""
from scheduler.scheduler import (
    Scheduler,
    IntervalScheduler,
    Job,
    SchedulerError,
    InvalidIntervalError,
    NilJobError,
    AlreadyRunningError,
    NotRunningError,
    DEFAULT_STOP_TIMEOUT,
)

__all__ = [
    "Scheduler", "IntervalScheduler", "Job",
    "SchedulerError", "InvalidIntervalError", "NilJobError",
    "AlreadyRunningError", "NotRunningError",
    "DEFAULT_STOP_TIMEOUT",
]
