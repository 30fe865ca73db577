"""Cadence - in-process task scheduling."""

from cadence.errors import (
    CadenceError,
    DuplicateNameError,
    ExecutionError,
    IntervalUndefinedError,
    InvalidIntervalError,
    TaskTimeoutError,
    UnknownTaskError,
)
from cadence.scheduling import Scheduler, Task, TaskOptions

__version__ = "0.1.0"

__all__ = [
    "CadenceError",
    "DuplicateNameError",
    "ExecutionError",
    "IntervalUndefinedError",
    "InvalidIntervalError",
    "Scheduler",
    "Task",
    "TaskOptions",
    "TaskTimeoutError",
    "UnknownTaskError",
    "__version__",
]
