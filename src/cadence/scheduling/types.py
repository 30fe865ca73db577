"""Task types.

Public types:
- Task: A schedulable unit of work and its run-state
- TaskOptions: Immutable scheduling/execution options
- RunState: Idle or Running
- HistoryRecord: One exhausted failure of a task
- WorkFunction: Sync or async callable receiving the task payload
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cadence.scheduling.scheduler import Scheduler

WorkFunction = Callable[[Any], Any | Awaitable[Any]]

Duration = float | int | timedelta


def to_seconds(value: Duration) -> float:
    """Normalize a duration to float seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def new_task_id() -> str:
    return uuid.uuid4().hex


class RunState(StrEnum):
    """Task run-state. IDLE is both the initial and the per-cycle terminal state."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class TaskOptions:
    """Scheduling and execution options.

    ``interval`` is either a non-negative number of seconds or a calendar
    (cron) expression. ``None`` means not yet resolved.
    """

    interval: float | str | None = None
    repeat: bool = False
    immediate: bool = True
    timeout: float | None = None
    retries: int = 0

    @property
    def is_calendar(self) -> bool:
        return isinstance(self.interval, str)

    def to_dict(self) -> dict[str, Any]:
        return {
            "interval": self.interval,
            "repeat": self.repeat,
            "immediate": self.immediate,
            "timeout": self.timeout,
            "retries": self.retries,
        }


@dataclass(frozen=True)
class HistoryRecord:
    """A final (retries exhausted) failure."""

    timestamp: datetime
    error: str
    error_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass(eq=False)
class Task:
    """A schedulable unit of work.

    ``id``, ``name`` and ``payload`` never change after creation. The
    scheduler owns ``next_run_at``, ``run_state`` and the timestamps.
    """

    name: str
    payload: Any = None
    options: TaskOptions = field(default_factory=TaskOptions)
    id: str = field(default_factory=new_task_id)
    next_run_at: datetime | None = None
    run_state: RunState = RunState.IDLE
    history: list[HistoryRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    # Executions of this task currently in flight (repeats may overlap)
    in_flight: int = 0
    _scheduler: Scheduler | None = field(default=None, repr=False)

    @property
    def is_running(self) -> bool:
        return self.run_state == RunState.RUNNING

    def save(self) -> Task:
        """Schedule (or reschedule) this task on its scheduler.

        Raises:
            IntervalUndefinedError: If the interval was never set.
            RuntimeError: If the task is not bound to a scheduler.
        """
        if self._scheduler is None:
            raise RuntimeError(f"Task {self.id} is not bound to a scheduler")
        return self._scheduler.save(self)

    def delta(self, now: datetime) -> float:
        """Seconds until the next run; -1 if the task is not scheduled."""
        if self.next_run_at is None:
            return -1
        return (self.next_run_at - now).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a task document (without the scheduler reference)."""
        return {
            "id": self.id,
            "name": self.name,
            "payload": self.payload,
            "options": self.options.to_dict(),
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "run_state": self.run_state.value,
            "history": [record.to_dict() for record in self.history],
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
