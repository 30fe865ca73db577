"""Scheduling subsystem for in-process task execution.

Public API:
- Scheduler: Owns the queue, registry and poll loop
- TaskBuilder: Immutable staged task configuration
- TaskRegistry: Named work functions
- SchedulerQueue: Task ids ordered by next run time
- EventBus: Lifecycle notifications (start, success, fail, complete)
- CronEvaluator: croniter-backed calendar evaluator
- JsonlTaskStore: Optional task document persistence
- execute: Retry/timeout execution of a work function

Types:
- Task, TaskOptions, RunState, HistoryRecord
"""

from cadence.scheduling.builder import TaskBuilder
from cadence.scheduling.calendar import CalendarEvaluator, CronEvaluator
from cadence.scheduling.events import EventBus
from cadence.scheduling.executor import execute
from cadence.scheduling.queue import SchedulerQueue
from cadence.scheduling.registry import TaskRegistry
from cadence.scheduling.scheduler import Scheduler
from cadence.scheduling.store import JsonlTaskStore, TaskPersistence
from cadence.scheduling.timer import Timer
from cadence.scheduling.types import HistoryRecord, RunState, Task, TaskOptions

__all__ = [
    "CalendarEvaluator",
    "CronEvaluator",
    "EventBus",
    "HistoryRecord",
    "JsonlTaskStore",
    "RunState",
    "Scheduler",
    "SchedulerQueue",
    "Task",
    "TaskBuilder",
    "TaskOptions",
    "TaskPersistence",
    "TaskRegistry",
    "Timer",
    "execute",
]
