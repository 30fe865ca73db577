"""Scheduler: owns the queue, the registry and the adaptive poll loop.

The loop is driven by one re-armable timer. Each wake-up makes exactly one
decision (idle, back off, or dispatch the head of the queue) and arms exactly
one new wake-up, so ``_process`` never interleaves with itself.

Dispatched executions run as asyncio tasks alongside later poll cycles. The
running count is the only state they share with the loop: it is incremented
once at dispatch and decremented once in the finalization ``finally``.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from cadence.config.models import CadenceConfig
from cadence.errors import IntervalUndefinedError, UnknownTaskError
from cadence.scheduling.builder import TaskBuilder, validate_options
from cadence.scheduling.calendar import (
    CalendarEvaluator,
    CronEvaluator,
    compute_next_run,
)
from cadence.scheduling.events import (
    COMPLETE,
    FAIL,
    START,
    SUCCESS,
    EventBus,
    EventHandler,
    namespaced,
)
from cadence.scheduling.executor import execute
from cadence.scheduling.queue import SchedulerQueue
from cadence.scheduling.registry import TaskRegistry
from cadence.scheduling.store import JsonlTaskStore, TaskPersistence
from cadence.scheduling.timer import Timer
from cadence.scheduling.types import (
    HistoryRecord,
    RunState,
    Task,
    TaskOptions,
    WorkFunction,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Scheduler:
    """In-process task scheduler.

    Example:
        scheduler = Scheduler(CadenceConfig(max_concurrency=5))
        scheduler.define("cleanup", cleanup)

        @scheduler.listener("fail:cleanup")
        def alert(task, error):
            ...

        scheduler.start()
        scheduler.every(60, "cleanup", {"dir": "/tmp"})
        ...
        await scheduler.shutdown()

    All methods must be called from the thread running the event loop.
    """

    def __init__(
        self,
        config: CadenceConfig | None = None,
        *,
        evaluator: CalendarEvaluator | None = None,
        store: TaskPersistence | None = None,
        clock: Clock | None = None,
        timer: Timer | None = None,
    ):
        self._config = config or CadenceConfig()
        self._evaluator = evaluator or CronEvaluator(self._config.timezone)
        if store is None and self._config.store_path is not None:
            store = JsonlTaskStore(self._config.store_path)
        self._store = store
        self._clock = clock or _utcnow
        self._timer = timer or Timer()

        self._registry = TaskRegistry()
        self._queue = SchedulerQueue()
        self._tasks: dict[str, Task] = {}
        self._events = EventBus()

        self._started = False
        self._running = 0
        self._executions: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> CadenceConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def evaluator(self) -> CalendarEvaluator:
        return self._evaluator

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def queue(self) -> SchedulerQueue:
        return self._queue

    @property
    def store(self) -> TaskPersistence | None:
        return self._store

    @property
    def running(self) -> int:
        """Number of executions currently in flight."""
        return self._running

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def tasks(self) -> dict[str, Task]:
        return dict(self._tasks)

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def is_queued(self, task_id: str) -> bool:
        return task_id in self._queue

    def stats(self) -> dict[str, Any]:
        return {
            "tasks": len(self._tasks),
            "queued": len(self._queue),
            "running": self._running,
            "max_concurrency": self._config.max_concurrency,
            "started": self._started,
        }

    # ------------------------------------------------------------------
    # Registration and events
    # ------------------------------------------------------------------

    def define(self, name: str, fn: WorkFunction) -> None:
        self._registry.define(name, fn)

    def on(self, event: str, handler: EventHandler) -> EventHandler:
        return self._events.on(event, handler)

    def off(self, event: str, handler: EventHandler) -> bool:
        return self._events.off(event, handler)

    def listener(self, event: str) -> Callable[[EventHandler], EventHandler]:
        return self._events.listener(event)

    # ------------------------------------------------------------------
    # Task construction
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        payload: Any = None,
        options: TaskOptions | None = None,
    ) -> TaskBuilder:
        """Start configuring a task for a defined work function.

        Raises:
            UnknownTaskError: If ``name`` was never defined.
        """
        if not self._registry.has(name):
            raise UnknownTaskError(name)
        return TaskBuilder(self, name, payload, options or TaskOptions())

    def now(
        self,
        name: str,
        payload: Any = None,
        *,
        timeout: float | timedelta | None = None,
        retries: int = 0,
    ) -> Task:
        """Run once, as soon as possible."""
        return (
            self.create(name, payload)
            .interval(0)
            .repeat(False)
            .timeout(timeout)
            .retries(retries)
            .save()
        )

    def every(
        self,
        interval: float | timedelta,
        name: str,
        payload: Any = None,
        *,
        timeout: float | timedelta | None = None,
        retries: int = 0,
    ) -> Task:
        """Run now, then every ``interval`` seconds after each dispatch."""
        return (
            self.create(name, payload)
            .interval(interval)
            .repeat()
            .timeout(timeout)
            .retries(retries)
            .save()
        )

    def schedule(
        self,
        expression: str,
        name: str,
        payload: Any = None,
        repeat: bool = True,
        *,
        timeout: float | timedelta | None = None,
        retries: int = 0,
    ) -> Task:
        """Run on a calendar expression, starting at its next occurrence."""
        return (
            self.create(name, payload)
            .interval(expression)
            .repeat(repeat)
            .skip_immediate()
            .timeout(timeout)
            .retries(retries)
            .save()
        )

    # ------------------------------------------------------------------
    # Task table
    # ------------------------------------------------------------------

    def save(self, task: Task) -> Task:
        """Compute ``next_run_at`` and (re)insert the task into the queue.

        Saving an already queued task moves it to its new position.

        Raises:
            IntervalUndefinedError: If the task has no interval.
            InvalidIntervalError: Negative interval, timeout or retries, or a
                calendar expression the evaluator rejects.
            UnknownTaskError: If the task's work function is not defined.
        """
        interval = task.options.interval
        if interval is None:
            raise IntervalUndefinedError(task.name)
        validate_options(task.options, self._evaluator)
        if not self._registry.has(task.name):
            raise UnknownTaskError(task.name)

        task._scheduler = self
        now = self._clock()
        if task.options.immediate:
            task.next_run_at = now
        else:
            task.next_run_at = compute_next_run(interval, now, self._evaluator)

        self._tasks[task.id] = task
        self._queue.insert(task.id, task.next_run_at, self._lookup)
        logger.debug(
            "task_saved",
            extra={
                "task.id": task.id,
                "task.name": task.name,
                "task.next_run_at": task.next_run_at.isoformat(),
            },
        )
        self._sync(task)

        if self._started:
            self._arm(0)
        return task

    def remove(self, task_id: str) -> bool:
        """Drop a task from the queue and the task table.

        In-flight executions of the task still run to completion.
        """
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        self._queue.remove(task_id)
        logger.info("task_removed", extra={"task.id": task_id, "task.name": task.name})

        if self._store is not None:
            try:
                self._store.remove(task_id)
            except Exception:
                logger.warning(
                    "task_sync_failed", exc_info=True, extra={"task.id": task_id}
                )
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the poll loop. Must be called with a running event loop."""
        if self._started:
            return
        # Fails fast without a running loop
        asyncio.get_running_loop()
        self._started = True
        logger.info(
            "scheduler_started",
            extra={
                "scheduler.max_concurrency": self._config.max_concurrency,
                "scheduler.queued": len(self._queue),
            },
        )
        self._arm(0)

    def stop(self) -> None:
        """Stop dispatching. In-flight executions are left to finish."""
        if not self._started:
            return
        self._started = False
        self._timer.cancel()
        logger.info("scheduler_stopped", extra={"scheduler.running": self._running})

    async def join(self) -> None:
        """Wait until every dispatched execution has finalized."""
        while self._executions:
            await asyncio.gather(*list(self._executions), return_exceptions=True)

    async def shutdown(self) -> None:
        self.stop()
        await self.join()

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    def _lookup(self, task_id: str) -> Task:
        return self._tasks[task_id]

    def _arm(self, delay: float) -> None:
        self._timer.arm(delay, self._process)

    def _process(self) -> None:
        """One wake-up: decide, then arm exactly one next wake-up."""
        try:
            delay = self._tick()
        except Exception:
            logger.exception("scheduler_process_error")
            delay = self._config.poll_interval

        if self._started:
            self._arm(delay)

    def _tick(self) -> float:
        """Dispatch the head task if possible; return the next wake-up delay."""
        if not self._queue:
            return self._config.poll_interval

        if self._running >= self._config.max_concurrency:
            return self._config.poll_interval

        now = self._clock()
        delta = self._queue.peek_delta(self._lookup, now)
        if delta is not None and delta > 0:
            return min(delta, self._config.poll_interval_cap)

        task_id = self._queue.pop_earliest()
        if task_id is None:
            return self._config.poll_interval
        self._dispatch(self._tasks[task_id], now)

        # Drain any further due work before idling
        return 0.0

    def _dispatch(self, task: Task, now: datetime) -> None:
        task.in_flight += 1
        task.run_state = RunState.RUNNING
        task.started_at = now
        self._running += 1

        logger.info(
            "task_dispatched",
            extra={
                "task.id": task.id,
                "task.name": task.name,
                "scheduler.running": self._running,
            },
        )
        self._emit(START, task)

        execution = asyncio.get_running_loop().create_task(
            self._run(task), name=f"cadence:{task.name}:{task.id}"
        )
        self._executions.add(execution)
        execution.add_done_callback(self._executions.discard)

        # Rescheduled from the dispatch instant, not completion, so a slow
        # execution can overlap with its next occurrence.
        if task.options.repeat and task.id in self._tasks:
            self._reschedule(task, now)

        self._sync(task)

    def _reschedule(self, task: Task, now: datetime) -> None:
        interval = task.options.interval
        if interval is None:
            return
        try:
            task.next_run_at = compute_next_run(interval, now, self._evaluator)
        except Exception:
            logger.exception(
                "task_reschedule_failed",
                extra={"task.id": task.id, "task.name": task.name},
            )
            return
        self._queue.insert(task.id, task.next_run_at, self._lookup)

    async def _run(self, task: Task) -> None:
        """Execute and finalize one dispatch of ``task``."""
        try:
            fn = self._registry.resolve(task.name)
            result = await execute(
                fn,
                task.payload,
                retries=task.options.retries,
                timeout=task.options.timeout,
                retry_delay=self._config.retry_delay,
                operation_name=task.name,
            )
        except Exception as e:
            task.history.append(
                HistoryRecord(
                    timestamp=self._clock(),
                    error=str(e),
                    error_type=type(e).__name__,
                )
            )
            logger.warning(
                "task_failed",
                extra={
                    "task.id": task.id,
                    "task.name": task.name,
                    "error.message": str(e),
                    "error.type": type(e).__name__,
                },
            )
            self._emit(FAIL, task, e)
        else:
            logger.info(
                "task_succeeded", extra={"task.id": task.id, "task.name": task.name}
            )
            self._emit(SUCCESS, task, result)
        finally:
            task.in_flight -= 1
            if task.in_flight == 0:
                task.run_state = RunState.IDLE
            task.finished_at = self._clock()
            self._running -= 1
            self._sync(task)
            self._emit(COMPLETE, task)

    def _emit(self, event: str, task: Task, *args: Any) -> None:
        self._events.emit(event, task, *args)
        self._events.emit(namespaced(event, task.name), task, *args)

    def _sync(self, task: Task) -> None:
        if self._store is None or task.id not in self._tasks:
            return
        try:
            self._store.upsert(task.id, task.to_dict())
        except Exception:
            logger.warning(
                "task_sync_failed",
                exc_info=True,
                extra={"task.id": task.id, "task.name": task.name},
            )
