"""Staged, immutable task configuration.

Each call returns a new builder, so a half-configured task never reaches the
queue. ``save()`` turns the final configuration into a scheduled ``Task``.

Example:
    task = (
        scheduler.create("send_report", {"to": "ops"})
        .interval("0 8 * * *")
        .repeat()
        .skip_immediate()
        .retries(2)
        .timeout(30)
        .save()
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from cadence.errors import IntervalUndefinedError, InvalidIntervalError
from cadence.scheduling.types import Task, TaskOptions, to_seconds

if TYPE_CHECKING:
    from cadence.scheduling.calendar import CalendarEvaluator
    from cadence.scheduling.scheduler import Scheduler


def _check_expression(expression: str, evaluator: CalendarEvaluator) -> None:
    if not evaluator.validate(expression):
        raise InvalidIntervalError(
            f'Calendar expression provided "{expression}" is not valid'
        )


def _check_non_negative(label: str, value: float) -> None:
    if value < 0:
        raise InvalidIntervalError(f"{label} must be a non-negative number")


def validate_options(options: TaskOptions, evaluator: CalendarEvaluator) -> None:
    """Check options that bypassed the builder (e.g. passed to ``create``).

    Raises:
        InvalidIntervalError: Negative interval, timeout or retries, or an
            expression the evaluator rejects.
    """
    if isinstance(options.interval, str):
        _check_expression(options.interval, evaluator)
    elif options.interval is not None:
        _check_non_negative("Interval", options.interval)
    if options.timeout is not None:
        _check_non_negative("Timeout", options.timeout)
    _check_non_negative("Retries", options.retries)


@dataclass(frozen=True)
class TaskBuilder:
    scheduler: Scheduler = field(repr=False)
    name: str
    payload: Any = None
    options: TaskOptions = field(default_factory=TaskOptions)

    def _with(self, **changes: Any) -> TaskBuilder:
        return replace(self, options=replace(self.options, **changes))

    def interval(self, interval: float | timedelta | str) -> TaskBuilder:
        """Set a numeric interval (seconds) or a calendar expression.

        Raises:
            InvalidIntervalError: Negative interval or invalid expression.
        """
        if isinstance(interval, str):
            _check_expression(interval, self.scheduler.evaluator)
            return self._with(interval=interval)

        seconds = to_seconds(interval)
        _check_non_negative("Interval", seconds)
        return self._with(interval=seconds)

    def repeat(self, repeat: bool = True) -> TaskBuilder:
        return self._with(repeat=repeat)

    def immediate(self, immediate: bool = True) -> TaskBuilder:
        return self._with(immediate=immediate)

    def skip_immediate(self) -> TaskBuilder:
        """Wait for the first interval/occurrence instead of running now."""
        return self._with(immediate=False)

    def timeout(self, timeout: float | timedelta | None) -> TaskBuilder:
        if timeout is None:
            return self._with(timeout=None)
        seconds = to_seconds(timeout)
        _check_non_negative("Timeout", seconds)
        return self._with(timeout=seconds or None)

    def retries(self, retries: int) -> TaskBuilder:
        _check_non_negative("Retries", retries)
        return self._with(retries=int(retries))

    def build(self) -> Task:
        """Create the (unscheduled) task bound to the scheduler."""
        return Task(
            name=self.name,
            payload=self.payload,
            options=self.options,
            created_at=self.scheduler.clock(),
            _scheduler=self.scheduler,
        )

    def save(self) -> Task:
        """Create the task and schedule it.

        Raises:
            IntervalUndefinedError: If ``interval`` was never set.
        """
        if self.options.interval is None:
            raise IntervalUndefinedError(self.name)
        return self.scheduler.save(self.build())
