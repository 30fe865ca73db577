"""Calendar (cron) expression evaluation.

The scheduler never parses calendar syntax itself. It talks to a
``CalendarEvaluator``; the default one is backed by croniter.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadDateError, croniter

from cadence.errors import InvalidIntervalError

logger = logging.getLogger(__name__)


class CalendarEvaluator(Protocol):
    def validate(self, expression: str) -> bool: ...

    def next(self, expression: str, after: datetime) -> datetime: ...


class CronEvaluator:
    """Evaluates cron expressions in a fixed IANA timezone.

    Expressions are evaluated in local time so that "0 8 * * *" means 8 AM
    local regardless of DST, then converted to UTC.
    """

    def __init__(self, timezone: str = "UTC"):
        try:
            self._tz = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("invalid_timezone", extra={"schedule.timezone": timezone})
            self._tz = ZoneInfo("UTC")
        self.timezone = self._tz.key

    def validate(self, expression: str) -> bool:
        """Syntactically valid and has at least one future occurrence."""
        if not croniter.is_valid(expression):
            return False
        try:
            croniter(expression, datetime.now(self._tz)).get_next(datetime)
        except CroniterBadDateError:
            return False
        return True

    def next(self, expression: str, after: datetime) -> datetime:
        """Next occurrence strictly after ``after``, in UTC.

        Raises:
            InvalidIntervalError: If the expression never fires again.
        """
        base_time = after.astimezone(self._tz)
        try:
            next_local = croniter(expression, base_time).get_next(datetime)
        except CroniterBadDateError as e:
            raise InvalidIntervalError(
                f'Calendar expression "{expression}" has no next occurrence'
            ) from e
        return next_local.astimezone(UTC)

    def upcoming(self, expression: str, after: datetime, count: int) -> list[datetime]:
        """The next ``count`` occurrences after ``after``, in UTC."""
        itr = croniter(expression, after.astimezone(self._tz))
        return [itr.get_next(datetime).astimezone(UTC) for _ in range(count)]


def compute_next_run(
    interval: float | str,
    after: datetime,
    evaluator: CalendarEvaluator,
) -> datetime:
    """Next run time for a numeric interval (seconds) or calendar expression."""
    if isinstance(interval, str):
        return evaluator.next(interval, after)
    return after + timedelta(seconds=interval)
