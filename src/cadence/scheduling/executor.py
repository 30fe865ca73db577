"""Execution of work functions with retry and timeout.

The executor only reports an outcome: it returns the result of the first
successful attempt or raises the error of the last one. What happens next
(history, events, rescheduling) is decided by the scheduler.

Timeouts are a race, not a cancellation. When an attempt times out the
invocation is left running in the background and only the wait is abandoned.
Sync work functions run in a worker thread, which Python cannot interrupt
either; a timed-out sync function keeps its thread until it returns.
"""

import asyncio
import inspect
import logging
from typing import Any

from cadence.errors import ExecutionError, TaskTimeoutError
from cadence.scheduling.types import WorkFunction

logger = logging.getLogger(__name__)


async def execute(
    fn: WorkFunction,
    payload: Any,
    *,
    retries: int = 0,
    timeout: float | None = None,
    retry_delay: float = 0.0,
    operation_name: str = "task",
) -> Any:
    """Run ``fn(payload)`` with up to ``retries`` additional attempts.

    Args:
        fn: Work function, sync or async.
        payload: Value passed to the work function.
        retries: Extra attempts after the first failure.
        timeout: Per-attempt timeout in seconds. None or <= 0 disables it.
        retry_delay: Seconds to wait between attempts (0 retries immediately).
        operation_name: Name for logging.

    Returns:
        The result of the first successful attempt.

    Raises:
        ExecutionError: The last attempt raised; the original is ``__cause__``.
        TaskTimeoutError: The last attempt exceeded ``timeout``.
    """
    attempt = 0
    remaining = max(0, retries)

    while True:
        attempt += 1
        try:
            return await _attempt(fn, payload, timeout)
        except (ExecutionError, TaskTimeoutError) as e:
            if remaining == 0:
                if attempt > 1:
                    logger.warning(
                        "retry_exhausted",
                        extra={
                            "operation": operation_name,
                            "attempts": attempt,
                            "error.message": str(e),
                            "error.type": type(e).__name__,
                        },
                    )
                raise

            remaining -= 1
            logger.info(
                "retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_attempts": attempt + 1 + remaining,
                    "retry_delay_s": retry_delay,
                    "error.message": str(e),
                    "error.type": type(e).__name__,
                },
            )
            if retry_delay > 0:
                await asyncio.sleep(retry_delay)


async def _attempt(fn: WorkFunction, payload: Any, timeout: float | None) -> Any:
    if not timeout or timeout <= 0:
        return await _invoke(fn, payload)

    invocation = asyncio.ensure_future(_invoke(fn, payload))
    done, _ = await asyncio.wait({invocation}, timeout=timeout)
    if invocation in done:
        return invocation.result()

    invocation.add_done_callback(_log_abandoned)
    raise TaskTimeoutError(timeout)


async def _invoke(fn: WorkFunction, payload: Any) -> Any:
    try:
        if inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
            getattr(fn, "__call__", None)
        ):
            return await fn(payload)
        result = await asyncio.to_thread(fn, payload)
        if inspect.isawaitable(result):
            return await result
        return result
    except Exception as e:
        raise ExecutionError(str(e) or type(e).__name__) from e


def _log_abandoned(invocation: asyncio.Future) -> None:
    """Retrieve the outcome of a timed-out invocation that finished later."""
    if invocation.cancelled():
        return
    exc = invocation.exception()
    if exc is not None:
        logger.debug(
            "abandoned_attempt_failed",
            extra={"error.message": str(exc), "error.type": type(exc).__name__},
        )
    else:
        logger.debug("abandoned_attempt_finished")
