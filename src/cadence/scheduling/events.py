"""Lifecycle event bus.

Every dispatch publishes a global event and a variant namespaced by task
name, e.g. ``start`` and ``start:send_report``. Handlers are isolated from
each other and from the scheduler: a failing handler is logged and skipped.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

START = "start"
SUCCESS = "success"
FAIL = "fail"
COMPLETE = "complete"

LIFECYCLE_EVENTS = (START, SUCCESS, FAIL, COMPLETE)

EventHandler = Callable[..., Any]


def namespaced(event: str, task_name: str) -> str:
    """Per-task variant of a lifecycle event, e.g. ``fail:cleanup``."""
    return f"{event}:{task_name}"


class EventBus:
    """Broadcasts events to subscribers in registration order.

    Example:
        bus = EventBus()

        @bus.listener("complete")
        def on_complete(task):
            print(task.id)

        bus.emit("complete", task)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def on(self, event: str, handler: EventHandler) -> EventHandler:
        self._handlers[event].append(handler)
        return handler

    def listener(self, event: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of ``on``."""

        def decorator(handler: EventHandler) -> EventHandler:
            return self.on(event, handler)

        return decorator

    def off(self, event: str, handler: EventHandler) -> bool:
        handlers = self._handlers.get(event)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, *args: Any) -> None:
        """Call every handler for ``event``. Never raises."""
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(*args)
            except Exception:
                logger.exception("event_handler_error", extra={"event.name": event})
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

    def _schedule(self, event: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop to drive the coroutine
            logger.error("event_handler_not_scheduled", extra={"event.name": event})
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        pending = asyncio.ensure_future(awaitable, loop=loop)

        self._pending.add(pending)

        def _done(fut: asyncio.Future) -> None:
            self._pending.discard(pending)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(
                    "event_handler_error",
                    exc_info=exc,
                    extra={"event.name": event},
                )

        pending.add_done_callback(_done)
