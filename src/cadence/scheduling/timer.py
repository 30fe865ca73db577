"""Single-shot wake-up timer on the running event loop."""

import asyncio
from collections.abc import Callable


class Timer:
    """Holds at most one pending callback.

    Arming always cancels the previous handle first, so there is never more
    than one outstanding wake-up.
    """

    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None
        self._delay: float | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None and not self._handle.cancelled()

    @property
    def delay(self) -> float | None:
        """Delay of the most recently armed wake-up, in seconds."""
        return self._delay

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._delay = max(0.0, delay)
        self._handle = loop.call_later(self._delay, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        callback()
