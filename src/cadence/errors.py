"""Exception types raised by Cadence.

Registration and configuration errors are raised synchronously by the call
that caused them. Execution errors stay inside the executor's retry loop and
only the final one is surfaced, through task history and ``fail`` events.
"""


class CadenceError(Exception):
    """Base class for all Cadence errors."""


class DuplicateNameError(CadenceError, ValueError):
    """A work function with this name is already defined."""

    def __init__(self, name: str):
        super().__init__(f"Task '{name}' is already defined")
        self.name = name


class UnknownTaskError(CadenceError, LookupError):
    """No work function is defined under this name."""

    def __init__(self, name: str):
        super().__init__(f"Task '{name}' is not defined")
        self.name = name


class InvalidIntervalError(CadenceError, ValueError):
    """An interval, calendar expression, timeout or retry count was rejected."""


class IntervalUndefinedError(CadenceError, ValueError):
    """A task was saved before its interval was set."""

    def __init__(self, name: str):
        super().__init__(f"Cannot save task '{name}' with the interval undefined")
        self.name = name


class TaskTimeoutError(CadenceError, TimeoutError):
    """An execution attempt did not finish within its timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"Task did not finish within {timeout:g} seconds")
        self.timeout = timeout


class ExecutionError(CadenceError):
    """The work function raised. The original exception is ``__cause__``."""
