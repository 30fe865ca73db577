"""Registry of named work functions."""

import logging

from cadence.errors import DuplicateNameError, UnknownTaskError
from cadence.scheduling.types import WorkFunction

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Maps work-function names to callables.

    Names are unique and there is no unregister.
    """

    def __init__(self) -> None:
        self._functions: dict[str, WorkFunction] = {}

    def define(self, name: str, fn: WorkFunction) -> None:
        if name in self._functions:
            raise DuplicateNameError(name)
        self._functions[name] = fn
        logger.debug(f"Defined task function: {name}")

    def resolve(self, name: str) -> WorkFunction:
        if name not in self._functions:
            raise UnknownTaskError(name)
        return self._functions[name]

    def has(self, name: str) -> bool:
        return name in self._functions

    @property
    def names(self) -> list[str]:
        return list(self._functions.keys())

    def __len__(self) -> int:
        return len(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions
