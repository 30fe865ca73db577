"""Pending-work queue ordered by next run time."""

from collections.abc import Callable, Iterator
from datetime import datetime

from cadence.scheduling.types import Task

TaskLookup = Callable[[str], Task]


class SchedulerQueue:
    """Task ids sorted ascending by ``next_run_at``.

    Insertion is a linear scan. Equal run times keep insertion order.
    """

    def __init__(self) -> None:
        self._ids: list[str] = []

    def insert(self, task_id: str, next_run_at: datetime, lookup: TaskLookup) -> None:
        """Insert ``task_id`` at its ordered position.

        An id already in the queue is moved rather than duplicated.
        """
        if task_id in self._ids:
            self._ids.remove(task_id)

        if not self._ids:
            self._ids.append(task_id)
            return

        # First entry strictly later than the new one; ties go after.
        idx = next(
            (
                i
                for i, queued_id in enumerate(self._ids)
                if next_run_at < _run_time(lookup(queued_id))
            ),
            len(self._ids),
        )
        self._ids.insert(idx, task_id)

    def pop_earliest(self) -> str | None:
        if not self._ids:
            return None
        return self._ids.pop(0)

    def peek(self) -> str | None:
        return self._ids[0] if self._ids else None

    def peek_delta(self, lookup: TaskLookup, now: datetime) -> float | None:
        """Seconds until the head task is due; <= 0 means due now."""
        head = self.peek()
        if head is None:
            return None
        return lookup(head).delta(now)

    def remove(self, task_id: str) -> bool:
        try:
            self._ids.remove(task_id)
        except ValueError:
            return False
        return True

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._ids


def _run_time(task: Task) -> datetime:
    if task.next_run_at is None:
        raise ValueError(f"Queued task {task.id} has no next_run_at")
    return task.next_run_at
