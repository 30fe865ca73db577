"""Optional persistence for task documents.

The scheduler works without a store. When one is attached it receives a
task document after every state-affecting change. Store failures are logged
by the scheduler and never interrupt scheduling.
"""

from __future__ import annotations

import fcntl
import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Protocol

logger = logging.getLogger(__name__)

TaskDocument = dict[str, Any]


class TaskPersistence(Protocol):
    def upsert(self, task_id: str, document: TaskDocument) -> None: ...

    def remove(self, task_id: str) -> bool: ...


class JsonlTaskStore:
    """Task documents in a JSONL file, one document per line.

    Every write rewrites the file under an exclusive lock on a sibling
    ``.lock`` file. `cat tasks.jsonl` shows the last synced state of every
    task.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()
        self._lock_file = self._path.with_name(f".{self._path.name}.lock")

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_documents(self) -> list[TaskDocument]:
        return list(self._read().values())

    def get_document(self, task_id: str) -> TaskDocument | None:
        return self._read().get(task_id)

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def upsert(self, task_id: str, document: TaskDocument) -> None:
        # Serialize before taking the lock so bad payloads fail fast
        line = json.dumps(document)

        def mutate(documents: dict[str, str]) -> None:
            documents[task_id] = line

        self._mutate(mutate)

    def remove(self, task_id: str) -> bool:
        removed = False

        def mutate(documents: dict[str, str]) -> None:
            nonlocal removed
            removed = documents.pop(task_id, None) is not None

        self._mutate(mutate)
        return removed

    def clear(self) -> int:
        removed = 0

        def mutate(documents: dict[str, str]) -> None:
            nonlocal removed
            removed = len(documents)
            documents.clear()

        self._mutate(mutate)
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _file_lock(self, file: IO) -> Iterator[None]:
        try:
            fcntl.flock(file.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(file.fileno(), fcntl.LOCK_UN)

    def _read_lines(self) -> dict[str, str]:
        """Raw JSON lines keyed by task id; unparseable lines are skipped."""
        if not self._path.exists():
            return {}

        lines: dict[str, str] = {}
        for line_number, line in enumerate(
            self._path.read_text(encoding="utf-8").splitlines(), start=1
        ):
            line = line.strip()
            if not line:
                continue
            try:
                document = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(
                    "task_store_invalid_line",
                    extra={"file.path": str(self._path), "file.line": line_number},
                )
                continue
            if isinstance(document, dict) and document.get("id"):
                lines[document["id"]] = line
        return lines

    def _read(self) -> dict[str, TaskDocument]:
        return {
            task_id: json.loads(line) for task_id, line in self._read_lines().items()
        }

    def _mutate(self, mutate: Callable[[dict[str, str]], None]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock_file.open("a+") as lockf:
            with self._file_lock(lockf):
                documents = self._read_lines()
                mutate(documents)
                tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
                tmp_path.write_text(
                    "".join(f"{line}\n" for line in documents.values()),
                    encoding="utf-8",
                )
                tmp_path.replace(self._path)
