"""Shared test fixtures and factories."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from cadence.config.models import CadenceConfig
from cadence.scheduling.scheduler import Scheduler

T0 = datetime(2026, 1, 12, 9, 0, 0, tzinfo=UTC)


# =============================================================================
# Time Fakes
# =============================================================================


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeTimer:
    """Timer double that records wake-ups instead of arming the loop."""

    def __init__(self) -> None:
        self.arms: list[float] = []
        self.cancels = 0
        self._callback: Callable[[], None] | None = None

    @property
    def armed(self) -> bool:
        return self._callback is not None

    @property
    def delay(self) -> float | None:
        return self.arms[-1] if self.arms else None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()
        self.arms.append(delay)
        self._callback = callback

    def cancel(self) -> None:
        if self._callback is not None:
            self.cancels += 1
        self._callback = None

    def fire(self) -> None:
        callback, self._callback = self._callback, None
        assert callback is not None, "timer was not armed"
        callback()


class RecordingStore:
    """In-memory TaskPersistence."""

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.upserts: list[tuple[str, str]] = []

    def upsert(self, task_id: str, document: dict[str, Any]) -> None:
        self.documents[task_id] = document
        self.upserts.append((task_id, document["run_state"]))

    def remove(self, task_id: str) -> bool:
        return self.documents.pop(task_id, None) is not None


class FailingStore:
    def upsert(self, task_id: str, document: dict[str, Any]) -> None:
        raise OSError("disk full")

    def remove(self, task_id: str) -> bool:
        raise OSError("disk full")


# =============================================================================
# Scheduler Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def config() -> CadenceConfig:
    return CadenceConfig(max_concurrency=3, poll_interval=1.0, poll_interval_cap=30.0)


@pytest.fixture
def scheduler(config: CadenceConfig, clock: FakeClock, timer: FakeTimer) -> Scheduler:
    """Scheduler on a fake clock and timer; drive it with ``_tick``/``_process``."""
    return Scheduler(config, clock=clock, timer=timer)


class EventRecorder:
    """Subscribes to lifecycle events and records them in order."""

    def __init__(self, scheduler: Scheduler, task_name: str | None = None):
        self.events: list[tuple[str, tuple[Any, ...]]] = []
        names = ["start", "success", "fail", "complete"]
        if task_name:
            names += [f"{name}:{task_name}" for name in names]
        for name in names:
            scheduler.on(name, self._handler(name))

    def _handler(self, name: str) -> Callable[..., None]:
        def handle(*args: Any) -> None:
            self.events.append((name, args))

        return handle

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


# =============================================================================
# CLI and Config Fixtures
# =============================================================================


@pytest.fixture
def cli_runner(monkeypatch: pytest.MonkeyPatch):
    """Create a Typer CLI test runner with colors disabled and a wide console."""
    from typer.testing import CliRunner

    from cadence.cli.console import console

    monkeypatch.setattr(console, "width", 200)
    return CliRunner(env={"NO_COLOR": "1"})


@pytest.fixture
def config_toml_content() -> str:
    """Valid TOML config content."""
    return """
max_concurrency = 5
poll_interval = 0.5
poll_interval_cap = 10
timezone = "Europe/Berlin"

[logging]
level = "debug"
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "cadence.toml"
    config_path.write_text(config_toml_content)
    return config_path


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep tests away from the real CADENCE_HOME and env overrides."""
    from cadence.config.paths import get_cadence_home

    for var in (
        "CADENCE_MAX_CONCURRENCY",
        "CADENCE_TIMEZONE",
        "CADENCE_STORE_PATH",
        "CADENCE_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("CADENCE_HOME", str(tmp_path / "home"))
    get_cadence_home.cache_clear()
    yield
    get_cadence_home.cache_clear()
