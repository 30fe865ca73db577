"""Process runner that hosts a scheduler until the process is signalled."""

import asyncio
import importlib
import inspect
import logging
import signal as signal_module
from collections.abc import Callable
from typing import Any

from cadence.config.models import CadenceConfig
from cadence.scheduling.scheduler import Scheduler

logger = logging.getLogger(__name__)

SetupHook = Callable[[Scheduler], Any]


class SetupError(Exception):
    """The jobs module could not be loaded."""


def load_setup(module_path: str) -> SetupHook:
    """Import ``module_path`` and return its ``setup(scheduler)`` callable.

    Raises:
        SetupError: If the module cannot be imported or has no callable setup.
    """
    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise SetupError(f"Cannot import {module_path}: {e}") from e

    setup = getattr(module, "setup", None)
    if not callable(setup):
        raise SetupError(f"{module_path} does not define setup(scheduler)")
    return setup


async def run_scheduler(
    config: CadenceConfig,
    setup: SetupHook,
    *,
    shutdown_event: asyncio.Event | None = None,
) -> Scheduler:
    """Build a scheduler, run ``setup`` on it and serve until shutdown.

    SIGINT/SIGTERM set the shutdown event. In-flight executions are awaited
    before returning.
    """
    scheduler = Scheduler(config)
    shutdown_event = shutdown_event or asyncio.Event()

    result = setup(scheduler)
    if inspect.isawaitable(result):
        await result

    loop = asyncio.get_running_loop()
    shutdown_count = 0

    def handle_signal() -> None:
        nonlocal shutdown_count
        shutdown_count += 1
        if shutdown_count == 1:
            logger.info("scheduler_shutting_down")
            shutdown_event.set()
        else:
            logger.warning(
                "scheduler_shutdown_pending",
                extra={"scheduler.running": scheduler.running},
            )

    installed: list[signal_module.Signals] = []
    for sig in (signal_module.SIGTERM, signal_module.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_signal)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not the main thread, or a platform without loop signal support
            pass

    scheduler.start()
    try:
        await shutdown_event.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await scheduler.shutdown()

    return scheduler
