"""CLI command modules."""

from cadence.cli.commands import config, cron, run, tasks

__all__ = [
    "config",
    "cron",
    "run",
    "tasks",
]
