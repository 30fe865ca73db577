"""Main CLI application."""

import typer

from cadence.cli.commands import config, cron, run, tasks

app = typer.Typer(
    name="cadence",
    help="Cadence - in-process task scheduler",
    no_args_is_help=True,
)

for command in (run, cron, tasks, config):
    command.register(app)


if __name__ == "__main__":
    app()
