"""Calendar expression preview command."""

from datetime import UTC, datetime
from typing import Annotated

import typer

from cadence.cli.console import console, create_table, error, format_countdown


def register(app: typer.Typer) -> None:
    """Register the next command."""

    @app.command("next")
    def next_runs(
        expression: Annotated[
            str,
            typer.Argument(help='Cron expression, e.g. "0 8 * * *"'),
        ],
        count: Annotated[
            int,
            typer.Option("--count", "-n", min=1, max=100, help="Occurrences to show"),
        ] = 5,
        timezone: Annotated[
            str,
            typer.Option("--timezone", "-t", help="IANA timezone to evaluate in"),
        ] = "UTC",
    ) -> None:
        """Show the next occurrences of a cron expression.

        Examples:
            cadence next "*/15 * * * *"
            cadence next "0 8 * * mon-fri" -n 3 -t Europe/Berlin
        """
        from zoneinfo import ZoneInfo

        from cadence.scheduling.calendar import CronEvaluator

        evaluator = CronEvaluator(timezone)
        if not evaluator.validate(expression):
            error(f'Invalid cron expression: "{expression}"')
            raise typer.Exit(1)

        now = datetime.now(UTC)
        local_tz = ZoneInfo(evaluator.timezone)

        table = create_table(
            f"{expression} ({evaluator.timezone})",
            [("#", "dim"), ("Local time", "cyan"), ("UTC", "green"), ("In", "")],
        )
        for i, occurrence in enumerate(
            evaluator.upcoming(expression, now, count), start=1
        ):
            table.add_row(
                str(i),
                occurrence.astimezone(local_tz).strftime("%Y-%m-%d %H:%M:%S %Z"),
                occurrence.strftime("%Y-%m-%d %H:%M:%S"),
                format_countdown(occurrence, now),
            )
        console.print(table)
