"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer

from cadence.cli.console import console, create_table, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $CADENCE_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Manage configuration."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from pydantic import ValidationError
        from rich.syntax import Syntax

        from cadence.config import ConfigError, load_config
        from cadence.config.paths import get_config_path

        expanded_path = path.expanduser() if path else get_config_path()

        if action == "show":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            content = expanded_path.read_text()
            console.print(f"[bold]Config file: {expanded_path}[/bold]\n")
            console.print(Syntax(content, "toml", line_numbers=True))

        elif action == "validate":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            try:
                config_obj = load_config(expanded_path)
            except ValidationError as e:
                error("Configuration validation failed:")
                console.print()
                for err in e.errors():
                    loc = ".".join(str(x) for x in err["loc"])
                    console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
                raise typer.Exit(1) from None
            except ConfigError as e:
                error(f"Error loading config: {e}")
                raise typer.Exit(1) from None

            table = create_table(
                "Configuration Summary", [("Setting", "cyan"), ("Value", "green")]
            )
            table.add_row("Max concurrency", str(config_obj.max_concurrency))
            table.add_row("Poll interval", f"{config_obj.poll_interval:g}s")
            table.add_row("Poll interval cap", f"{config_obj.poll_interval_cap:g}s")
            table.add_row("Retry delay", f"{config_obj.retry_delay:g}s")
            table.add_row("Timezone", config_obj.timezone)
            table.add_row(
                "Task store",
                str(config_obj.store_path) if config_obj.store_path else "[dim]none[/dim]",
            )
            table.add_row("Log level", config_obj.logging.level)

            success("Configuration is valid!")
            console.print()
            console.print(table)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate")
            raise typer.Exit(1)
