"""Scheduler process command."""

from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import console, error


def register(app: typer.Typer) -> None:
    """Register the run command."""

    @app.command()
    def run(
        module: Annotated[
            str,
            typer.Argument(help="Import path of a module defining setup(scheduler)"),
        ],
        config: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR"),
        ] = None,
    ) -> None:
        """Run a scheduler until interrupted.

        The module's setup(scheduler) defines work functions and creates
        tasks; it may be sync or async.

        Examples:
            cadence run myapp.jobs
            cadence run myapp.jobs --config ./cadence.toml -l DEBUG
        """
        import asyncio

        from pydantic import ValidationError

        from cadence.config import ConfigError, get_default_config, load_config
        from cadence.logging import configure_logging
        from cadence.runner import SetupError, load_setup, run_scheduler

        try:
            if config is not None:
                config_obj = load_config(config)
            else:
                try:
                    config_obj = load_config()
                except FileNotFoundError:
                    config_obj = get_default_config()
        except (FileNotFoundError, ConfigError) as e:
            error(str(e))
            raise typer.Exit(1) from None
        except ValidationError as e:
            error(f"Configuration validation failed: {e}")
            raise typer.Exit(1) from None

        configure_logging(
            level=log_level or config_obj.logging.level,
            use_rich=config_obj.logging.use_rich,
            log_to_file=config_obj.logging.log_to_file,
            logs_dir=config_obj.logging.logs_dir,
            retention_days=config_obj.logging.retention_days,
        )

        try:
            setup = load_setup(module)
        except SetupError as e:
            error(str(e))
            raise typer.Exit(1) from None

        console.print(
            f"[bold]Cadence running {module}[/bold] "
            f"(max concurrency {config_obj.max_concurrency}). Press Ctrl+C to stop."
        )
        scheduler = asyncio.run(run_scheduler(config_obj, setup))
        console.print(f"[dim]Stopped with {len(scheduler.tasks)} task(s)[/dim]")
