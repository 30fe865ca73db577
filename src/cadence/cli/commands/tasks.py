"""Task store inspection command."""

from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import console, create_table, dim, format_countdown, warning


def register(app: typer.Typer) -> None:
    """Register the tasks command."""

    @app.command()
    def tasks(
        store: Annotated[
            Path | None,
            typer.Option(
                "--store",
                "-s",
                help="Task store file (default: $CADENCE_HOME/tasks.jsonl)",
            ),
        ] = None,
    ) -> None:
        """List task documents from a JSONL task store."""
        from cadence.config.paths import get_store_path
        from cadence.scheduling.store import JsonlTaskStore

        task_store = JsonlTaskStore(store or get_store_path())
        documents = task_store.get_documents()

        if not documents:
            warning(f"No tasks found in {task_store.path}")
            return

        table = create_table(
            "Tasks",
            [
                ("ID", "dim"),
                ("Name", "cyan"),
                ("Interval", ""),
                ("Repeat", ""),
                ("State", ""),
                ("Next Run", ""),
                ("Failures", {"justify": "right"}),
            ],
        )
        for doc in documents:
            options = doc.get("options") or {}
            next_run = doc.get("next_run_at")
            table.add_row(
                str(doc.get("id", "?"))[:12],
                str(doc.get("name", "?")),
                str(options.get("interval")),
                "yes" if options.get("repeat") else "no",
                str(doc.get("run_state", "?")),
                format_countdown(datetime.fromisoformat(next_run)) if next_run else "-",
                str(len(doc.get("history") or [])),
            )

        console.print(table)
        dim(f"Total: {len(documents)} task(s)")
