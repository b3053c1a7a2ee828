"""Index commands: list."""

from __future__ import annotations

import json
from typing import Optional

import click
from rich.table import Table

from ..engine import SyncEngine
from ._common import archive_options, console, human_size


def register_query_commands(main: click.Group) -> None:
    """Register the list command."""

    @main.command("list")
    @archive_options
    @click.option("--last", type=int, default=None, help="Only the N most recent sessions.")
    @click.option("--date", default=None, help="Sessions archived on a day, e.g. 2026-03-01.")
    @click.option("--project", default=None, help="Project id contains this text.")
    @click.option("--json", "as_json", is_flag=True, help="Print entries as JSON.")
    def list_cmd(engine: SyncEngine, last: Optional[int], date: Optional[str],
                 project: Optional[str], as_json: bool):
        """List archived sessions across all devices, newest first."""
        entries = engine.query(last=last, date=date, project=project)
        if as_json:
            click.echo(json.dumps(
                [e.model_dump(mode="json", by_alias=True) for e in entries], indent=2,
            ))
            return

        if not entries:
            console.print("\n[dim]No sessions found.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Session", style="cyan")
        table.add_column("Project")
        table.add_column("Device", style="magenta")
        table.add_column("Size", justify="right")
        table.add_column("Archived", style="dim")
        for e in entries:
            table.add_row(e.uuid, e.project_id, e.device, human_size(e.size_bytes), e.archived_at)

        console.print(f"\n[bold]{len(entries)}[/] session(s):\n")
        console.print(table)
        console.print()
