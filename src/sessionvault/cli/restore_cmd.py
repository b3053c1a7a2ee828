"""Restore commands: restore, peek."""

from __future__ import annotations

import json
import sys
from typing import Optional

import click
from rich.table import Table

from ..engine import SyncEngine
from ..errors import AmbiguousIdentifier
from ..models import RestoreOutcome
from ._common import archive_options, console


def register_restore_commands(main: click.Group) -> None:
    """Register restore and peek."""

    @main.command("restore")
    @archive_options
    @click.argument("identifier", required=False)
    @click.option("--all", "restore_all", is_flag=True, help="Restore every archived session.")
    @click.option("--device", default=None, help="With --all, only this device's sessions.")
    @click.option("--force", is_flag=True, help="Overwrite files that already exist.")
    def restore_cmd(engine: SyncEngine, identifier: Optional[str], restore_all: bool,
                    device: Optional[str], force: bool):
        """Restore a session by UUID (or any unique part of it).

        Existing files are never overwritten without --force.

        Examples:

            sessionvault restore 3f2a9c

            sessionvault restore --all --device work-laptop
        """
        restorer = engine.restorer()

        if restore_all:
            report = restorer.restore_all(device=device, overwrite=force)
            console.print(f"\n  [green]Restored:[/] {report.restored}  "
                          f"[yellow]Skipped:[/] {report.skipped}  "
                          f"[red]Failed:[/] {report.failed}\n")
            for item in report.items:
                if item.outcome == RestoreOutcome.FAILED:
                    console.print(f"  [red]{item.uuid}[/]: {item.error}")
            if report.failed:
                sys.exit(1)
            return

        if not identifier:
            console.print("[bold]Usage:[/] sessionvault restore <session-uuid> | --all")
            console.print("  Find session ids with: [cyan]sessionvault list[/]")
            sys.exit(1)

        try:
            report = restorer.restore(identifier, overwrite=force)
        except AmbiguousIdentifier as exc:
            console.print(f"\n[yellow]Multiple matches found for {identifier}:[/]")
            for candidate in exc.candidates:
                console.print(f"  {candidate}")
            console.print("\nProvide a more specific identifier.\n")
            sys.exit(1)

        item = report.items[0]
        if item.outcome == RestoreOutcome.SKIPPED:
            console.print(f"[yellow]File already exists at {item.destination} (use --force to overwrite)[/]")
            sys.exit(1)
        console.print(f"[green]Session restored:[/] {item.destination}")

    @main.command("peek")
    @archive_options
    @click.argument("identifier")
    @click.option("--lines", "-n", default=10, show_default=True, help="Records to show.")
    @click.option("--json", "as_json", is_flag=True, help="Print raw records as JSON.")
    def peek_cmd(engine: SyncEngine, identifier: str, lines: int, as_json: bool):
        """Preview the first records of an archived session without restoring it."""
        records = engine.restorer().peek(identifier, limit=lines)
        if as_json:
            click.echo(json.dumps(records, indent=2))
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Type", style="cyan")
        table.add_column("Time", style="dim")
        table.add_column("Content")
        for rec in records:
            table.add_row(
                str(rec.get("type", "")),
                str(rec.get("timestamp", ""))[:19],
                _summary(rec),
            )
        console.print(table)


def _summary(record: dict, width: int = 100) -> str:
    if "raw" in record:
        text = record["raw"]
    else:
        message = record.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else message
        if isinstance(content, list):
            content = " ".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        text = str(content or record.get("summary") or "")
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 1] + "…"
