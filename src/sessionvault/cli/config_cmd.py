"""Config profile commands: export-config, import-config."""

from __future__ import annotations

from pathlib import Path

import click
from rich.panel import Panel

from ..device import read_slug
from ..engine import SyncEngine
from ..transfer import export_config, import_config
from ._common import archive_options, console


def register_config_commands(main: click.Group) -> None:
    """Register export-config and import-config."""

    @main.command("export-config")
    @archive_options
    @click.argument("output", type=click.Path())
    @click.option("--device", default=None, help="Device slug to export (default: this device).")
    def export_config_cmd(engine: SyncEngine, output: str, device: str):
        """Pack the archived config profile into a tar.gz."""
        engine.require_initialized()
        slug = device or read_slug(engine.config)
        if not slug:
            console.print("[red]This device has not synced yet.[/] Run: sessionvault sync")
            raise SystemExit(1)
        try:
            result = export_config(engine.config, slug, Path(output))
        except FileNotFoundError as exc:
            console.print(f"[red]{exc}[/]")
            raise SystemExit(1)
        console.print(Panel(
            f"[bold green]Config exported[/]\n"
            f"Files: {result['file_count']}\n"
            f"Path: [cyan]{result['filepath']}[/]",
            title="Export Complete",
            border_style="green",
        ))

    @main.command("import-config")
    @archive_options
    @click.argument("archive", type=click.Path())
    @click.option("--force", is_flag=True, help="Overwrite existing config files.")
    def import_config_cmd(engine: SyncEngine, archive: str, force: bool):
        """Unpack an exported config profile into ~/.claude.

        The archive is checked before anything is written; a sensitive
        filename anywhere inside aborts the import.
        """
        try:
            result = import_config(engine.config, Path(archive), overwrite=force)
        except FileNotFoundError as exc:
            console.print(f"[red]{exc}[/]")
            raise SystemExit(1)
        console.print(Panel(
            f"[bold green]Config imported[/]\n"
            f"Written: {result['written']}\n"
            f"Skipped (exists): {result['skipped']}\n"
            f"Target: [cyan]{result['target']}[/]",
            title="Import Complete",
            border_style="green",
        ))
