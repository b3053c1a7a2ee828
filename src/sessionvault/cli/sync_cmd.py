"""Archive commands: init, sync, status, backend."""

from __future__ import annotations

import json
from typing import Optional

import click
from rich.panel import Panel

from ..engine import SyncEngine
from ..models import BackendMode
from ._common import archive_options, console, human_size

MODE_CHOICES = [m.value for m in BackendMode]


def register_sync_commands(main: click.Group) -> None:
    """Register init, sync, status and backend."""
    @main.command("init")
    @archive_options
    @click.option("--mode", type=click.Choice(MODE_CHOICES), default=None,
                  help="Where to push the archive (default: hosted).")
    @click.option("--remote", default=None, help="Remote URL for custom-remote mode.")
    @click.option("--local", "local_only", is_flag=True, help="Shorthand for --mode none.")
    def init_cmd(engine: SyncEngine, mode: Optional[str], remote: Optional[str], local_only: bool):
        """Create the archive and run the first sync.

        On an archive that already exists nothing changes unless a
        backend is named explicitly.

        Examples:

            sessionvault init

            sessionvault init --local

            sessionvault init --mode custom-remote --remote git@nas:backup.git
        """
        target = BackendMode.NONE if local_only else (BackendMode(mode) if mode else None)
        if engine.is_initialized() and target is None and remote is None:
            backend = engine.current_backend()
            console.print(f"\n[yellow]Already initialized at {engine.config.archive_root}[/]")
            console.print(f"  [green]Backend:[/] {backend.mode.value}"
                          + (f" [dim]({backend.remote})[/]" if backend.remote else ""))
            console.print("  Switch with: [cyan]sessionvault backend MODE[/]\n")
            return

        console.print(f"\n[cyan]Initializing archive at {engine.config.archive_root}...[/]")
        backend = engine.initialize(target, remote)
        console.print(f"  [green]Backend:[/] {backend.mode.value}"
                      + (f" [dim]({backend.remote})[/]" if backend.remote else ""))
        _print_report(engine.sync())

    @main.command("sync")
    @archive_options
    @click.option("--json", "as_json", is_flag=True, help="Print the sync report as JSON.")
    @click.option("--sessions-only", is_flag=True, help="Back up session logs only.")
    @click.option("--config-only", is_flag=True, help="Back up the config profile only.")
    def sync_cmd(engine: SyncEngine, as_json: bool, sessions_only: bool, config_only: bool):
        """Back up sessions and config now."""
        if sessions_only and config_only:
            raise click.UsageError("--sessions-only and --config-only are mutually exclusive")
        report = engine.sync(sessions=not config_only, config=not sessions_only)
        if as_json:
            click.echo(report.model_dump_json(indent=2))
            return
        if report.status == "busy":
            console.print("[dim]Another sync is running -- skipped.[/]")
            return
        _print_report(report)

    @main.command("status")
    @archive_options
    @click.option("--json", "as_json", is_flag=True, help="Print status as JSON.")
    def status_cmd(engine: SyncEngine, as_json: bool):
        """Show archive, device and backend status."""
        info = engine.status()
        if as_json:
            click.echo(json.dumps(info, indent=2, default=str))
            return

        manifest = info["manifest"] or {}
        lines = [
            f"Archive: [cyan]{info['archive']}[/]",
            f"Device: {info['device']} [dim]({info['slug'] or 'not synced yet'})[/]",
            f"Mode: {manifest.get('mode', '[dim]unknown[/]')}",
            f"Remote: {info['remote'] or '[dim]none[/]'}",
            f"Last sync: {manifest.get('lastSync') or '[dim]never[/]'}",
            f"Last commit: {info['last_commit'] or '[dim]never[/]'}",
            f"Indexed sessions: [bold]{info['indexed_sessions']}[/]",
            f"Archive size: {human_size(info['archive_bytes'])}",
            f"Source: {info['source_sessions']} sessions in {info['source_projects']} projects",
        ]
        if info["sync_running_pid"]:
            lines.append(f"[yellow]Sync in progress (pid {info['sync_running_pid']})[/]")
        console.print()
        console.print(Panel("\n".join(lines), title="Session Vault", border_style="cyan"))

        devices = manifest.get("devices") or []
        if len(devices) > 1:
            console.print(f"\n[bold]{len(devices)}[/] devices:")
            for d in devices:
                console.print(
                    f"  [cyan]{d['slug']}[/] {d.get('sessionCount', 0)} sessions, "
                    f"{human_size(d.get('backupSizeBytes', 0))}, last sync {d.get('lastSync') or 'never'}"
                )
        console.print()

    @main.command("backend")
    @archive_options
    @click.argument("mode", type=click.Choice(MODE_CHOICES))
    @click.option("--remote", default=None, help="Remote URL (custom-remote only).")
    def backend_cmd(engine: SyncEngine, mode: str, remote: Optional[str]):
        """Switch where the archive is pushed: none, hosted, custom-remote."""
        backend = engine.set_backend(BackendMode(mode), remote)
        console.print(f"[green]Backend set to {backend.mode.value}[/]"
                      + (f" [dim]({backend.remote})[/]" if backend.remote else ""))


def _print_report(report) -> None:
    s, c = report.sessions, report.config
    console.print(f"  [green]Sessions:[/] {s.added} added, {s.updated} updated, "
                  f"{s.removed} removed, {s.unchanged} unchanged")
    if s.skipped_removal:
        console.print("  [yellow]Source appears empty -- skipped removal to protect backups[/]")
    console.print(f"  [green]Config:[/] {c.added} added, {c.updated} updated, {c.removed} removed")
    if report.migration and report.migration.migrated:
        console.print(f"  [green]Migrated[/] archive into devices/{report.migration.slug}")
    console.print(f"  [green]Indexed:[/] {report.indexed} sessions ({human_size(report.total_bytes)})")
    if report.remote_error:
        console.print(f"  [yellow]Push failed, local commit kept:[/] {report.remote_error}")
    elif report.pushed:
        console.print("  [green]Pushed[/]")
    if report.storage_warning:
        console.print("  [yellow]Archive is approaching the hosted storage ceiling[/]")
    console.print()
