"""Shared utilities for all CLI command modules.

Provides the Rich console, logging setup, the common --home/--source
options, and the engine factory every command goes through.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from .. import ARCHIVE_HOME
from ..config import ArchiveConfig, load_config
from ..engine import SyncEngine
from ..errors import LockBusy, SessionVaultError

console = Console()
logger = logging.getLogger("sessionvault.cli")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(config: ArchiveConfig, verbose: bool = False) -> None:
    """Send log records to <archive>/backup.log, and to the console if verbose."""
    root = logging.getLogger("sessionvault")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if config.archive_root.is_dir():
        handler = logging.FileHandler(config.log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    if verbose:
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def archive_options(func: Callable) -> Callable:
    """Add --home, --source and --verbose to a command."""

    @click.option("--home", default=ARCHIVE_HOME, type=click.Path(), help="Archive root directory.")
    @click.option("--source", default=None, type=click.Path(), help="Source home (default ~/.claude).")
    @click.option("--verbose", "-v", is_flag=True, help="Log to the console as well.")
    @functools.wraps(func)
    def wrapper(*args, home: str, source: Optional[str], verbose: bool, **kwargs):
        config = load_config(Path(home), Path(source) if source else None)
        setup_logging(config, verbose)
        engine = SyncEngine(config)
        try:
            return func(*args, engine=engine, **kwargs)
        except LockBusy as exc:
            console.print(f"[dim]{exc} -- skipped.[/]")
            return None
        except SessionVaultError as exc:
            logger.error("%s", exc)
            console.print(f"[bold red]{exc}[/]")
            sys.exit(1)

    return wrapper


def human_size(num: int) -> str:
    """Format a byte count as KB/MB/GB."""
    size = float(num)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
