"""
SessionVault CLI -- thin command line over the archive engine.

Each command group lives in its own module and is registered on the
main Click group below.

Entry point: sessionvault.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="sessionvault")
def main():
    """SessionVault -- versioned backups of your Claude Code sessions."""


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .sync_cmd import register_sync_commands
from .query_cmd import register_query_commands
from .restore_cmd import register_restore_commands
from .config_cmd import register_config_commands

register_sync_commands(main)
register_query_commands(main)
register_restore_commands(main)
register_config_commands(main)
