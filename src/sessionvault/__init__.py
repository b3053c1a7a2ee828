"""
SessionVault -- versioned, compressed archive of your chat sessions.

Mirrors ~/.claude/projects and a small configuration profile into a
git-backed store, one namespace per device, with a rebuildable index
for search and collision-safe restore.
"""

import os

__version__ = "1.2.0"
__author__ = "smilinTux"

ARCHIVE_HOME = os.environ.get("SESSIONVAULT_HOME", "~/.claude-backup")
SOURCE_HOME = os.environ.get("SESSIONVAULT_SOURCE", "~/.claude")
