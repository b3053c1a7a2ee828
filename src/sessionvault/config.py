"""
Archive configuration -- one explicit object handed to every component.

Resolution order (lowest precedence first):
    model defaults -> <archive>/config.yaml -> environment -> CLI flags
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from . import ARCHIVE_HOME, SOURCE_HOME

logger = logging.getLogger("sessionvault.config")

CONFIG_FILE = "config.yaml"

DEFAULT_CONFIG_ITEMS = [
    "settings.json",
    "CLAUDE.md",
    "commands",
    "agents",
    "skills",
    "hooks",
]

# Filenames that must never land in the archive, matched per path component.
DEFAULT_DENYLIST = [
    ".credentials.json",
    "*.pem",
    "*.key",
    ".env",
    ".env.*",
    "*secret*",
    "*token*",
    "id_rsa*",
    "id_ed25519*",
    "*.p12",
    "*.pfx",
]

DEFAULT_STORAGE_WARN_BYTES = 900 * 1024 * 1024


class ArchiveConfig(BaseModel):
    """Where the archive lives, what it mirrors, and how it talks to remotes."""

    archive_root: Path = Path(ARCHIVE_HOME)
    source_home: Path = Path(SOURCE_HOME)
    config_items: list[str] = Field(default_factory=lambda: list(DEFAULT_CONFIG_ITEMS))
    denylist: list[str] = Field(default_factory=lambda: list(DEFAULT_DENYLIST))
    storage_warn_bytes: int = DEFAULT_STORAGE_WARN_BYTES
    repo_name: str = "claude-sessions-backup"
    branch: str = "main"
    git_timeout: int = 120

    def model_post_init(self, __context) -> None:
        self.archive_root = Path(self.archive_root).expanduser()
        self.source_home = Path(self.source_home).expanduser()

    @property
    def projects_dir(self) -> Path:
        """Directory holding one subdirectory per project of session logs."""
        return self.source_home / "projects"

    @property
    def devices_dir(self) -> Path:
        return self.archive_root / "devices"

    @property
    def root_manifest_path(self) -> Path:
        return self.archive_root / "manifest.json"

    @property
    def index_path(self) -> Path:
        return self.archive_root / "session-index.json"

    @property
    def slug_path(self) -> Path:
        return self.archive_root / ".device-slug"

    @property
    def lock_path(self) -> Path:
        return self.archive_root / ".sync.lock"

    @property
    def log_path(self) -> Path:
        return self.archive_root / "backup.log"

    def device_dir(self, slug: str) -> Path:
        return self.devices_dir / slug


def load_config(
    archive_root: Optional[Path] = None,
    source_home: Optional[Path] = None,
) -> ArchiveConfig:
    """Build the configuration for this invocation.

    Args:
        archive_root: Explicit archive root (CLI flag). Wins over everything.
        source_home: Explicit source home (CLI flag).

    Returns:
        ArchiveConfig with paths expanded.
    """
    root = Path(
        archive_root or os.environ.get("SESSIONVAULT_HOME", ARCHIVE_HOME)
    ).expanduser()

    data: dict = {}
    config_file = root / CONFIG_FILE
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            logger.warning("Ignoring unreadable %s: %s", config_file, exc)
            data = {}

    data["archive_root"] = root
    env_source = os.environ.get("SESSIONVAULT_SOURCE")
    if source_home is not None:
        data["source_home"] = source_home
    elif env_source:
        data["source_home"] = env_source

    return ArchiveConfig(**data)


def save_config(config: ArchiveConfig) -> Path:
    """Persist the tunable fields to <archive>/config.yaml."""
    data = config.model_dump(mode="json", exclude={"archive_root"})
    config_file = config.archive_root / CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file
