"""
Namespace migration -- flat archive layout to per-device namespaces.

Before:                          After:
    projects/<project>/...           devices/<slug>/sessions/<project>/...
    config/...                       devices/<slug>/config/...
    manifest.json                    devices/<slug>/manifest.json
                                     manifest.json   (root, with devices[])

Runs at most once: as soon as devices/ holds a namespace it does
nothing. The move and the commit are one transaction; a failure
before the commit resets the working tree, a failure after it
reverts the commit.
"""

from __future__ import annotations

import logging
import shutil
from typing import Optional

from .config import ArchiveConfig
from .device import persist_slug, read_slug
from .errors import MigrationFailure, VcsError
from .manifest import ManifestWriter
from .models import MigrationResult
from .vcs import VersionControl

logger = logging.getLogger("sessionvault.migrator")

LEGACY_SESSIONS = "projects"
LEGACY_CONFIG = "config"


class NamespaceMigrator:
    """Moves a legacy flat archive into a device namespace."""

    def __init__(
        self,
        config: ArchiveConfig,
        vcs: VersionControl,
        manifests: Optional[ManifestWriter] = None,
    ):
        self.config = config
        self.vcs = vcs
        self.manifests = manifests or ManifestWriter(config)

    def has_namespaces(self) -> bool:
        devices = self.config.devices_dir
        return devices.is_dir() and any(p.is_dir() for p in devices.iterdir())

    def needs_migration(self) -> bool:
        """True for a flat layout with no device namespaces yet."""
        if self.has_namespaces():
            return False
        root = self.config.archive_root
        return (root / LEGACY_SESSIONS).is_dir() or (root / LEGACY_CONFIG).is_dir()

    def migrate(self, slug: str, device: str) -> MigrationResult:
        """Restructure the archive into ``devices/<slug>/``.

        Args:
            slug: Namespace for this device. Persisted if not already.
            device: Human-readable device name for the manifest.

        Returns:
            MigrationResult; ``migrated`` is False when there was nothing to do.

        Raises:
            MigrationFailure: The archive was rolled back to its prior state.
        """
        if not self.needs_migration():
            return MigrationResult(migrated=False, slug=slug)

        logger.info("Migrating flat archive layout into devices/%s", slug)
        previous_mode = self.manifests.read_root()
        commit: Optional[str] = None
        try:
            self._move(slug)
            self.manifests.write(
                slug, device,
                mode=previous_mode.mode if previous_mode else None,
                remote=previous_mode.remote if previous_mode else None,
                last_sync=previous_mode.last_sync if previous_mode else None,
            )
            commit = self.vcs.commit_all(f"migrate archive to per-device layout ({slug})")
        except (OSError, VcsError, ValueError) as exc:
            logger.error("Migration failed before commit, resetting working tree: %s", exc)
            self._discard()
            raise MigrationFailure(f"Migration to devices/{slug} failed: {exc}") from exc

        problem = self._verify(slug)
        if problem:
            logger.error("Migration verification failed: %s", problem)
            if commit:
                try:
                    self.vcs.revert(commit)
                except VcsError as exc:
                    raise MigrationFailure(
                        f"{problem}; revert of {commit} also failed: {exc}"
                    ) from exc
            else:
                self._discard()
            raise MigrationFailure(problem)

        if read_slug(self.config) is None:
            persist_slug(self.config, slug)
        logger.info("Migration complete (%s)", commit or "no commit")
        return MigrationResult(migrated=True, slug=slug, commit=commit)

    def _move(self, slug: str) -> None:
        root = self.config.archive_root
        target = self.config.device_dir(slug)
        target.mkdir(parents=True, exist_ok=True)
        moves = ((LEGACY_SESSIONS, "sessions"), (LEGACY_CONFIG, "config"))
        for legacy, new in moves:
            src = root / legacy
            if src.is_dir():
                shutil.move(str(src), str(target / new))

    def _verify(self, slug: str) -> Optional[str]:
        root = self.config.archive_root
        for legacy in (LEGACY_SESSIONS, LEGACY_CONFIG):
            if (root / legacy).exists():
                return f"legacy directory {legacy}/ still present"
        manifest = self.manifests.read_device(slug)
        if manifest is None or manifest.device_slug != slug:
            return f"device manifest for {slug} missing or wrong"
        return None

    def _discard(self) -> None:
        try:
            self.vcs.discard_changes()
        except VcsError as exc:
            logger.error("Could not reset working tree: %s", exc)
