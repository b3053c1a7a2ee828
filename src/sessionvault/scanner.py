"""
Change scanner -- incremental mirror of the source tree into a device namespace.

    ~/.claude/projects/<project>/<uuid>.jsonl  ->  sessions/<project>/<uuid>.jsonl.gz
    ~/.claude/projects/<project>/<other>       ->  sessions/<project>/<other>
    ~/.claude/<config item>                    ->  config/<config item>

A file is (re)written only when the artifact is missing or older than
the source. Projects that disappeared from the source are removed from
the archive, except when the source has no projects at all: an empty
or unmounted source must never wipe the backup.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .codec import Codec, GzipCodec, artifact_name, is_log
from .config import ArchiveConfig
from .denylist import is_denied
from .models import ChangeAction, ScanResult

logger = logging.getLogger("sessionvault.scanner")


@dataclass
class FileChange:
    """Planned action for one source file.

    Attributes:
        source: File under the source tree.
        artifact: Where its archived counterpart lives.
        action: add (no artifact yet), update (source is newer), or skip.
    """

    source: Path
    artifact: Path
    action: ChangeAction

    @property
    def compress(self) -> bool:
        return is_log(self.source)


def _visible(path: Path) -> bool:
    return not path.name.startswith(".")


def decide(source: Path, artifact: Path) -> ChangeAction:
    """Freshness rule shared by the session and config tiers."""
    if not artifact.exists():
        return ChangeAction.ADD
    if source.stat().st_mtime > artifact.stat().st_mtime:
        return ChangeAction.UPDATE
    return ChangeAction.SKIP


class ChangeScanner:
    """Walks the source tree and brings one device namespace up to date."""

    def __init__(self, config: ArchiveConfig, slug: str, codec: Optional[Codec] = None):
        self.config = config
        self.slug = slug
        self.codec = codec or GzipCodec()
        self.device_dir = config.device_dir(slug)
        self.sessions_dir = self.device_dir / "sessions"
        self.config_dir = self.device_dir / "config"

    # -- session tier -------------------------------------------------

    def source_projects(self) -> list[Path]:
        projects_dir = self.config.projects_dir
        if not projects_dir.is_dir():
            return []
        return sorted(p for p in projects_dir.iterdir() if p.is_dir() and _visible(p))

    def archived_projects(self) -> list[Path]:
        if not self.sessions_dir.is_dir():
            return []
        return sorted(p for p in self.sessions_dir.iterdir() if p.is_dir())

    def plan_sessions(self) -> Iterator[FileChange]:
        """Yield one decision per file directly inside each source project."""
        for project in self.source_projects():
            dest_project = self.sessions_dir / project.name
            for source in sorted(project.iterdir()):
                if not source.is_file() or not _visible(source):
                    continue
                artifact = dest_project / artifact_name(source.name)
                yield FileChange(source, artifact, decide(source, artifact))

    def scan_sessions(self) -> ScanResult:
        """Apply the session plan, then prune projects deleted from the source."""
        result = ScanResult()
        for change in self.plan_sessions():
            self._apply(change, result)

        source_names = {p.name for p in self.source_projects()}
        archived = self.archived_projects()
        if not source_names:
            if archived:
                logger.warning(
                    "Source %s has no projects -- skipping removal to protect %d archived project(s)",
                    self.config.projects_dir, len(archived),
                )
                result.skipped_removal = True
            return result

        for project in archived:
            if project.name not in source_names:
                logger.info("Removing deleted project: %s", project.name)
                shutil.rmtree(project)
                result.removed += 1

        logger.info(
            "Sessions: %d added, %d updated, %d removed, %d unchanged",
            result.added, result.updated, result.removed, result.unchanged,
        )
        return result

    # -- config tier --------------------------------------------------

    def plan_config(self) -> Iterator[FileChange]:
        """Yield decisions for the configuration profile, denylist applied."""
        home = self.config.source_home
        for item in self.config.config_items:
            root = home / item
            if root.is_file():
                candidates = [root]
            elif root.is_dir():
                candidates = sorted(p for p in root.rglob("*") if p.is_file())
            else:
                continue
            for source in candidates:
                rel = source.relative_to(home)
                if is_denied(rel, self.config.denylist):
                    logger.debug("Skipping sensitive file: %s", rel)
                    continue
                artifact = self.config_dir / rel
                yield FileChange(source, artifact, decide(source, artifact))

    def scan_config(self) -> ScanResult:
        """Mirror the config tier, dropping sensitive or vanished files."""
        result = ScanResult()
        wanted: set[Path] = set()
        for change in self.plan_config():
            wanted.add(change.artifact)
            self._apply(change, result, compress=False)

        if not self.config_dir.is_dir():
            return result

        home_present = self.config.source_home.is_dir()
        for artifact in sorted(p for p in self.config_dir.rglob("*") if p.is_file()):
            rel = artifact.relative_to(self.config_dir)
            if is_denied(rel, self.config.denylist):
                logger.warning("Purging sensitive file from archive: %s", rel)
            elif artifact in wanted or not home_present:
                continue
            artifact.unlink()
            result.removed += 1

        self._prune_empty_dirs(self.config_dir)
        logger.info(
            "Config: %d added, %d updated, %d removed",
            result.added, result.updated, result.removed,
        )
        return result

    # -- helpers ------------------------------------------------------

    def _apply(self, change: FileChange, result: ScanResult, compress: Optional[bool] = None) -> None:
        if change.action == ChangeAction.SKIP:
            result.unchanged += 1
            return

        use_codec = change.compress if compress is None else compress
        if use_codec:
            self.codec.compress(change.source, change.artifact)
        else:
            self.codec.copy(change.source, change.artifact)

        if change.action == ChangeAction.ADD:
            result.added += 1
        else:
            result.updated += 1

    @staticmethod
    def _prune_empty_dirs(root: Path) -> None:
        for d in sorted((p for p in root.rglob("*") if p.is_dir()), reverse=True):
            if not any(d.iterdir()):
                d.rmdir()
