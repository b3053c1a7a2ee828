"""
Session index -- a flat, rebuildable catalog of every archived session.

The index is derived entirely from what is on disk under
devices/*/sessions/ and is never edited by hand. It is rebuilt in
full on every sync; deleting session-index.json loses nothing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from .codec import ARTIFACT_SUFFIX, LOG_SUFFIX
from .config import ArchiveConfig
from .models import SessionIndex, SessionIndexEntry, mtime_iso, utc_iso

logger = logging.getLogger("sessionvault.index")

SESSION_ARTIFACT = LOG_SUFFIX + ARTIFACT_SUFFIX


class SessionIndexer:
    """Builds and persists the cross-device session index."""

    def __init__(self, config: ArchiveConfig):
        self.config = config

    def artifacts(self, device: Optional[str] = None) -> Iterator[tuple[str, str, Path]]:
        """Yield ``(device, project, path)`` for each session artifact on disk."""
        devices_dir = self.config.devices_dir
        if not devices_dir.is_dir():
            return
        for device_dir in sorted(p for p in devices_dir.iterdir() if p.is_dir()):
            if device is not None and device_dir.name != device:
                continue
            sessions_dir = device_dir / "sessions"
            if not sessions_dir.is_dir():
                continue
            for project_dir in sorted(p for p in sessions_dir.iterdir() if p.is_dir()):
                for artifact in sorted(project_dir.glob("*" + SESSION_ARTIFACT)):
                    if artifact.is_file() and not artifact.name.startswith("."):
                        yield device_dir.name, project_dir.name, artifact

    def build(self, generated_at: Optional[str] = None) -> SessionIndex:
        """Scan every device namespace and return a fresh index.

        Entries are ordered by (device, project, uuid), so the same tree
        always produces the same session list.
        """
        entries = [
            SessionIndexEntry(
                uuid=artifact.name[: -len(SESSION_ARTIFACT)],
                project_id=project,
                device=device,
                size_bytes=artifact.stat().st_size,
                archived_at=mtime_iso(artifact),
            )
            for device, project, artifact in self.artifacts()
        ]
        return SessionIndex(generated_at=generated_at or utc_iso(), sessions=entries)

    def rebuild(self) -> SessionIndex:
        """Build the index and write session-index.json."""
        index = self.build()
        path = self.config.index_path
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(index.to_json(), encoding="utf-8")
        tmp.replace(path)
        logger.info("Indexed %d sessions", len(index.sessions))
        return index

    def load(self) -> SessionIndex:
        """Read the persisted index, building one if it is missing or corrupt."""
        path = self.config.index_path
        if path.exists():
            try:
                return SessionIndex.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as exc:
                logger.warning("Session index unreadable, rebuilding in memory: %s", exc)
        return self.build()

    def artifact_path(self, entry: SessionIndexEntry) -> Path:
        return self.config.device_dir(entry.device) / "sessions" / entry.project_id / entry.filename
