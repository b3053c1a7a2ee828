"""
Manifest writer -- per-device and root metadata documents.

    devices/<slug>/manifest.json   source of truth for one device
    manifest.json                  current device's fields at top level,
                                   plus a "devices" array covering all

Readers that predate the per-device layout read top-level fields of
the root manifest; those fields are always the current device's.
"""

from __future__ import annotations

import getpass
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .codec import ARTIFACT_SUFFIX, Codec, GzipCodec
from .config import ArchiveConfig
from .models import (
    BackendMode,
    ConfigStats,
    DeviceManifest,
    DeviceSummary,
    RootManifest,
    SessionStats,
    utc_iso,
)

logger = logging.getLogger("sessionvault.manifest")

MANIFEST_NAME = "manifest.json"


def _files(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and not p.name.startswith("."))


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)


class ManifestWriter:
    """Computes archive statistics and writes manifest documents."""

    def __init__(self, config: ArchiveConfig, codec: Optional[Codec] = None):
        self.config = config
        self.codec = codec or GzipCodec()

    def device_manifest_path(self, slug: str) -> Path:
        return self.config.device_dir(slug) / MANIFEST_NAME

    # -- statistics ---------------------------------------------------

    def config_stats(self, slug: str) -> ConfigStats:
        files = _files(self.config.device_dir(slug) / "config")
        return ConfigStats(files=len(files), size_bytes=sum(f.stat().st_size for f in files))

    def session_stats(self, slug: str) -> SessionStats:
        sessions_dir = self.config.device_dir(slug) / "sessions"
        stats = SessionStats()
        if sessions_dir.is_dir():
            stats.projects = sum(1 for p in sessions_dir.iterdir() if p.is_dir())
        for f in _files(sessions_dir):
            size = f.stat().st_size
            stats.size_bytes += size
            if f.name.endswith(".jsonl" + ARTIFACT_SUFFIX):
                stats.files += 1
                stats.uncompressed_bytes += self.codec.uncompressed_size(f)
            else:
                stats.uncompressed_bytes += size
        return stats

    # -- reading ------------------------------------------------------

    def read_device(self, slug: str) -> Optional[DeviceManifest]:
        return self._read(self.device_manifest_path(slug), DeviceManifest)

    def read_root(self) -> Optional[RootManifest]:
        return self._read(self.config.root_manifest_path, RootManifest)

    def _read(self, path: Path, model):
        if not path.exists():
            return None
        try:
            return model.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable manifest %s: %s", path, exc)
            return None

    def resolve_mode(self, slug: str, explicit: Optional[BackendMode] = None) -> BackendMode:
        """Explicit mode, else the mode on disk, else hosted."""
        if explicit is not None:
            return BackendMode(explicit)
        for existing in (self.read_device(slug), self.read_root()):
            if existing is not None:
                return existing.mode
        return BackendMode.HOSTED

    # -- writing ------------------------------------------------------

    def write(
        self,
        slug: str,
        device: str,
        mode: Optional[BackendMode] = None,
        remote: Optional[str] = None,
        user: Optional[str] = None,
        last_sync: Optional[str] = None,
        keep_remote: bool = True,
    ) -> DeviceManifest:
        """Write the per-device manifest, then the root manifest.

        Safe on a brand-new install: the device directory is created
        if it does not exist yet.

        Args:
            slug: Device namespace to describe.
            device: Human-readable device name.
            mode: Explicit backend mode; wins over the mode on disk.
            remote: Remote address to record.
            user: Owner recorded in the manifest. Defaults to the login name.
            last_sync: Timestamp of the sync. Defaults to now.
            keep_remote: Carry the on-disk remote forward when ``remote`` is None.

        Returns:
            The per-device manifest that was written.
        """
        previous = self.read_device(slug)
        if remote is None and keep_remote and previous is not None:
            remote = previous.remote

        manifest = DeviceManifest(
            mode=self.resolve_mode(slug, mode),
            device=device,
            device_slug=slug,
            user=user or (previous.user if previous else "") or getpass.getuser(),
            last_sync=last_sync or utc_iso(),
            config=self.config_stats(slug),
            sessions=self.session_stats(slug),
            remote=remote,
        )
        _write(self.device_manifest_path(slug), manifest.to_json())
        self.write_root(manifest)
        logger.info(
            "Manifest written for %s: %d sessions, %d config files",
            slug, manifest.sessions.files, manifest.config.files,
        )
        return manifest

    def write_root(self, current: DeviceManifest) -> RootManifest:
        """Aggregate every device manifest into the root manifest."""
        summaries: list[DeviceSummary] = []
        devices_dir = self.config.devices_dir
        slugs = sorted(p.name for p in devices_dir.iterdir() if p.is_dir()) if devices_dir.is_dir() else []
        for slug in slugs:
            m = current if slug == current.device_slug else self.read_device(slug)
            if m is None:
                continue
            summaries.append(DeviceSummary(
                slug=slug,
                device=m.device,
                last_sync=m.last_sync,
                session_count=m.sessions.files,
                backup_size_bytes=m.sessions.size_bytes + m.config.size_bytes,
            ))

        root = RootManifest(**current.model_dump(), devices=summaries)
        _write(self.config.root_manifest_path, root.to_json())
        return root
