"""
Sync engine -- wires the archive components into one sync run.

    sessionvault sync  ->  lock -> migrate -> scan -> manifests -> index
                           -> commit -> pull --rebase / push -> unlock

Read-only operations (status, list, restore, peek) go around the lock
and may see an index or manifest that a concurrent sync is about to
replace.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .backend import BackendAdapter
from .codec import Codec, GzipCodec
from .config import ArchiveConfig
from .device import read_slug, resolve_slug, short_hostname
from .errors import ConfigurationMissing, LockBusy, RemoteUnavailable
from .hosting import HostingProvider
from .index import SessionIndexer
from .lock import LockManager
from .manifest import ManifestWriter
from .migrator import NamespaceMigrator
from .models import BackendConfig, BackendMode, SessionIndexEntry, SyncReport
from .query import QueryEngine
from .restore import RestoreEngine
from .scanner import ChangeScanner
from .vcs import GitBackend, VersionControl

logger = logging.getLogger("sessionvault.engine")

GITIGNORE_ENTRIES = [
    "backup.log",
    "session-index.json",
    ".device-slug",
    ".sync.lock",
    "*.tmp",
]


class SyncEngine:
    """Orchestrates the archive: sync, backend switching, and reads."""

    def __init__(
        self,
        config: ArchiveConfig,
        vcs: Optional[VersionControl] = None,
        hosting: Optional[HostingProvider] = None,
        codec: Optional[Codec] = None,
        device: Optional[str] = None,
    ):
        self.config = config
        self.device = device or short_hostname()
        self.codec = codec or GzipCodec()
        self.vcs = vcs or GitBackend(config.archive_root, config.branch, config.git_timeout)
        self.manifests = ManifestWriter(config, self.codec)
        self.indexer = SessionIndexer(config)
        self.lock = LockManager(config.lock_path)
        self.backend = BackendAdapter(config, self.vcs, hosting)
        self.migrator = NamespaceMigrator(config, self.vcs, self.manifests)

    # -- state --------------------------------------------------------

    def is_initialized(self) -> bool:
        return self.config.archive_root.is_dir() and self.vcs.is_repo()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise ConfigurationMissing(self.config.archive_root)

    @property
    def slug(self) -> str:
        return resolve_slug(self.config, self.device)

    # -- setup --------------------------------------------------------

    def initialize(
        self,
        mode: Optional[BackendMode] = None,
        remote: Optional[str] = None,
    ) -> BackendConfig:
        """Create the archive repository and enter ``mode``.

        On a fresh archive ``mode`` defaults to custom-remote when a remote
        is given and hosted otherwise. On an archive that is already
        initialized the backend only changes when ``mode`` or ``remote``
        is passed; otherwise the current backend is returned untouched.
        """
        already = self.is_initialized()
        root = self.config.archive_root
        root.mkdir(parents=True, exist_ok=True)
        if not self.vcs.is_repo():
            self.vcs.init(self.config.branch)
            logger.info("Initialized archive repository at %s", root)

        self._write_gitignore()
        slug = self.slug
        if not self.migrator.needs_migration() and self.manifests.read_device(slug) is None:
            self.manifests.write(slug, self.device, mode=BackendMode.NONE)
        self.vcs.commit_all(f"initialize archive ({slug})")

        if already and mode is None and remote is None:
            logger.info("Archive already initialized at %s, backend unchanged", root)
            return self.current_backend()
        if mode is None:
            mode = BackendMode.CUSTOM if remote else BackendMode.HOSTED
        return self.set_backend(mode, remote)

    def current_backend(self) -> BackendConfig:
        """Backend mode recorded on disk plus the remote git points at."""
        return BackendConfig(
            mode=self.manifests.resolve_mode(self.slug),
            remote=self.vcs.get_remote(),
        )

    def _write_gitignore(self) -> None:
        path = self.config.archive_root / ".gitignore"
        existing = path.read_text(encoding="utf-8").splitlines() if path.exists() else []
        missing = [e for e in GITIGNORE_ENTRIES if e not in existing]
        if missing:
            path.write_text("\n".join(existing + missing) + "\n", encoding="utf-8")

    def set_backend(self, mode: BackendMode, remote: Optional[str] = None) -> BackendConfig:
        """Validate and switch the backend mode under the sync lock.

        Raises:
            LockBusy: A sync is running.
            BackendValidationError: The new target failed pre-flight.
        """
        self.require_initialized()
        with self.lock.held() as acquired:
            if not acquired:
                raise LockBusy(self.lock.owner_pid())
            slug = self.slug
            self.migrator.migrate(slug, self.device)

            def persist(new: BackendConfig) -> None:
                current = self.manifests.read_device(slug)
                self.manifests.write(
                    slug, self.device,
                    mode=new.mode, remote=new.remote, keep_remote=False,
                    last_sync=current.last_sync if current else None,
                )
                self.vcs.commit_all(f"backend: {new.mode.value}")

            return self.backend.switch(mode, remote, persist=persist)

    # -- sync ---------------------------------------------------------

    def sync(self, sessions: bool = True, config: bool = True) -> SyncReport:
        """Run one sync. Returns status="busy" if another sync holds the lock.

        Args:
            sessions: Mirror the session tier.
            config: Mirror the configuration tier.
        """
        self.require_initialized()
        with self.lock.held() as acquired:
            if not acquired:
                return SyncReport(status="busy", device=self.device)
            return self._sync_locked(sessions, config)

    def _sync_locked(self, sessions: bool = True, config: bool = True) -> SyncReport:
        slug = self.slug
        report = SyncReport(device=slug)
        logger.info("Starting sync for %s", slug)

        report.migration = self.migrator.migrate(slug, self.device)

        scanner = ChangeScanner(self.config, slug, self.codec)
        if sessions:
            report.sessions = scanner.scan_sessions()
        if config:
            report.config = scanner.scan_config()

        manifest = self.manifests.write(slug, self.device)
        report.indexed = len(self.indexer.rebuild().sessions)

        s = report.sessions
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
        report.commit = self.vcs.commit_all(
            f"backup {stamp} ({slug}): {s.added} added, {s.updated} updated, {s.removed} removed"
        )
        report.committed = report.commit is not None

        try:
            report.pushed = self.backend.sync_remote(manifest.mode)
        except RemoteUnavailable as exc:
            report.status = "remote-failed"
            report.remote_error = str(exc)

        report.total_bytes = self.archive_size()
        report.storage_warning = self.backend.check_storage(report.total_bytes)
        logger.info(
            "Sync done for %s: %d indexed, commit %s, pushed %s",
            slug, report.indexed, report.commit or "none", report.pushed,
        )
        return report

    # -- reads --------------------------------------------------------

    def archive_size(self) -> int:
        devices = self.config.devices_dir
        if not devices.is_dir():
            return 0
        return sum(p.stat().st_size for p in devices.rglob("*") if p.is_file())

    def query(
        self,
        last: Optional[int] = None,
        date: Optional[str] = None,
        project: Optional[str] = None,
    ) -> list[SessionIndexEntry]:
        return QueryEngine(self.indexer.load()).run(last=last, date=date, project=project)

    def restorer(self) -> RestoreEngine:
        return RestoreEngine(self.config, self.codec)

    def status(self) -> dict[str, Any]:
        """Snapshot of archive state. Takes no lock and never writes."""
        self.require_initialized()
        root = self.manifests.read_root()
        slug = read_slug(self.config)
        projects_dir = self.config.projects_dir
        source_projects = (
            [p for p in projects_dir.iterdir() if p.is_dir()] if projects_dir.is_dir() else []
        )
        owner = self.lock.owner_pid() if self.config.lock_path.exists() else None
        return {
            "archive": str(self.config.archive_root),
            "device": self.device,
            "slug": slug,
            "manifest": root.model_dump(mode="json", by_alias=True) if root else None,
            "remote": self.vcs.get_remote(),
            "last_commit": self.vcs.last_commit_time(),
            "indexed_sessions": len(self.indexer.load().sessions),
            "archive_bytes": self.archive_size(),
            "source_projects": len(source_projects),
            "source_sessions": sum(len(list(p.glob("*.jsonl"))) for p in source_projects),
            "sync_running_pid": owner,
        }
