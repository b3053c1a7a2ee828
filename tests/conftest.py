"""Shared test fixtures for sessionvault."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import pytest

from sessionvault.config import ArchiveConfig
from sessionvault.engine import SyncEngine
from sessionvault.errors import VcsError
from sessionvault.hosting import HostingProvider
from sessionvault.models import BackendMode
from sessionvault.vcs import VersionControl

UNTRACKED = {".device-slug", "session-index.json", "backup.log", ".sync.lock"}


class FakeVcs(VersionControl):
    """In-memory VersionControl that snapshots the archive tree per commit."""

    def __init__(self, root: Path, initialized: bool = False):
        self.root = root
        self.initialized = initialized
        self.commits: list[tuple[str, str, dict[str, bytes]]] = []
        self.remote: Optional[str] = None
        self.reachable: set[str] = set()
        self.pushes = 0
        self.pulls = 0
        self.gcs = 0
        self.fail_push = False
        self.fail_pull = False
        self.fail_commit = False

    def _snapshot(self) -> dict[str, bytes]:
        snap = {}
        if not self.root.exists():
            return snap
        for p in sorted(self.root.rglob("*")):
            rel = p.relative_to(self.root).as_posix()
            if p.is_file() and p.name not in UNTRACKED and not p.name.endswith(".tmp"):
                snap[rel] = p.read_bytes()
        return snap

    def _restore(self, snap: dict[str, bytes]) -> None:
        for p in sorted(self.root.rglob("*"), reverse=True):
            rel = p.relative_to(self.root).as_posix()
            if p.is_file() and p.name not in UNTRACKED and rel not in snap:
                p.unlink()
            elif p.is_dir() and not any(p.iterdir()):
                p.rmdir()
        for rel, data in snap.items():
            target = self.root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

    def is_repo(self) -> bool:
        return self.initialized

    def init(self, branch: str = "main") -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.initialized = True

    def commit_all(self, message: str) -> Optional[str]:
        if self.fail_commit:
            raise VcsError(["git", "commit"], "simulated failure")
        snap = self._snapshot()
        if self.commits and self.commits[-1][2] == snap:
            return None
        if not self.commits and not snap:
            return None
        sha = f"c{len(self.commits) + 1:04d}"
        self.commits.append((sha, message, snap))
        return sha

    def head(self) -> Optional[str]:
        return self.commits[-1][0] if self.commits else None

    def last_commit_time(self) -> Optional[str]:
        return "2026-01-01T00:00:00+00:00" if self.commits else None

    def discard_changes(self) -> None:
        self._restore(self.commits[-1][2] if self.commits else {})

    def revert(self, commit: str) -> None:
        idx = [c[0] for c in self.commits].index(commit)
        before = self.commits[idx - 1][2] if idx > 0 else {}
        self._restore(before)
        self.commits.append((f"c{len(self.commits) + 1:04d}", f"Revert {commit}", before))

    def get_remote(self) -> Optional[str]:
        return self.remote

    def set_remote(self, url: str) -> None:
        self.remote = url

    def remove_remote(self) -> None:
        self.remote = None

    def can_reach(self, url: str) -> bool:
        return url in self.reachable

    def pull_rebase(self) -> None:
        if self.fail_pull:
            raise VcsError(["git", "pull"], "could not resolve host")
        self.pulls += 1

    def push(self) -> None:
        if self.fail_push:
            raise VcsError(["git", "push"], "permission denied")
        self.pushes += 1

    def gc(self) -> None:
        self.gcs += 1


class FakeHosting(HostingProvider):
    """HostingProvider double: no network, configurable auth state."""

    def __init__(self, installed: bool = True, user: Optional[str] = "octo"):
        self.installed = installed
        self.user = user
        self.repos: set[str] = set()
        self.created: list[str] = []

    def available(self) -> bool:
        return self.installed

    def authenticated_user(self) -> Optional[str]:
        return self.user

    def repo_exists(self, name: str) -> bool:
        return name in self.repos

    def create_private_repo(self, name: str) -> None:
        self.repos.add(name)
        self.created.append(name)

    def remote_url(self, name: str) -> str:
        return f"https://github.com/{self.user}/{name}.git"


def write_session(
    config: ArchiveConfig,
    project: str,
    uuid: str,
    records: Optional[list[dict]] = None,
    mtime: Optional[float] = None,
) -> Path:
    """Create a source session log under <source>/projects/<project>/."""
    records = records if records is not None else [
        {"type": "user", "message": {"content": f"hello from {uuid}"}},
        {"type": "assistant", "message": {"content": "hi"}},
    ]
    path = config.projects_dir / project / f"{uuid}.jsonl"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(r) + "\n" for r in records), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def config(tmp_path: Path) -> ArchiveConfig:
    """Archive and source roots inside a temp directory."""
    source = tmp_path / ".claude"
    source.mkdir()
    return ArchiveConfig(archive_root=tmp_path / ".claude-backup", source_home=source)


@pytest.fixture
def fake_vcs(config: ArchiveConfig) -> FakeVcs:
    return FakeVcs(config.archive_root)


@pytest.fixture
def fake_hosting() -> FakeHosting:
    return FakeHosting()


@pytest.fixture
def engine(config: ArchiveConfig, fake_vcs: FakeVcs, fake_hosting: FakeHosting) -> SyncEngine:
    """An initialized archive in local-only mode."""
    eng = SyncEngine(config, vcs=fake_vcs, hosting=fake_hosting, device="testbox")
    eng.initialize(BackendMode.NONE)
    return eng
