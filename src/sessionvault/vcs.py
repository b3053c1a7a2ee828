"""
Version control for the archive root.

The archive is a plain git repository. Everything the core needs from
git goes through the VersionControl interface so the backend state
machine and the migrator can be exercised against a fake in tests.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .errors import VcsError

logger = logging.getLogger("sessionvault.vcs")

REMOTE_NAME = "origin"


class VersionControl(ABC):
    """What the archive core needs from a version-control system."""

    @abstractmethod
    def is_repo(self) -> bool:
        """True if the archive root is already a repository."""

    @abstractmethod
    def init(self, branch: str = "main") -> None:
        """Create an empty repository at the archive root."""

    @abstractmethod
    def commit_all(self, message: str) -> Optional[str]:
        """Stage every change and commit.

        Returns:
            The new commit id, or None when there was nothing to commit.
        """

    @abstractmethod
    def head(self) -> Optional[str]:
        """Current commit id, or None on an unborn branch."""

    @abstractmethod
    def last_commit_time(self) -> Optional[str]:
        """ISO timestamp of the last commit, or None."""

    @abstractmethod
    def discard_changes(self) -> None:
        """Reset the working tree to the last commit, dropping untracked files."""

    @abstractmethod
    def revert(self, commit: str) -> None:
        """Create a commit that undoes ``commit``."""

    @abstractmethod
    def get_remote(self) -> Optional[str]:
        """URL of the configured remote, or None."""

    @abstractmethod
    def set_remote(self, url: str) -> None:
        """Point the remote at ``url``, adding it if absent."""

    @abstractmethod
    def remove_remote(self) -> None:
        """Forget the remote. No-op when none is configured."""

    @abstractmethod
    def can_reach(self, url: str) -> bool:
        """Lightweight reachability check of a remote URL."""

    @abstractmethod
    def pull_rebase(self) -> None:
        """Pull from the remote, rebasing local commits on top."""

    @abstractmethod
    def push(self) -> None:
        """Push the current branch to the remote."""

    @abstractmethod
    def gc(self) -> None:
        """Opportunistic repository maintenance."""


class GitBackend(VersionControl):
    """VersionControl implemented with the git command line."""

    def __init__(self, root: Path, branch: str = "main", timeout: int = 120):
        self.root = root
        self.branch = branch
        self.timeout = timeout

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, check=False,
                cwd=str(self.root), timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise VcsError(cmd, str(exc)) from exc
        if check and result.returncode != 0:
            logger.error("Git command failed: %s -> %s", " ".join(cmd), result.stderr.strip())
            raise VcsError(cmd, result.stderr, result.returncode)
        return result

    def is_repo(self) -> bool:
        return (self.root / ".git").exists()

    def init(self, branch: str = "main") -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._git("init", "-q", "-b", branch)
        self.branch = branch

    def commit_all(self, message: str) -> Optional[str]:
        self._git("add", "-A")
        staged = self._git("diff", "--cached", "--quiet", check=False)
        if staged.returncode == 0:
            return None
        self._git("commit", "-q", "-m", message)
        return self.head()

    def head(self) -> Optional[str]:
        result = self._git("rev-parse", "--verify", "-q", "HEAD", check=False)
        return result.stdout.strip() or None

    def last_commit_time(self) -> Optional[str]:
        result = self._git("log", "-1", "--format=%cI", check=False)
        return result.stdout.strip() or None

    def discard_changes(self) -> None:
        if self.head():
            self._git("reset", "-q", "--hard", "HEAD")
        self._git("clean", "-q", "-fd")

    def revert(self, commit: str) -> None:
        self._git("revert", "--no-edit", commit)

    def get_remote(self) -> Optional[str]:
        result = self._git("remote", "get-url", REMOTE_NAME, check=False)
        return result.stdout.strip() or None

    def set_remote(self, url: str) -> None:
        if self.get_remote() is None:
            self._git("remote", "add", REMOTE_NAME, url)
        else:
            self._git("remote", "set-url", REMOTE_NAME, url)

    def remove_remote(self) -> None:
        if self.get_remote() is not None:
            self._git("remote", "remove", REMOTE_NAME)

    def can_reach(self, url: str) -> bool:
        return self._git("ls-remote", "--heads", url, check=False).returncode == 0

    def pull_rebase(self) -> None:
        # An empty remote has no branch to pull yet.
        heads = self._git("ls-remote", "--heads", REMOTE_NAME, self.branch)
        if not heads.stdout.strip():
            logger.debug("Remote has no %s branch yet, skipping pull", self.branch)
            return
        # The root manifest is the only shared file; replayed local commits win.
        try:
            self._git("pull", "-q", "--rebase", "-X", "theirs", REMOTE_NAME, self.branch)
        except VcsError:
            self._git("rebase", "--abort", check=False)
            raise

    def push(self) -> None:
        self._git("push", "-q", "-u", REMOTE_NAME, f"HEAD:{self.branch}")

    def gc(self) -> None:
        self._git("gc", "--auto", "--quiet", check=False)
