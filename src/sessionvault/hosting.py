"""
Hosted repository provisioning through the GitHub CLI (gh).

Only what the backend adapter needs: is gh usable, who is logged in,
does the private archive repository exist, and create it if not.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger("sessionvault.hosting")


class HostingProvider(ABC):
    """Provision and verify a private repository on a hosting service."""

    @abstractmethod
    def available(self) -> bool:
        """True if the provisioning tool is installed."""

    @abstractmethod
    def authenticated_user(self) -> Optional[str]:
        """Login of the authenticated user, or None."""

    @abstractmethod
    def repo_exists(self, name: str) -> bool:
        """Whether ``<user>/<name>`` exists."""

    @abstractmethod
    def create_private_repo(self, name: str) -> None:
        """Create a private repository named ``name``."""

    @abstractmethod
    def remote_url(self, name: str) -> str:
        """Clone URL for the repository."""


class GhHostingProvider(HostingProvider):
    """HostingProvider backed by the ``gh`` command line."""

    def __init__(self, timeout: int = 30):
        self.timeout = timeout
        self._user: Optional[str] = None

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["gh", *args], capture_output=True, text=True,
            check=False, timeout=self.timeout,
        )

    def available(self) -> bool:
        return shutil.which("gh") is not None

    def authenticated_user(self) -> Optional[str]:
        if self._user:
            return self._user
        try:
            result = self._run("api", "user", "--jq", ".login")
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("gh api user failed: %s", exc)
            return None
        login = result.stdout.strip()
        if result.returncode != 0 or not login:
            return None
        self._user = login
        return login

    def repo_exists(self, name: str) -> bool:
        """Raises RuntimeError if gh cannot be run or times out."""
        user = self.authenticated_user()
        if not user:
            return False
        try:
            result = self._run("repo", "view", f"{user}/{name}")
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RuntimeError(f"gh repo view failed: {exc}") from exc
        return result.returncode == 0

    def create_private_repo(self, name: str) -> None:
        try:
            result = self._run(
                "repo", "create", name, "--private",
                "--description", "Claude Code session backups (auto-generated)",
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RuntimeError(f"gh repo create failed: {exc}") from exc
        if result.returncode != 0:
            raise RuntimeError(f"gh repo create failed: {result.stderr.strip()}")
        logger.info("Created private repository %s", name)

    def remote_url(self, name: str) -> str:
        return f"https://github.com/{self.authenticated_user()}/{name}.git"
