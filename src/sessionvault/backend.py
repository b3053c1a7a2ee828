"""
Backend adapter -- where the archive repository is pushed, if anywhere.

    none           local commits only
    hosted         private repository provisioned through gh
    custom-remote  any git URL the user supplies

Switching modes validates the new target first (tool present,
authenticated, reachable, test push succeeds). The mode recorded in the
manifest only changes once validation has passed.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .config import ArchiveConfig
from .errors import BackendValidationError, RemoteUnavailable, VcsError
from .hosting import GhHostingProvider, HostingProvider
from .models import BackendConfig, BackendMode
from .vcs import VersionControl

logger = logging.getLogger("sessionvault.backend")

PersistFn = Callable[[BackendConfig], None]


class BackendAdapter:
    """State machine over BackendConfig.mode plus the commit/push cycle."""

    def __init__(
        self,
        config: ArchiveConfig,
        vcs: VersionControl,
        hosting: Optional[HostingProvider] = None,
    ):
        self.config = config
        self.vcs = vcs
        self.hosting = hosting or GhHostingProvider()

    # -- transitions --------------------------------------------------

    def switch(
        self,
        mode: BackendMode,
        remote: Optional[str] = None,
        persist: Optional[PersistFn] = None,
    ) -> BackendConfig:
        """Validate and enter ``mode``.

        Args:
            mode: Target backend mode.
            remote: Remote URL; required for custom-remote.
            persist: Called with the new BackendConfig once validation passes.

        Returns:
            The BackendConfig now in effect.

        Raises:
            BackendValidationError: Pre-flight failed; nothing was persisted.
        """
        mode = BackendMode(mode)
        if mode == BackendMode.HOSTED:
            new = self._validate_hosted()
        elif mode == BackendMode.CUSTOM:
            new = self._validate_custom(remote)
        else:
            self.vcs.remove_remote()
            new = BackendConfig(mode=BackendMode.NONE)

        if persist is not None:
            persist(new)
        logger.info("Backend mode set to %s%s", new.mode.value, f" ({new.remote})" if new.remote else "")
        return new

    def _validate_hosted(self) -> BackendConfig:
        gh = self.hosting
        if not gh.available():
            raise BackendValidationError("gh (GitHub CLI) not found. Install: https://cli.github.com")
        user = gh.authenticated_user()
        if not user:
            raise BackendValidationError("gh is not authenticated. Run: gh auth login")

        name = self.config.repo_name
        try:
            if gh.repo_exists(name):
                logger.info("Repository %s/%s already exists", user, name)
            else:
                gh.create_private_repo(name)
        except RuntimeError as exc:
            raise BackendValidationError(str(exc)) from exc

        url = gh.remote_url(name)
        self._attach_and_test(url)
        return BackendConfig(mode=BackendMode.HOSTED, remote=url)

    def _validate_custom(self, remote: Optional[str]) -> BackendConfig:
        if not remote:
            raise BackendValidationError("custom-remote mode needs a remote URL")
        if not self.vcs.can_reach(remote):
            raise BackendValidationError(f"Remote not reachable: {remote}")
        self._attach_and_test(remote)
        return BackendConfig(mode=BackendMode.CUSTOM, remote=remote)

    def _attach_and_test(self, url: str) -> None:
        previous = self.vcs.get_remote()
        self.vcs.set_remote(url)
        if self.vcs.head() is None:
            # Nothing to push yet; the first sync will do it.
            return
        try:
            self.vcs.pull_rebase()
            self.vcs.push()
        except VcsError as exc:
            if previous:
                self.vcs.set_remote(previous)
            else:
                self.vcs.remove_remote()
            raise BackendValidationError(f"Test push to {url} failed: {exc}") from exc

    # -- normal sync --------------------------------------------------

    def sync_remote(self, mode: BackendMode) -> bool:
        """Pull-rebase, push and gc when a remote is configured.

        Returns:
            True if a push happened, False in a mode without remote.

        Raises:
            RemoteUnavailable: Pull or push failed. Local commits are untouched.
        """
        if not BackendMode(mode).has_remote:
            self.vcs.gc()
            return False
        if self.vcs.get_remote() is None:
            raise RemoteUnavailable(f"Mode {BackendMode(mode).value} but no remote configured")
        try:
            self.vcs.pull_rebase()
            self.vcs.push()
        except VcsError as exc:
            logger.warning("Remote step failed, local commit kept: %s", exc)
            raise RemoteUnavailable(str(exc)) from exc
        self.vcs.gc()
        logger.info("Pushed to %s", self.vcs.get_remote())
        return True

    def check_storage(self, total_bytes: int) -> bool:
        """Warn, never fail, when the archive outgrows the soft ceiling."""
        limit = self.config.storage_warn_bytes
        if total_bytes <= limit:
            return False
        logger.warning(
            "Archive is %.1f MB, above the %.1f MB soft limit; hosted repositories may start rejecting pushes",
            total_bytes / 1024 / 1024, limit / 1024 / 1024,
        )
        return True
