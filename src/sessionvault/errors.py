"""
Error taxonomy for the archive core.

Structural and security violations are fatal and fail closed.
Lock contention and remote failures are reported without touching
local state; the CLI decides how loudly to surface them.
"""

from __future__ import annotations

from typing import Optional


class SessionVaultError(Exception):
    """Base class for every error raised by the archive core."""


class ConfigurationMissing(SessionVaultError):
    """The archive has not been initialized."""

    def __init__(self, root: object, hint: str = "Run: sessionvault init"):
        self.root = root
        super().__init__(f"Archive not initialized at {root}. {hint}")


class LockBusy(SessionVaultError):
    """Another sync currently owns the archive lock."""

    def __init__(self, pid: Optional[int] = None):
        self.pid = pid
        owner = f" (pid {pid})" if pid else ""
        super().__init__(f"Another sync is in progress{owner}")


class InvalidIdentifier(SessionVaultError, ValueError):
    """A session identifier contains characters outside [A-Za-z0-9._-]."""


class NotFound(SessionVaultError):
    """No archived session matches the identifier."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"No backup found matching: {identifier}")


class AmbiguousIdentifier(SessionVaultError):
    """More than one archived session matches the identifier."""

    def __init__(self, identifier: str, candidates: list[str]):
        self.identifier = identifier
        self.candidates = candidates
        super().__init__(
            f"{len(candidates)} sessions match {identifier!r}; "
            "provide a more specific identifier"
        )


class SecurityViolation(SessionVaultError):
    """An inbound archive carries a sensitive or unsafe path."""

    def __init__(self, paths: list[str]):
        self.paths = paths
        super().__init__(
            "Refusing to import sensitive or unsafe paths: " + ", ".join(paths)
        )


class RemoteUnavailable(SessionVaultError):
    """Pull or push against the configured remote failed."""


class BackendValidationError(SessionVaultError):
    """Pre-flight validation for a backend mode transition failed."""


class RestoreFailed(SessionVaultError):
    """An archived session could not be decompressed back to its source path."""

    def __init__(self, uuid: str, reason: str):
        self.uuid = uuid
        self.reason = reason
        super().__init__(f"Restore of {uuid} failed: {reason}")


class MigrationFailure(SessionVaultError):
    """Namespace restructuring failed and was rolled back."""


class VcsError(SessionVaultError):
    """A version-control command exited non-zero."""

    def __init__(self, cmd: list[str], stderr: str = "", returncode: int = 1):
        self.cmd = cmd
        self.stderr = stderr.strip()
        self.returncode = returncode
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"{' '.join(cmd)} failed ({returncode}){detail}")
