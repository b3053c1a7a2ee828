"""
Archive data models -- manifests, index entries, and operation reports.

Everything that is written to disk goes through these pydantic models,
serialized with camelCase keys. New fields are only ever added, so a
reader of an older schema keeps working.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MANIFEST_VERSION = 2
INDEX_VERSION = 1


def utc_iso(dt: Optional[datetime] = None) -> str:
    """Format a timestamp as second-precision UTC ISO-8601 with a Z suffix."""
    dt = dt or datetime.now(timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def mtime_iso(path: Path) -> str:
    """UTC ISO timestamp of a file's modification time."""
    return utc_iso(datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc))


class _Document(BaseModel):
    """Base for JSON documents stored in the archive."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2) + "\n"


class BackendMode(str, Enum):
    """Remote storage strategy for the archive repository."""

    NONE = "none"
    HOSTED = "hosted"
    CUSTOM = "custom-remote"

    @property
    def has_remote(self) -> bool:
        return self is not BackendMode.NONE


class BackendConfig(BaseModel):
    """Backend mode plus the remote address it pushes to."""

    mode: BackendMode = BackendMode.HOSTED
    remote: Optional[str] = None


class ConfigStats(_Document):
    files: int = 0
    size_bytes: int = 0


class SessionStats(_Document):
    files: int = 0
    projects: int = 0
    size_bytes: int = 0
    uncompressed_bytes: int = 0


class DeviceManifest(_Document):
    """Per-device manifest, the source of truth for one namespace."""

    version: int = MANIFEST_VERSION
    mode: BackendMode = BackendMode.HOSTED
    device: str = ""
    device_slug: str = ""
    user: str = ""
    last_sync: Optional[str] = None
    config: ConfigStats = Field(default_factory=ConfigStats)
    sessions: SessionStats = Field(default_factory=SessionStats)
    remote: Optional[str] = None


class DeviceSummary(_Document):
    """One row of the root manifest's device aggregation."""

    slug: str
    device: str = ""
    last_sync: Optional[str] = None
    session_count: int = 0
    backup_size_bytes: int = 0


class RootManifest(DeviceManifest):
    """Root manifest: the current device's fields plus every known device."""

    devices: list[DeviceSummary] = Field(default_factory=list)


class SessionIndexEntry(_Document):
    uuid: str
    project_id: str
    device: str
    size_bytes: int = 0
    archived_at: str

    @property
    def filename(self) -> str:
        return f"{self.uuid}.jsonl.gz"


class SessionIndex(_Document):
    """Flat catalog of every archived session across all namespaces."""

    version: int = INDEX_VERSION
    generated_at: str = Field(default_factory=utc_iso)
    sessions: list[SessionIndexEntry] = Field(default_factory=list)


class ChangeAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    SKIP = "skip"


class ScanResult(BaseModel):
    """Counts from one pass of the change scanner."""

    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0
    skipped_removal: bool = False


class MigrationResult(BaseModel):
    migrated: bool = False
    slug: str = ""
    commit: Optional[str] = None


class RestoreOutcome(str, Enum):
    RESTORED = "restored"
    SKIPPED = "skipped"
    FAILED = "failed"


class RestoreItem(BaseModel):
    uuid: str
    project_id: str
    device: str
    destination: Path
    outcome: RestoreOutcome
    error: Optional[str] = None


class RestoreReport(BaseModel):
    """Aggregate result of a single or bulk restore."""

    restored: int = 0
    skipped: int = 0
    failed: int = 0
    items: list[RestoreItem] = Field(default_factory=list)

    def record(self, item: RestoreItem) -> None:
        self.items.append(item)
        if item.outcome == RestoreOutcome.RESTORED:
            self.restored += 1
        elif item.outcome == RestoreOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


class SyncReport(BaseModel):
    """What a sync invocation did, end to end."""

    status: str = "ok"
    device: str = ""
    sessions: ScanResult = Field(default_factory=ScanResult)
    config: ScanResult = Field(default_factory=ScanResult)
    migration: Optional[MigrationResult] = None
    committed: bool = False
    commit: Optional[str] = None
    pushed: bool = False
    remote_error: Optional[str] = None
    indexed: int = 0
    total_bytes: int = 0
    storage_warning: bool = False
