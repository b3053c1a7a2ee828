"""Tests for per-device and root manifests."""

from __future__ import annotations

import json
from pathlib import Path

from sessionvault.config import ArchiveConfig
from sessionvault.manifest import ManifestWriter
from sessionvault.models import BackendMode, DeviceManifest
from sessionvault.scanner import ChangeScanner

from conftest import write_session


def _seed(config: ArchiveConfig, slug: str, sessions: int) -> ArchiveConfig:
    """Back up `sessions` logs from a source home owned by device `slug`."""
    device = config.model_copy(update={"source_home": config.archive_root.parent / f"src-{slug}"})
    for i in range(sessions):
        write_session(device, f"proj-{slug}", f"{slug}-{i:04d}")
    ChangeScanner(device, slug).scan_sessions()
    return device


class TestStatistics:
    def test_session_stats_count_compressed_logs(self, config: ArchiveConfig) -> None:
        device = _seed(config, "laptop", 2)
        (device.projects_dir / "proj-laptop" / "notes.txt").write_text("abc")
        ChangeScanner(device, "laptop").scan_sessions()

        stats = ManifestWriter(config).session_stats("laptop")

        assert stats.files == 2
        assert stats.projects == 1
        assert stats.size_bytes > 0
        sources = sum(p.stat().st_size for p in (device.projects_dir / "proj-laptop").iterdir())
        assert stats.uncompressed_bytes == sources

    def test_empty_namespace(self, config: ArchiveConfig) -> None:
        writer = ManifestWriter(config)
        assert writer.session_stats("nobody").files == 0
        assert writer.config_stats("nobody").files == 0


class TestWrite:
    """Writing manifests and resolving the backend mode."""

    def test_write_on_fresh_install(self, config: ArchiveConfig) -> None:
        writer = ManifestWriter(config)
        manifest = writer.write("laptop", "Laptop", mode=BackendMode.NONE, user="me", last_sync="2026-01-01T00:00:00Z")

        path = config.device_dir("laptop") / "manifest.json"
        data = json.loads(path.read_text())
        assert data["deviceSlug"] == "laptop"
        assert data["mode"] == "none"
        assert data["lastSync"] == "2026-01-01T00:00:00Z"
        assert data["sessions"]["files"] == 0
        assert manifest.user == "me"

    def test_root_keeps_top_level_fields(self, config: ArchiveConfig) -> None:
        """Older readers see the current device at the top level."""
        _seed(config, "laptop", 2)
        ManifestWriter(config).write("laptop", "Laptop", mode=BackendMode.NONE, user="me")

        data = json.loads(config.root_manifest_path.read_text())
        assert data["version"] == 2
        assert data["device"] == "Laptop"
        assert data["sessions"]["files"] == 2
        assert "config" in data and "mode" in data and "user" in data

    def test_root_aggregates_all_devices(self, config: ArchiveConfig) -> None:
        writer = ManifestWriter(config)
        _seed(config, "desktop", 3)
        writer.write("desktop", "Desktop", mode=BackendMode.NONE, user="me")
        _seed(config, "laptop", 1)
        writer.write("laptop", "Laptop", mode=BackendMode.NONE, user="me")

        root = writer.read_root()
        assert root is not None
        assert root.device_slug == "laptop"
        assert [d.slug for d in root.devices] == ["desktop", "laptop"]
        assert [d.session_count for d in root.devices] == [3, 1]
        assert all(d.backup_size_bytes > 0 for d in root.devices)

    def test_mode_resolution_order(self, config: ArchiveConfig) -> None:
        writer = ManifestWriter(config)
        assert writer.resolve_mode("laptop") == BackendMode.HOSTED

        writer.write("laptop", "Laptop", mode=BackendMode.CUSTOM, remote="git@host:me/b.git", user="me")
        assert writer.resolve_mode("laptop") == BackendMode.CUSTOM
        assert writer.resolve_mode("laptop", BackendMode.NONE) == BackendMode.NONE

        # Existing mode and remote survive a write that does not name them.
        again = writer.write("laptop", "Laptop", user="me")
        assert again.mode == BackendMode.CUSTOM
        assert again.remote == "git@host:me/b.git"

    def test_root_mode_used_when_device_manifest_missing(self, config: ArchiveConfig) -> None:
        writer = ManifestWriter(config)
        writer.write("old", "Old", mode=BackendMode.NONE, user="me")
        assert writer.resolve_mode("brand-new") == BackendMode.NONE

    def test_keep_remote_false_clears_remote(self, config: ArchiveConfig) -> None:
        writer = ManifestWriter(config)
        writer.write("laptop", "Laptop", mode=BackendMode.CUSTOM, remote="r", user="me")
        cleared = writer.write("laptop", "Laptop", mode=BackendMode.NONE, user="me", keep_remote=False)
        assert cleared.remote is None

    def test_reads_manifest_without_optional_fields(self, config: ArchiveConfig) -> None:
        """A manifest written before the remote field existed still parses."""
        path = config.device_dir("laptop") / "manifest.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({
            "version": 2, "mode": "hosted", "device": "Laptop", "deviceSlug": "laptop",
            "user": "me", "lastSync": None,
            "config": {"files": 0, "sizeBytes": 0},
            "sessions": {"files": 0, "projects": 0, "sizeBytes": 0, "uncompressedBytes": 0},
        }))

        manifest = ManifestWriter(config).read_device("laptop")
        assert isinstance(manifest, DeviceManifest)
        assert manifest.remote is None

    def test_corrupt_manifest_reads_as_missing(self, config: ArchiveConfig, tmp_path: Path) -> None:
        config.root_manifest_path.parent.mkdir(parents=True)
        config.root_manifest_path.write_text("{not json")
        assert ManifestWriter(config).read_root() is None
