"""Tests for the session index and the query engine."""

from __future__ import annotations

import gzip
import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from sessionvault.config import ArchiveConfig
from sessionvault.index import SessionIndexer
from sessionvault.models import SessionIndex, SessionIndexEntry
from sessionvault.query import QueryEngine


def _artifact(config: ArchiveConfig, device: str, project: str, uuid: str, when: str) -> Path:
    path = config.device_dir(device) / "sessions" / project / f"{uuid}.jsonl.gz"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(gzip.compress(b'{"type":"user"}\n', mtime=0))
    ts = datetime.strptime(when, "%Y-%m-%d").replace(tzinfo=timezone.utc).timestamp()
    os.utime(path, (ts, ts))
    return path


@pytest.fixture
def populated(config: ArchiveConfig) -> ArchiveConfig:
    _artifact(config, "laptop", "-home-me-WebApp", "aaaa-0001", "2026-01-01")
    _artifact(config, "laptop", "-home-me-cli", "bbbb-0002", "2026-02-01")
    _artifact(config, "desktop", "-home-me-webapp", "cccc-0003", "2026-03-01")
    return config


class TestSessionIndexer:
    """Building and persisting the index."""

    def test_build_covers_all_devices(self, populated: ArchiveConfig) -> None:
        index = SessionIndexer(populated).build()
        assert [(e.device, e.uuid) for e in index.sessions] == [
            ("desktop", "cccc-0003"),
            ("laptop", "aaaa-0001"),
            ("laptop", "bbbb-0002"),
        ]
        first = index.sessions[0]
        assert first.project_id == "-home-me-webapp"
        assert first.archived_at == "2026-03-01T00:00:00Z"
        assert first.size_bytes > 0

    def test_build_is_deterministic(self, populated: ArchiveConfig) -> None:
        indexer = SessionIndexer(populated)
        one = indexer.build(generated_at="2026-01-01T00:00:00Z")
        two = indexer.build(generated_at="2026-01-01T00:00:00Z")
        assert one.to_json() == two.to_json()

    def test_non_session_files_ignored(self, populated: ArchiveConfig) -> None:
        notes = populated.device_dir("laptop") / "sessions" / "-home-me-cli" / "notes.txt"
        notes.write_text("x")
        assert len(SessionIndexer(populated).build().sessions) == 3

    def test_rebuild_writes_camel_case_json(self, populated: ArchiveConfig) -> None:
        SessionIndexer(populated).rebuild()
        data = json.loads(populated.index_path.read_text())
        assert data["version"] == 1
        assert "generatedAt" in data
        assert set(data["sessions"][0]) == {"uuid", "projectId", "device", "sizeBytes", "archivedAt"}

    def test_load_rebuilds_when_missing_or_corrupt(self, populated: ArchiveConfig) -> None:
        indexer = SessionIndexer(populated)
        assert len(indexer.load().sessions) == 3

        populated.index_path.parent.mkdir(parents=True, exist_ok=True)
        populated.index_path.write_text("garbage")
        assert len(indexer.load().sessions) == 3

    def test_empty_archive(self, config: ArchiveConfig) -> None:
        assert SessionIndexer(config).build().sessions == []

    def test_artifact_path(self, populated: ArchiveConfig) -> None:
        indexer = SessionIndexer(populated)
        entry = indexer.build().sessions[0]
        assert indexer.artifact_path(entry).is_file()


def _entry(uuid: str, when: str, project: str = "p", device: str = "d") -> SessionIndexEntry:
    return SessionIndexEntry(uuid=uuid, project_id=project, device=device, size_bytes=1, archived_at=when)


class TestQueryEngine:
    """Filtering and ordering."""

    def test_last_returns_newest(self, populated: ArchiveConfig) -> None:
        engine = QueryEngine(SessionIndexer(populated).build())
        latest = engine.last(1)
        assert len(latest) == 1
        assert latest[0].archived_at.startswith("2026-03-01")

    def test_all_newest_first(self, populated: ArchiveConfig) -> None:
        engine = QueryEngine(SessionIndexer(populated).build())
        assert [e.uuid for e in engine.all()] == ["cccc-0003", "bbbb-0002", "aaaa-0001"]

    def test_date_prefix(self, populated: ArchiveConfig) -> None:
        engine = QueryEngine(SessionIndexer(populated).build())
        assert [e.uuid for e in engine.date("2026-02")] == ["bbbb-0002"]
        assert engine.date("2025") == []

    def test_project_is_case_insensitive(self, populated: ArchiveConfig) -> None:
        engine = QueryEngine(SessionIndexer(populated).build())
        assert [e.uuid for e in engine.project("WEBAPP")] == ["cccc-0003", "aaaa-0001"]

    def test_device_filter(self, populated: ArchiveConfig) -> None:
        engine = QueryEngine(SessionIndexer(populated).build())
        assert [e.uuid for e in engine.device("laptop")] == ["bbbb-0002", "aaaa-0001"]

    def test_last_zero_and_oversized(self) -> None:
        engine = QueryEngine(SessionIndex(sessions=[_entry("a", "2026-01-01T00:00:00Z")]))
        assert engine.last(0) == []
        assert len(engine.last(50)) == 1

    def test_ties_break_stably(self) -> None:
        when = "2026-01-01T00:00:00Z"
        index = SessionIndex(sessions=[_entry("z", when), _entry("a", when), _entry("m", when, device="c")])
        assert [e.uuid for e in QueryEngine(index).all()] == ["m", "a", "z"]

    def test_match_on_filename_substring(self) -> None:
        index = SessionIndex(sessions=[_entry("abc-123", "2026-01-01T00:00:00Z"), _entry("abd-456", "2026-01-02T00:00:00Z")])
        engine = QueryEngine(index)
        assert [e.uuid for e in engine.match("abc")] == ["abc-123"]
        assert len(engine.match("ab")) == 2

    def test_run_dispatch(self, populated: ArchiveConfig) -> None:
        engine = QueryEngine(SessionIndexer(populated).build())
        assert len(engine.run()) == 3
        assert len(engine.run(last=2)) == 2
        assert len(engine.run(date="2026-01-01")) == 1
        assert len(engine.run(project="cli")) == 1
