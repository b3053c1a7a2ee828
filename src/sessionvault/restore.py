"""
Restore engine -- archived sessions back into ~/.claude/projects.

Single restores fail loudly: an identifier must match exactly one
session across every device namespace, otherwise nothing is written.
Bulk restores never abort; each session is restored, skipped, or
counted as failed on its own.

An existing file at the destination is left alone unless the caller
explicitly asks to overwrite it.
"""

from __future__ import annotations

import json
import logging
import re
import zlib
from itertools import islice
from pathlib import Path
from typing import Any, Optional

from .codec import Codec, GzipCodec
from .config import ArchiveConfig
from .errors import AmbiguousIdentifier, InvalidIdentifier, NotFound, RestoreFailed
from .index import SessionIndexer
from .models import (
    RestoreItem,
    RestoreOutcome,
    RestoreReport,
    SessionIndexEntry,
)
from .query import QueryEngine

logger = logging.getLogger("sessionvault.restore")

IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def validate_identifier(identifier: str) -> str:
    if not identifier or not IDENTIFIER_RE.match(identifier):
        raise InvalidIdentifier(f"Invalid session identifier: {identifier!r}")
    return identifier


class RestoreEngine:
    """Restores sessions from the archive into the source tree."""

    def __init__(self, config: ArchiveConfig, codec: Optional[Codec] = None):
        self.config = config
        self.codec = codec or GzipCodec()
        self.indexer = SessionIndexer(config)

    def _query(self) -> QueryEngine:
        # Built from disk rather than read from session-index.json so a
        # restore never acts on a stale catalog.
        return QueryEngine(self.indexer.build())

    def destination(self, entry: SessionIndexEntry) -> Path:
        return self.config.projects_dir / entry.project_id / f"{entry.uuid}.jsonl"

    def find(self, identifier: str) -> SessionIndexEntry:
        """Resolve an identifier to exactly one archived session.

        Raises:
            InvalidIdentifier: Characters outside [A-Za-z0-9._-].
            NotFound: Nothing matches.
            AmbiguousIdentifier: More than one session matches.
        """
        validate_identifier(identifier)
        matches = self._query().match(identifier)
        if not matches:
            raise NotFound(identifier)
        if len(matches) > 1:
            candidates = [f"{e.device}/{e.project_id}/{e.filename}" for e in matches]
            raise AmbiguousIdentifier(identifier, candidates)
        return matches[0]

    def restore(self, identifier: str, overwrite: bool = False) -> RestoreReport:
        """Restore the single session matching ``identifier``.

        Raises:
            RestoreFailed: The archived copy could not be decompressed.
        """
        entry = self.find(identifier)
        report = RestoreReport()
        item = self._restore_entry(entry, overwrite)
        if item.outcome == RestoreOutcome.FAILED:
            raise RestoreFailed(item.uuid, item.error or "unknown error")
        report.record(item)
        return report

    def restore_all(self, device: Optional[str] = None, overwrite: bool = False) -> RestoreReport:
        """Restore every archived session, or only those of one device."""
        query = self._query()
        entries = query.device(device) if device else query.all()
        report = RestoreReport()
        for entry in entries:
            report.record(self._restore_entry(entry, overwrite))
        logger.info(
            "Bulk restore: %d restored, %d skipped, %d failed",
            report.restored, report.skipped, report.failed,
        )
        return report

    def peek(self, identifier: str, limit: int = 10) -> list[dict[str, Any]]:
        """First ``limit`` records of a session, without writing anything.

        Lines that are not JSON objects come back as ``{"raw": line}``.
        """
        entry = self.find(identifier)
        records: list[dict[str, Any]] = []
        with self.codec.open_text(self.indexer.artifact_path(entry)) as fh:
            for line in islice((ln for ln in fh if ln.strip()), limit):
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    record = None
                if not isinstance(record, dict):
                    record = {"raw": line.rstrip("\n")}
                records.append(record)
        return records

    def _restore_entry(self, entry: SessionIndexEntry, overwrite: bool) -> RestoreItem:
        dest = self.destination(entry)
        item = RestoreItem(
            uuid=entry.uuid,
            project_id=entry.project_id,
            device=entry.device,
            destination=dest,
            outcome=RestoreOutcome.SKIPPED,
        )
        if dest.exists() and not overwrite:
            logger.info("Skipping %s: already exists at %s", entry.uuid, dest)
            return item
        try:
            self.codec.decompress(self.indexer.artifact_path(entry), dest)
        except (OSError, EOFError, zlib.error) as exc:
            logger.error("Restore of %s failed: %s", entry.uuid, exc)
            item.outcome = RestoreOutcome.FAILED
            item.error = str(exc)
            return item
        logger.info("Restored %s -> %s", entry.uuid, dest)
        item.outcome = RestoreOutcome.RESTORED
        return item
