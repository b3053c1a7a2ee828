"""
Query engine over the session index.

    all          every session, newest first
    last N       the N most recently archived
    date D       archivedAt starts with D (e.g. 2026-03-01)
    project P    project id contains P, case-insensitive

No pagination: callers get the whole filtered, sorted list.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .models import SessionIndex, SessionIndexEntry


def _newest_first(entries: Iterable[SessionIndexEntry]) -> list[SessionIndexEntry]:
    # Stable tie-break keeps equal timestamps in a predictable order.
    ordered = sorted(entries, key=lambda e: (e.device, e.project_id, e.uuid))
    return sorted(ordered, key=lambda e: e.archived_at, reverse=True)


class QueryEngine:
    """Filters and sorts the entries of a SessionIndex."""

    def __init__(self, index: SessionIndex):
        self.index = index

    def all(self) -> list[SessionIndexEntry]:
        return _newest_first(self.index.sessions)

    def last(self, n: int) -> list[SessionIndexEntry]:
        if n <= 0:
            return []
        return self.all()[:n]

    def date(self, prefix: str) -> list[SessionIndexEntry]:
        return [e for e in self.all() if e.archived_at.startswith(prefix)]

    def project(self, substring: str) -> list[SessionIndexEntry]:
        needle = substring.lower()
        return [e for e in self.all() if needle in e.project_id.lower()]

    def device(self, slug: str) -> list[SessionIndexEntry]:
        return [e for e in self.all() if e.device == slug]

    def match(self, identifier: str) -> list[SessionIndexEntry]:
        """Sessions whose artifact filename contains ``identifier``."""
        return [e for e in self.all() if identifier in e.filename]

    def run(
        self,
        last: Optional[int] = None,
        date: Optional[str] = None,
        project: Optional[str] = None,
    ) -> list[SessionIndexEntry]:
        """Apply whichever filter was requested; ``all`` when none was."""
        if last is not None:
            return self.last(last)
        if date is not None:
            return self.date(date)
        if project is not None:
            return self.project(project)
        return self.all()
