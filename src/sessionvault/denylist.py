"""Sensitive filename denylist shared by the config mirror and config import."""

from __future__ import annotations

import fnmatch
from pathlib import PurePath
from typing import Iterable


def is_denied(path: str | PurePath, patterns: Iterable[str]) -> bool:
    """True if any component of ``path`` matches a denylist pattern.

    Matching is case-insensitive and applies to every directory level,
    so ``agents/.env`` and ``.env`` are both caught.
    """
    parts = PurePath(path).parts
    lowered = [p.lower() for p in patterns]
    for part in parts:
        name = part.lower()
        if any(fnmatch.fnmatchcase(name, pattern) for pattern in lowered):
            return True
    return False
