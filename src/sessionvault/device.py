"""
Device identity -- the slug that names this machine's namespace.

The slug is derived from the short hostname exactly once and then
read back from <archive>/.device-slug forever after, so renaming the
machine never orphans its namespace.
"""

from __future__ import annotations

import logging
import re
import socket
from typing import Optional

from .config import ArchiveConfig
from .manifest import ManifestWriter

logger = logging.getLogger("sessionvault.device")

FALLBACK_SLUG = "device"


def short_hostname() -> str:
    """Hostname up to the first dot."""
    return socket.gethostname().split(".")[0] or FALLBACK_SLUG


def slugify(name: str) -> str:
    """Normalize a device name into a filesystem-safe slug.

    >>> slugify("Toms-MacBook Pro (2)")
    'toms-macbook-pro-2'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or FALLBACK_SLUG


def read_slug(config: ArchiveConfig) -> Optional[str]:
    """The persisted slug, or None if this device has never synced."""
    path = config.slug_path
    if not path.exists():
        return None
    slug = path.read_text(encoding="utf-8").strip()
    return slug or None


def persist_slug(config: ArchiveConfig, slug: str) -> None:
    """Record the slug. Refuses to change one that is already set."""
    existing = read_slug(config)
    if existing and existing != slug:
        raise ValueError(f"Device slug already set to {existing!r}; refusing to change it")
    config.slug_path.parent.mkdir(parents=True, exist_ok=True)
    config.slug_path.write_text(slug + "\n", encoding="utf-8")


def _namespace_owner(config: ArchiveConfig, slug: str) -> Optional[str]:
    """Device name recorded in the namespace manifest. Unreadable counts as unowned."""
    manifest = ManifestWriter(config).read_device(slug)
    if manifest is None:
        return None
    return manifest.device or None


def derive_slug(config: ArchiveConfig, device: str) -> str:
    """Pick a slug for ``device`` that no other device's namespace uses."""
    base = slugify(device)
    candidate = base
    n = 2
    while True:
        owner = _namespace_owner(config, candidate)
        if owner is None or owner == device:
            return candidate
        logger.info("Slug %s belongs to %s, trying another", candidate, owner)
        candidate = f"{base}-{n}"
        n += 1


def resolve_slug(config: ArchiveConfig, device: Optional[str] = None) -> str:
    """Return the persisted slug, deriving and persisting it on first use."""
    slug = read_slug(config)
    if slug:
        return slug
    slug = derive_slug(config, device or short_hostname())
    persist_slug(config, slug)
    logger.info("Device slug set to %s", slug)
    return slug