"""Config profile export and import as a portable tar.gz.

Export packs this device's archived config tier. Import inspects
every member before extracting anything: one sensitive or unsafe
path and the whole import is refused with nothing written.
"""

from __future__ import annotations

import logging
import tarfile
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from .config import ArchiveConfig
from .denylist import is_denied
from .errors import SecurityViolation

logger = logging.getLogger("sessionvault.transfer")

EXPORT_PREFIX = "config"


def export_config(config: ArchiveConfig, slug: str, dest: Path) -> dict[str, Any]:
    """Write the archived config tier of ``slug`` to ``dest``.

    Args:
        config: Archive configuration.
        slug: Device namespace to export.
        dest: Output .tar.gz path.

    Returns:
        dict: 'filepath' and 'file_count'.
    """
    source = config.device_dir(slug) / "config"
    if not source.is_dir():
        raise FileNotFoundError(f"No archived config for device {slug}")

    dest = dest.expanduser()
    dest.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with tarfile.open(dest, "w:gz") as tar:
        for filepath in sorted(source.rglob("*")):
            if not filepath.is_file():
                continue
            rel = filepath.relative_to(source)
            if is_denied(rel, config.denylist):
                continue
            tar.add(filepath, arcname=f"{EXPORT_PREFIX}/{rel.as_posix()}")
            count += 1

    logger.info("Exported %d config files to %s", count, dest)
    return {"filepath": str(dest), "file_count": count}


def inspect_archive(config: ArchiveConfig, members: list[tarfile.TarInfo]) -> list[str]:
    """Every member path that must not be imported."""
    bad: list[str] = []
    for member in members:
        path = PurePosixPath(member.name)
        unsafe = path.is_absolute() or ".." in path.parts
        if not (member.isfile() or member.isdir()):
            unsafe = True
        if unsafe or is_denied(path, config.denylist):
            bad.append(member.name)
    return bad


def _strip_prefix(name: str) -> Optional[PurePosixPath]:
    parts = PurePosixPath(name).parts
    if parts and parts[0] == EXPORT_PREFIX:
        parts = parts[1:]
    return PurePosixPath(*parts) if parts else None


def import_config(config: ArchiveConfig, archive: Path, overwrite: bool = False) -> dict[str, Any]:
    """Extract an exported config profile into the source home.

    Raises:
        SecurityViolation: A member is denylisted, absolute, escapes the
            target, or is not a regular file. Raised before any write.
        FileNotFoundError: The archive does not exist.
    """
    archive = archive.expanduser()
    if not archive.exists():
        raise FileNotFoundError(f"Config archive not found: {archive}")

    target = config.source_home
    written = 0
    skipped = 0
    with tarfile.open(archive, "r:gz") as tar:
        members = tar.getmembers()
        bad = inspect_archive(config, members)
        if bad:
            logger.error("Refusing import of %s: %s", archive, bad)
            raise SecurityViolation(bad)

        for member in members:
            if not member.isfile():
                continue
            rel = _strip_prefix(member.name)
            if rel is None:
                continue
            dest = target / rel
            if dest.exists() and not overwrite:
                skipped += 1
                continue
            fh = tar.extractfile(member)
            if fh is None:
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(fh.read())
            written += 1

    logger.info("Imported %d config files (%d skipped) into %s", written, skipped, target)
    return {"written": written, "skipped": skipped, "target": str(target)}
