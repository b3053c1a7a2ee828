"""
Per-file codecs -- how a source file becomes an archive artifact.

Session logs (line-delimited JSON) are gzip-compressed; every other
file is copied byte for byte. All writes land in a temp file next to
the destination and are moved into place with os.replace, so a crash
never leaves a half-written artifact behind.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import shutil
import struct
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

logger = logging.getLogger("sessionvault.codec")

LOG_SUFFIX = ".jsonl"
ARTIFACT_SUFFIX = ".gz"
CHUNK_SIZE = 1024 * 1024


def is_log(path: Path) -> bool:
    """True for line-delimited session logs."""
    return path.suffix == LOG_SUFFIX


def artifact_name(source_name: str) -> str:
    """Archive filename for a source filename."""
    if source_name.endswith(LOG_SUFFIX):
        return source_name + ARTIFACT_SUFFIX
    return source_name


@contextmanager
def atomic_write(dest: Path) -> Iterator[IO[bytes]]:
    """Open a temp file beside ``dest`` and move it into place on success."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            yield fh
        os.replace(tmp, dest)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class Codec(ABC):
    """Compress/decompress contract used by the scanner and restore."""

    @abstractmethod
    def compress(self, src: Path, dest: Path) -> int:
        """Compress ``src`` into ``dest``.

        Returns:
            Size of the written artifact in bytes.
        """

    @abstractmethod
    def decompress(self, src: Path, dest: Path) -> int:
        """Expand artifact ``src`` into ``dest``.

        Returns:
            Number of uncompressed bytes written.
        """

    @abstractmethod
    def open_text(self, src: Path) -> IO[str]:
        """Open a compressed artifact as a text stream."""

    @abstractmethod
    def uncompressed_size(self, src: Path) -> int:
        """Original size of a compressed artifact."""

    def copy(self, src: Path, dest: Path) -> int:
        """Copy a file verbatim. Modification time is not preserved."""
        with open(src, "rb") as fin, atomic_write(dest) as fout:
            shutil.copyfileobj(fin, fout, CHUNK_SIZE)
        return dest.stat().st_size


class GzipCodec(Codec):
    """gzip codec with a zeroed header timestamp, like ``gzip -n``.

    Identical input always yields identical bytes, which keeps git
    from seeing churn when a file is recompressed without changes.
    """

    def __init__(self, level: int = 6):
        self.level = level

    def compress(self, src: Path, dest: Path) -> int:
        with open(src, "rb") as fin, atomic_write(dest) as fout:
            with gzip.GzipFile(
                filename="", mode="wb", fileobj=fout,
                compresslevel=self.level, mtime=0,
            ) as gz:
                shutil.copyfileobj(fin, gz, CHUNK_SIZE)
        size = dest.stat().st_size
        logger.debug("Compressed %s -> %s (%d bytes)", src.name, dest.name, size)
        return size

    def decompress(self, src: Path, dest: Path) -> int:
        written = 0
        with gzip.open(src, "rb") as gz, atomic_write(dest) as fout:
            for chunk in iter(lambda: gz.read(CHUNK_SIZE), b""):
                fout.write(chunk)
                written += len(chunk)
        return written

    def open_text(self, src: Path) -> IO[str]:
        return io.TextIOWrapper(gzip.open(src, "rb"), encoding="utf-8", errors="replace")

    def uncompressed_size(self, src: Path) -> int:
        """Read the ISIZE trailer (original size modulo 2**32)."""
        with open(src, "rb") as fh:
            fh.seek(0, os.SEEK_END)
            if fh.tell() < 4:
                return 0
            fh.seek(-4, os.SEEK_END)
            return struct.unpack("<I", fh.read(4))[0]
