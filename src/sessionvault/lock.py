"""
Process-level mutual exclusion over the archive root.

Uses an advisory flock() on <archive>/.sync.lock and records the
owner's PID inside it. A second sync that finds the lock held by a
live process backs off quietly; a lock whose recorded owner is gone
is reclaimed.
"""

from __future__ import annotations

import fcntl
import logging
import os
import shutil
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional

logger = logging.getLogger("sessionvault.lock")


def pid_alive(pid: int) -> bool:
    """Check whether a process with this PID exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else.
        return True
    return True


class LockManager:
    """Single-writer lock for sync runs.

    Usage:
        lock = LockManager(config.lock_path)
        with lock.held() as acquired:
            if not acquired:
                return  # another sync is running
            ...
    """

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        self._handle: Optional[IO[str]] = None

    @property
    def locked(self) -> bool:
        return self._handle is not None

    def owner_pid(self) -> Optional[int]:
        """PID recorded in the lock file, if any."""
        target = self.lock_path / "pid" if self.lock_path.is_dir() else self.lock_path
        try:
            text = target.read_text(encoding="utf-8").strip()
            return int(text) if text else None
        except (OSError, ValueError):
            return None

    def acquire(self) -> bool:
        """Try to take the lock without blocking.

        Returns:
            True if this process now holds the lock, False if a live
            process already does.
        """
        if self._handle is not None:
            return True

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._reclaim_directory_lock()
        if self.lock_path.is_dir():
            logger.info("Sync already running (directory lock), skipping")
            return False

        if self._try_lock():
            return True

        pid = self.owner_pid()
        if pid is None or pid_alive(pid):
            logger.info("Sync already running (pid %s), skipping", pid)
            return False

        logger.warning("Reclaiming stale lock left by pid %s", pid)
        self.lock_path.unlink(missing_ok=True)
        if self._try_lock():
            return True

        logger.info("Lock contended after reclaim, skipping")
        return False

    def release(self) -> None:
        """Drop the lock. Safe to call more than once.

        The lock file is unlinked while the flock is still held, and only
        if the path still names the file this process locked. Otherwise a
        sync that starts between unlock and unlink could lose its lock file.
        """
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            handle.seek(0)
            handle.truncate()
            try:
                if os.stat(self.lock_path).st_ino == os.fstat(handle.fileno()).st_ino:
                    self.lock_path.unlink()
            except FileNotFoundError:
                pass
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError as exc:
            logger.debug("Unlock failed: %s", exc)
        finally:
            handle.close()

    @contextmanager
    def held(self) -> Iterator[bool]:
        """Hold the lock for the duration of the block.

        SIGTERM and SIGINT are converted to SystemExit while the lock is
        held so the release in ``finally`` still runs.
        """
        acquired = self.acquire()
        previous = self._install_signal_handlers() if acquired else {}
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
                self._restore_signal_handlers(previous)

    def _try_lock(self) -> bool:
        handle = open(self.lock_path, "a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except (BlockingIOError, PermissionError):
            handle.close()
            return False

        # The file may have been unlinked by a reclaimer between open and flock.
        try:
            same = os.fstat(handle.fileno()).st_ino == os.stat(self.lock_path).st_ino
        except FileNotFoundError:
            same = False
        if not same:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            handle.close()
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        return True

    def _reclaim_directory_lock(self) -> None:
        """Clear a leftover directory-style lock from older releases."""
        if not self.lock_path.is_dir():
            return
        pid = self.owner_pid()
        if pid is not None and pid_alive(pid):
            return
        logger.warning("Removing stale lock directory %s", self.lock_path)
        shutil.rmtree(self.lock_path, ignore_errors=True)

    @staticmethod
    def _install_signal_handlers() -> dict:
        if threading.current_thread() is not threading.main_thread():
            return {}

        def _exit(signum, frame):
            logger.info("Received signal %s, releasing lock", signal.Signals(signum).name)
            raise SystemExit(128 + signum)

        previous = {}
        for sig in (signal.SIGTERM, signal.SIGINT):
            previous[sig] = signal.signal(sig, _exit)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
