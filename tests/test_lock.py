"""Tests for the archive sync lock."""

from __future__ import annotations

import fcntl
import os
import signal
from pathlib import Path

import pytest

from sessionvault.lock import LockManager, pid_alive

DEAD_PID = 2**22 + 12345


def _hold(path: Path, pid: int):
    """Simulate another process holding the lock with ``pid`` recorded."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(path, "a+", encoding="utf-8")
    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    handle.seek(0)
    handle.truncate()
    handle.write(str(pid))
    handle.flush()
    return handle


class TestLockManager:
    """Acquire, release, busy and stale-owner paths."""

    def test_acquire_and_release(self, tmp_path: Path) -> None:
        lock = LockManager(tmp_path / ".sync.lock")
        assert lock.acquire() is True
        assert lock.locked
        assert lock.owner_pid() == os.getpid()

        lock.release()
        assert not lock.locked
        assert not (tmp_path / ".sync.lock").exists()

    def test_release_is_idempotent(self, tmp_path: Path) -> None:
        lock = LockManager(tmp_path / ".sync.lock")
        lock.acquire()
        lock.release()
        lock.release()

    def test_busy_when_owner_alive(self, tmp_path: Path) -> None:
        """A live owner makes acquire() report busy instead of raising."""
        path = tmp_path / ".sync.lock"
        holder = _hold(path, os.getpid())
        try:
            assert LockManager(path).acquire() is False
            assert path.read_text() == str(os.getpid())
        finally:
            holder.close()

    def test_stale_owner_is_reclaimed(self, tmp_path: Path) -> None:
        """A lock whose recorded PID is dead is removed and retaken."""
        path = tmp_path / ".sync.lock"
        holder = _hold(path, DEAD_PID)
        try:
            lock = LockManager(path)
            assert lock.acquire() is True
            assert lock.owner_pid() == os.getpid()
            lock.release()
        finally:
            holder.close()

    def test_stale_directory_lock_is_reclaimed(self, tmp_path: Path) -> None:
        """A leftover directory-style lock with a dead owner is cleared."""
        path = tmp_path / ".sync.lock"
        path.mkdir()
        (path / "pid").write_text(str(DEAD_PID))

        lock = LockManager(path)
        assert lock.acquire() is True
        assert path.is_file()
        lock.release()

    def test_live_directory_lock_is_busy(self, tmp_path: Path) -> None:
        path = tmp_path / ".sync.lock"
        path.mkdir()
        (path / "pid").write_text(str(os.getpid()))

        assert LockManager(path).acquire() is False
        assert path.is_dir()

    def test_held_releases_on_exception(self, tmp_path: Path) -> None:
        path = tmp_path / ".sync.lock"
        lock = LockManager(path)
        with pytest.raises(RuntimeError):
            with lock.held() as acquired:
                assert acquired
                raise RuntimeError("boom")
        assert not lock.locked
        assert LockManager(path).acquire() is True

    def test_held_releases_on_sigterm(self, tmp_path: Path) -> None:
        """SIGTERM inside the block becomes SystemExit and the lock is freed."""
        path = tmp_path / ".sync.lock"
        lock = LockManager(path)
        before = signal.getsignal(signal.SIGTERM)
        with pytest.raises(SystemExit):
            with lock.held():
                os.kill(os.getpid(), signal.SIGTERM)
        assert not lock.locked
        assert not path.exists()
        assert signal.getsignal(signal.SIGTERM) == before

    def test_held_yields_false_when_busy(self, tmp_path: Path) -> None:
        path = tmp_path / ".sync.lock"
        holder = _hold(path, os.getpid())
        try:
            with LockManager(path).held() as acquired:
                assert acquired is False
            assert path.exists()
        finally:
            holder.close()

    def test_release_keeps_lock_taken_during_unlock(self, tmp_path: Path, monkeypatch) -> None:
        """A sync that starts the moment the previous one unlocks keeps its lock file."""
        path = tmp_path / ".sync.lock"
        first = LockManager(path)
        second = LockManager(path)
        assert first.acquire() is True

        real_flock = fcntl.flock
        results = {}

        def flock(fd, op):
            real_flock(fd, op)
            if op == fcntl.LOCK_UN and not results:
                results["second"] = None
                results["second"] = second.acquire()

        monkeypatch.setattr(fcntl, "flock", flock)
        first.release()
        monkeypatch.undo()

        try:
            assert results["second"] is True
            assert path.exists()
            assert path.read_text() == str(os.getpid())
            assert LockManager(path).acquire() is False
        finally:
            second.release()
        assert not path.exists()


def test_pid_alive() -> None:
    assert pid_alive(os.getpid())
    assert not pid_alive(DEAD_PID)
    assert not pid_alive(0)
