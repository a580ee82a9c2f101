"""Tests for packsync.core.run_lock module."""

import os
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from packsync.core.errors import InstanceLockedError
from packsync.core.run_lock import LOCK_FILENAME, RunLock


class TestRunLock:
    """Test RunLock class."""

    def test_acquire_and_release(self, tmp_path: Path):
        lock = RunLock(tmp_path / "profile")
        lock.acquire()

        assert lock.lock_path == tmp_path / "profile" / LOCK_FILENAME
        assert lock.lock_path.read_text() == str(os.getpid())

        lock.release()
        assert not lock.lock_path.exists()

    def test_second_lock_fails(self, tmp_path: Path):
        with RunLock(tmp_path):
            with pytest.raises(InstanceLockedError) as exc_info:
                RunLock(tmp_path).acquire()
        assert LOCK_FILENAME in exc_info.value.lock_path

    def test_released_on_error(self, tmp_path: Path):
        with pytest.raises(RuntimeError):
            with RunLock(tmp_path):
                raise RuntimeError("boom")
        assert not (tmp_path / LOCK_FILENAME).exists()

    def test_failed_acquire_does_not_remove_foreign_lock(self, tmp_path: Path):
        (tmp_path / LOCK_FILENAME).write_text(str(os.getpid()))
        lock = RunLock(tmp_path)

        with pytest.raises(InstanceLockedError):
            lock.acquire()
        lock.release()

        assert (tmp_path / LOCK_FILENAME).read_text() == str(os.getpid())

    def test_lock_from_exited_process_is_reclaimed(self, tmp_path: Path):
        (tmp_path / LOCK_FILENAME).write_text("999999")
        lock = RunLock(tmp_path)

        with patch("packsync.core.run_lock.psutil.pid_exists", return_value=False):
            assert lock.is_stale()
            lock.acquire()

        assert lock.lock_path.read_text() == str(os.getpid())
        lock.release()
        assert not lock.lock_path.exists()

    def test_lock_from_live_process_is_kept(self, tmp_path: Path):
        (tmp_path / LOCK_FILENAME).write_text("4242")
        lock = RunLock(tmp_path)

        with patch("packsync.core.run_lock.psutil.pid_exists", return_value=True):
            assert not lock.is_stale()
            with pytest.raises(InstanceLockedError):
                lock.acquire()

        assert lock.owner_pid() == 4242

    def test_unreadable_lock_kept_within_grace(self, tmp_path: Path):
        (tmp_path / LOCK_FILENAME).write_text("")
        with pytest.raises(InstanceLockedError):
            RunLock(tmp_path).acquire()

    def test_old_unreadable_lock_is_reclaimed(self, tmp_path: Path):
        lock_file = tmp_path / LOCK_FILENAME
        lock_file.write_text("garbage")
        old = time.time() - 3600
        os.utime(lock_file, (old, old))

        with RunLock(tmp_path) as lock:
            assert lock.owner_pid() == os.getpid()
