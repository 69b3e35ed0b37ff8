"""Tests for advisory process locks."""

import os

import pytest

from fantastic_probe.process_lock import ProcessLock


class TestProcessLock:
    """Test ProcessLock behavior."""

    def test_acquire_and_release(self, tmp_path):
        """Test a free lock can be taken and released."""
        lock = ProcessLock(tmp_path / "locks" / "scan.lock")

        assert lock.acquire() is True
        assert lock.is_held
        lock.release()
        assert not lock.is_held

    def test_second_non_blocking_lock_fails(self, tmp_path):
        """Test a held lock makes a second non-blocking acquire fail."""
        first = ProcessLock(tmp_path / "scan.lock")
        second = ProcessLock(tmp_path / "scan.lock")

        assert first.acquire()
        try:
            assert second.acquire() is False
            assert not second.is_held
        finally:
            first.release()

        assert second.acquire() is True
        second.release()

    def test_lock_file_contains_pid(self, tmp_path):
        """Test the holder writes its PID into the lock file."""
        lock_file = tmp_path / "scan.lock"
        with ProcessLock(lock_file):
            assert lock_file.read_text() == str(os.getpid())

    def test_context_manager_raises_when_held(self, tmp_path):
        """Test the context manager refuses a held lock."""
        with ProcessLock(tmp_path / "scan.lock"):
            with pytest.raises(BlockingIOError):
                with ProcessLock(tmp_path / "scan.lock"):
                    pass

    def test_release_without_acquire_is_noop(self, tmp_path):
        """Test releasing an unheld lock does nothing."""
        lock = ProcessLock(tmp_path / "scan.lock")
        lock.release()
        assert not lock.is_held
