"""Tests for cross-process file locking used by persistence and audit writes."""

import platform
import threading
import time
from unittest.mock import patch

import pytest

from templar.file_lock_manager import LockCancelledError, LockTimeoutError, acquire_file_lock

pytestmark = pytest.mark.skipif(platform.system() == "Windows", reason="fcntl-based tests")


class TestLockAcquisitionAndRelease:
    """Test basic lock acquisition and release behavior."""

    def test_acquire_creates_lock_file_and_parents(self, tmp_path):
        """Verify the lock file and its directory are created."""
        lock_path = tmp_path / ".locks" / "widget.lock"

        with acquire_file_lock(lock_path):
            assert lock_path.exists()

    def test_lock_released_on_exception(self, tmp_path):
        """Verify the lock is released when the block raises."""
        lock_path = tmp_path / "widget.lock"

        with pytest.raises(ValueError, match="boom"):
            with acquire_file_lock(lock_path):
                raise ValueError("boom")

        start = time.monotonic()
        with acquire_file_lock(lock_path, timeout=1.0):
            assert time.monotonic() - start < 0.5

    def test_contention_times_out(self, tmp_path):
        """Verify a second holder waits and then raises LockTimeoutError."""
        lock_path = tmp_path / "widget.lock"

        with acquire_file_lock(lock_path):
            with pytest.raises(LockTimeoutError) as exc_info:
                with acquire_file_lock(lock_path, timeout=0.3, operation="persist widget"):
                    pass

        assert "persist widget" in str(exc_info.value)
        assert "0.3" in str(exc_info.value)


class TestBackoff:
    """Test retry timing during contention."""

    def test_exponential_backoff_sequence(self, tmp_path):
        """Verify delays double from 0.05s."""
        delays = []

        with patch("time.sleep", side_effect=delays.append):
            with patch("fcntl.flock", side_effect=[BlockingIOError] * 5 + [None, None]):
                with acquire_file_lock(tmp_path / "widget.lock", timeout=5.0):
                    pass

        assert delays == pytest.approx([0.05, 0.1, 0.2, 0.4, 0.8])

    def test_backoff_capped(self, tmp_path):
        """Verify no single wait exceeds one second."""
        delays = []

        with patch("time.sleep", side_effect=delays.append):
            with patch("fcntl.flock", side_effect=[BlockingIOError] * 8 + [None, None]):
                with acquire_file_lock(tmp_path / "widget.lock", timeout=60.0):
                    pass

        assert max(delays) == pytest.approx(1.0)

    def test_other_os_errors_propagate(self, tmp_path):
        """Verify non-contention errors are not retried."""
        with patch("fcntl.flock", side_effect=PermissionError("denied")):
            with pytest.raises(PermissionError):
                with acquire_file_lock(tmp_path / "widget.lock", timeout=5.0):
                    pass


class TestCancellation:
    """Test the cancel event."""

    def test_cancel_before_acquire(self, tmp_path):
        """Verify a set event stops immediately."""
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(LockCancelledError):
            with acquire_file_lock(tmp_path / "widget.lock", cancel_event=cancel):
                pass

    def test_cancel_while_waiting(self, tmp_path):
        """Verify setting the event interrupts the backoff wait."""
        lock_path = tmp_path / "widget.lock"
        cancel = threading.Event()
        timer = threading.Timer(0.2, cancel.set)

        with acquire_file_lock(lock_path):
            timer.start()
            start = time.monotonic()
            with pytest.raises(LockCancelledError):
                with acquire_file_lock(lock_path, timeout=10.0, cancel_event=cancel):
                    pass

        assert time.monotonic() - start < 5.0
