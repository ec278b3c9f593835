"""Cross-process file locking for version data and audit log writes.

Version and migration files are rewritten in full on every mutation, so two
processes writing the same template must take turns. This module provides an
exclusive advisory lock with exponential backoff, a hard timeout, and an
optional cancellation event.

Public API:
    acquire_file_lock: Context manager holding an exclusive lock on a file
    LockTimeoutError: Lock not acquired within the timeout
    LockCancelledError: Caller cancelled while waiting for the lock

Example:
    >>> from pathlib import Path
    >>> from templar.file_lock_manager import acquire_file_lock
    >>>
    >>> lock_path = Path("/tmp/widget.lock")
    >>> with acquire_file_lock(lock_path, timeout=5.0, operation="persist widget"):
    ...     pass  # only this process may write widget's files here

Backoff: 0.05s, 0.1s, 0.2s, ... capped at 1s between attempts.
"""

import logging
import platform
import threading
import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, TextIO

_system = platform.system()
if TYPE_CHECKING or _system == "Windows":
    import msvcrt  # type: ignore[import-not-found]
if TYPE_CHECKING or _system != "Windows":
    import fcntl  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)

__all__ = ["LockCancelledError", "LockTimeoutError", "acquire_file_lock"]

INITIAL_DELAY = 0.05
MAX_DELAY = 1.0


class LockTimeoutError(Exception):
    """Raised when a file lock cannot be acquired within the timeout."""


class LockCancelledError(Exception):
    """Raised when the cancel event fires while waiting for a lock."""


@contextmanager
def acquire_file_lock(
    file_path: Path,
    timeout: float = 5.0,
    operation: str = "file operation",
    cancel_event: threading.Event | None = None,
) -> Generator[None, None, None]:
    """Hold an exclusive lock on ``file_path`` for the duration of the block.

    The lock file is created if missing. Uses ``fcntl.flock`` on POSIX and
    ``msvcrt.locking`` on Windows.

    Args:
        file_path: Lock file path
        timeout: Maximum seconds to wait for the lock
        operation: Description used in error messages
        cancel_event: Optional event; when set, waiting stops immediately

    Raises:
        LockTimeoutError: If the lock is not acquired in time
        LockCancelledError: If cancel_event is set before the lock is acquired
        PermissionError: If the lock file cannot be opened
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, "a") as file_handle:
        _acquire_with_backoff(file_handle, file_path, timeout, operation, cancel_event)
        try:
            yield
        finally:
            _release(file_handle)


def _acquire_with_backoff(
    file_handle: TextIO | BinaryIO,
    file_path: Path,
    timeout: float,
    operation: str,
    cancel_event: threading.Event | None,
) -> None:
    deadline = time.monotonic() + timeout
    delay = INITIAL_DELAY

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise LockCancelledError(f"Cancelled while waiting for lock for {operation} ({file_path})")

        try:
            _try_lock(file_handle)
            return
        except BlockingIOError:
            pass
        except OSError:
            # msvcrt reports contention as a plain OSError
            if _system != "Windows":
                raise

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise LockTimeoutError(
                f"Failed to acquire file lock for {operation} after {timeout} seconds. "
                f"File: {file_path}. Another process may be holding the lock."
            )

        wait = min(delay, remaining)
        if cancel_event is not None:
            cancel_event.wait(wait)
        else:
            time.sleep(wait)
        delay = min(delay * 2, MAX_DELAY)


def _try_lock(file_handle: TextIO | BinaryIO) -> None:
    if _system == "Windows":
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
    else:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _release(file_handle: TextIO | BinaryIO) -> None:
    try:
        if _system == "Windows":
            msvcrt.locking(file_handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        else:
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)
    except OSError as e:
        logger.debug(f"Error during lock cleanup: {e}")
