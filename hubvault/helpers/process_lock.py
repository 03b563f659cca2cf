################################################################################
# HUBVAULT
#
# @file:        process_lock.py
# @module:      hubvault.helpers.process_lock
# @description: flock based single-instance lock for backup/restore/update runs.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""Process lock - prevents concurrent pipeline runs against one installation."""

import fcntl
import os
from pathlib import Path
from typing import Optional

from .constants import DEFAULT_LOCK_PATH, FALLBACK_LOCK_PATH
from .logging import get_logger

logger = get_logger(__name__)


class ProcessLock:
    """
    Exclusive, non-blocking lock on a file.

    The lock is released by the kernel when the process dies, so a stale
    lock file never blocks the next scheduled run.
    """

    def __init__(self, lock_path: Optional[str] = None):
        self.lock_path = Path(lock_path) if lock_path else self._default_path()
        self._fd = None

    @staticmethod
    def _default_path() -> Path:
        primary = Path(DEFAULT_LOCK_PATH)
        if os.access(primary.parent, os.W_OK):
            return primary
        return Path(FALLBACK_LOCK_PATH)

    def acquire(self) -> bool:
        """
        Try to acquire the lock.

        Returns:
            True if acquired, False if another process holds it
        """
        if self._fd is not None:
            return True

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = open(self.lock_path, "a+")
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fd.close()
            logger.debug(f"Lock {self.lock_path} held by PID {self.get_holder_pid()}")
            return False

        fd.seek(0)
        fd.truncate()
        fd.write(str(os.getpid()))
        fd.flush()
        self._fd = fd
        logger.debug(f"Acquired lock {self.lock_path}")
        return True

    def release(self) -> None:
        """Release the lock (no-op if not held)."""
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            self._fd.close()
            self._fd = None
        logger.debug(f"Released lock {self.lock_path}")

    def is_locked(self) -> bool:
        """True while this instance holds the lock."""
        return self._fd is not None

    def get_holder_pid(self) -> Optional[int]:
        """PID written by the current holder, if readable."""
        try:
            content = self.lock_path.read_text().strip()
            return int(content) if content else None
        except (OSError, ValueError):
            return None

    def __enter__(self):
        if not self.acquire():
            raise BlockingIOError(
                f"Lock held by another process (PID {self.get_holder_pid()}): {self.lock_path}"
            )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
