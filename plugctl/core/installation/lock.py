"""Per-plugin install lock

Purpose: keep two concurrent invocations from racing on the same plugin's
staging directory, install directory and bin symlink.
"""

import logging
import os
import time
from pathlib import Path
from typing import Any, Optional

from plugctl.core.exceptions import InstallLockedError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1


def _try_lock(handle) -> bool:
    if os.name == "nt":
        import msvcrt

        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
        except OSError:
            return False
        return True
    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        return False
    return True


def _unlock(handle) -> None:
    if os.name == "nt":
        import msvcrt

        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        except OSError:
            return
        return
    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    except OSError:
        return


class InstallLock:
    """Exclusive lock file, held for the duration of a with-block"""

    def __init__(self, path: Path, timeout: float = 0.0):
        """
        Args:
            path: Lock file location (parent directories are created)
            timeout: Seconds to keep polling for the lock; 0 fails immediately
        """
        self.path = Path(path)
        self.timeout = timeout
        self._handle: Optional[Any] = None

    def acquire(self) -> "InstallLock":
        """
        Raises:
            InstallLockedError: If the lock is still held after timeout
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+")
        deadline = time.monotonic() + self.timeout
        while not _try_lock(handle):
            if time.monotonic() >= deadline:
                handle.close()
                raise InstallLockedError(
                    f"another operation holds the lock {self.path}",
                    hint="Wait for the other plugctl process to finish and retry"
                )
            time.sleep(POLL_INTERVAL)
        self._handle = handle
        logger.debug(f"Acquired lock {self.path}")
        return self

    def release(self) -> None:
        if self._handle is None:
            return
        _unlock(self._handle)
        self._handle.close()
        self._handle = None
        logger.debug(f"Released lock {self.path}")

    @property
    def locked(self) -> bool:
        return self._handle is not None

    def __enter__(self) -> "InstallLock":
        return self.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
