"""Per-instance run lock.

Only one sync run may write to a profile at a time. The lock is a file
created exclusively in the profile root holding the owner's PID, and removed
when the run ends. A lock left behind by a process that no longer exists is
stale and is taken over.
"""

from __future__ import annotations

import os
import time
from pathlib import Path

import psutil
import structlog

from packsync.core.errors import InstanceLockedError

logger = structlog.get_logger()

LOCK_FILENAME = ".packsync.lock"

# A lock without a readable PID is only reclaimed after this many seconds,
# so a run that has created the file but not yet written its PID keeps it.
UNREADABLE_LOCK_GRACE = 60.0


class RunLock:
    """Exclusive lock on a profile directory.

    Args:
        profile_path: Root of the game profile
    """

    def __init__(self, profile_path: Path) -> None:
        self.profile_path = profile_path
        self._held = False

    @property
    def lock_path(self) -> Path:
        return self.profile_path / LOCK_FILENAME

    def owner_pid(self) -> int | None:
        """PID recorded in the lock file, or None if absent or unreadable."""
        try:
            return int(self.lock_path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def is_stale(self) -> bool:
        """Whether an existing lock file was left by a process that is gone."""
        pid = self.owner_pid()
        if pid is None:
            try:
                age = time.time() - self.lock_path.stat().st_mtime
            except FileNotFoundError:
                return False
            return age > UNREADABLE_LOCK_GRACE
        return not psutil.pid_exists(pid)

    def _create(self) -> bool:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return True

    def acquire(self) -> None:
        """Take the lock, reclaiming it if its owner has exited.

        Raises:
            InstanceLockedError: If a live process holds it
        """
        self.profile_path.mkdir(parents=True, exist_ok=True)
        if not self._create():
            if not self.is_stale():
                raise InstanceLockedError(str(self.lock_path))
            logger.warning(
                "run_lock_stale", path=str(self.lock_path), owner_pid=self.owner_pid()
            )
            self.lock_path.unlink(missing_ok=True)
            if not self._create():
                raise InstanceLockedError(str(self.lock_path))
        self._held = True
        logger.debug("run_lock_acquired", path=str(self.lock_path))

    def release(self) -> None:
        if not self._held:
            return
        self.lock_path.unlink(missing_ok=True)
        self._held = False
        logger.debug("run_lock_released", path=str(self.lock_path))

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(self, *args: object) -> None:
        self.release()
