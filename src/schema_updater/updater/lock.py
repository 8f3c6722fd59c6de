"""Advisory inter-process lock for update sessions.

Only one update session may run against a version store at a time. The
lock is taken before discovery and released once the session completes,
covering the whole dry-run-to-execute window. Acquisition never waits: a
second session fails fast with :class:`ConcurrentRunError`.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import IO, Optional

from .errors import ConcurrentRunError

logger = logging.getLogger(__name__)


def _try_lock(fd: IO[str]) -> bool:
    """Take an exclusive lock without blocking. Returns False if already held.

    On Unix: ``fcntl.flock`` with ``LOCK_NB``.
    On Windows: ``msvcrt.locking`` with ``LK_NBLCK`` on the first byte.
    """
    if sys.platform == "win32":
        import msvcrt

        try:
            fd.seek(0)
            msvcrt.locking(fd.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    import fcntl

    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


def _unlock(fd: IO[str]) -> None:
    if sys.platform == "win32":
        import msvcrt

        fd.seek(0)
        msvcrt.locking(fd.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(fd, fcntl.LOCK_UN)


class UpdateLock:
    """File lock keyed on ``update.lock``; usable as a context manager."""

    def __init__(self, lock_path: Path) -> None:
        self.lock_path = Path(lock_path)
        self._fd: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def _read_holder(self) -> Optional[str]:
        try:
            holder = self.lock_path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return f"pid {holder}" if holder else None

    def acquire(self) -> "UpdateLock":
        if self._fd is not None:
            return self

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = open(self.lock_path, "a+", encoding="utf-8")  # noqa: SIM115 -- need fd for flock
        if not _try_lock(fd):
            fd.close()
            raise ConcurrentRunError(str(self.lock_path), holder=self._read_holder())

        fd.seek(0)
        fd.truncate()
        fd.write(str(os.getpid()))
        fd.flush()
        self._fd = fd
        logger.debug("Acquired update lock %s", self.lock_path)
        return self

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fd.seek(0)
            fd.truncate()
            _unlock(fd)
        finally:
            fd.close()
        logger.debug("Released update lock %s", self.lock_path)

    def __enter__(self) -> "UpdateLock":
        return self.acquire()

    def __exit__(self, *exc_info: object) -> None:
        self.release()
