"""Job lock: one running instance per lock file.

The lock is an advisory ``flock`` held for the whole run. A second
acquirer, including a second attempt from the same process, fails
immediately instead of waiting. The holder writes an annotation into the
lock file so contenders can report who is running.
"""

import fcntl
import logging
import os
from pathlib import Path

from ..__util__ import LockContention

logger = logging.getLogger(__name__)


class Lock:
    """Handle for a held job lock."""

    def __init__(self, path: Path, fd: int) -> None:
        self.path = path
        self._fd: int | None = fd

    @property
    def held(self) -> bool:
        return self._fd is not None

    def release(self) -> None:
        """Remove the lock file and drop the lock. Safe to call repeatedly."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            self.path.unlink(missing_ok=True)
        finally:
            try:
                fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)
        logger.debug("Released lock %s", self.path)

    def __enter__(self) -> "Lock":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"Lock({str(self.path)!r}, held={self.held})"


class LockGuard:
    """Acquire the exclusive, non-blocking lock stored at ``path``."""

    def __init__(self, path) -> None:
        self.path = Path(path)

    def acquire(self, annotation: str) -> Lock:
        """Take the lock and annotate it.

        Args:
            annotation: Free text identifying the holder

        Returns:
            Lock handle; release it exactly once

        Raises:
            LockContention: If anyone (this process included) holds the lock
        """
        while True:
            # No O_TRUNC: a contender must not wipe the holder's annotation.
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                try:
                    content = _read_fd(fd)
                finally:
                    os.close(fd)
                raise LockContention(self.path, content.strip())
            except BaseException:
                os.close(fd)
                raise

            # The previous holder unlinks on release; a lock on that orphaned
            # inode excludes nobody, so reopen the file now at the path.
            if _same_file(fd, self.path):
                break
            os.close(fd)
            logger.debug("Lock file %s was replaced, retrying", self.path)

        os.ftruncate(fd, 0)
        os.write(fd, f"{annotation}\n".encode())
        os.fsync(fd)
        logger.debug("Acquired lock %s (%s)", self.path, annotation)
        return Lock(self.path, fd)


def _read_fd(fd: int) -> str:
    os.lseek(fd, 0, os.SEEK_SET)
    chunks = []
    while True:
        chunk = os.read(fd, 4096)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode(errors="replace")


def annotation_for(pid: int, timestamp: str) -> str:
    return f"Started by pid {pid} at {timestamp}"


def _same_file(fd: int, path: Path) -> bool:
    try:
        current = os.stat(path)
    except FileNotFoundError:
        return False
    held = os.fstat(fd)
    return (held.st_dev, held.st_ino) == (current.st_dev, current.st_ino)
