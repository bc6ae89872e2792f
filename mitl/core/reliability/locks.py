"""
Locks — in-process reader/writer lock and cross-process advisory file lock.

ReadWriteLock:
    Many readers OR one writer.  Writers are preferred: once a writer is
    waiting, new readers queue behind it so score updates are not starved
    by a stream of lookups.

FileLock:
    Exclusive-create lock file with polling.  Advisory only — it protects
    nothing from processes that don't take it.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Shared/exclusive lock built on a condition variable."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the lock shared for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the lock exclusively for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class LockTimeoutError(TimeoutError):
    """Raised when a FileLock cannot be acquired before its deadline."""


class FileLock:
    """Cross-process advisory lock using ``O_CREAT | O_EXCL``.

    Usage:
        with FileLock(path, timeout=10):
            ...  # critical section
    """

    def __init__(self, path: Path, timeout: float = 10.0, poll_interval: float = 0.2):
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Create the lock file, polling until ``timeout`` elapses.

        Raises:
            LockTimeoutError: Another holder kept the lock past the deadline.
            OSError: The lock file could not be created for another reason.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(f"timeout waiting for lock: {self.path}") from None
                time.sleep(self.poll_interval)
                continue
            try:
                os.write(fd, str(os.getpid()).encode("ascii"))
            except OSError:
                # A half-created lock would block every later holder
                self.path.unlink(missing_ok=True)
                raise
            finally:
                os.close(fd)
            self._held = True
            logger.debug("Acquired lock %s", self.path)
            return

    def release(self) -> None:
        """Remove the lock file. Safe to call when not held."""
        if not self._held:
            return
        self._held = False
        self.path.unlink(missing_ok=True)
        logger.debug("Released lock %s", self.path)

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
