"""
Tests for the reader/writer lock and the advisory file lock.
"""

import os
import threading
import time
from pathlib import Path

import pytest

from mitl.core.reliability import locks
from mitl.core.reliability.locks import FileLock, LockTimeoutError, ReadWriteLock


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        lock.acquire_read()
        done = threading.Event()

        def reader():
            with lock.read():
                done.set()

        t = threading.Thread(target=reader)
        t.start()
        assert done.wait(timeout=2)
        t.join()
        lock.release_read()

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        order: list[str] = []
        lock.acquire_write()

        def reader():
            with lock.read():
                order.append("reader")

        t = threading.Thread(target=reader)
        t.start()
        time.sleep(0.05)
        order.append("writer-done")
        lock.release_write()
        t.join(timeout=2)

        assert order == ["writer-done", "reader"]

    def test_writer_waits_for_reader(self):
        lock = ReadWriteLock()
        order: list[str] = []
        lock.acquire_read()

        def writer():
            with lock.write():
                order.append("writer")

        t = threading.Thread(target=writer)
        t.start()
        time.sleep(0.05)
        order.append("reader-done")
        lock.release_read()
        t.join(timeout=2)

        assert order == ["reader-done", "writer"]

    def test_concurrent_updates(self):
        lock = ReadWriteLock()
        counter = {"n": 0}

        def bump():
            for _ in range(200):
                with lock.write():
                    counter["n"] += 1

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter["n"] == 800


class TestFileLock:
    def test_acquire_release(self, tmp_path: Path):
        path = tmp_path / "sub" / "x.lock"
        lock = FileLock(path, timeout=1)

        with lock:
            assert lock.held
            assert path.read_text() == str(os.getpid())
        assert not lock.held
        assert not path.exists()

    def test_timeout(self, tmp_path: Path):
        path = tmp_path / "x.lock"
        path.write_text("1")
        lock = FileLock(path, timeout=0.1, poll_interval=0.02)

        with pytest.raises(LockTimeoutError):
            lock.acquire()
        assert not lock.held
        assert path.exists()

    def test_second_holder_waits(self, tmp_path: Path):
        path = tmp_path / "x.lock"
        first = FileLock(path)
        first.acquire()

        def release_soon():
            time.sleep(0.1)
            first.release()

        t = threading.Thread(target=release_soon)
        t.start()
        second = FileLock(path, timeout=2, poll_interval=0.02)
        second.acquire()
        assert second.held
        second.release()
        t.join()

    def test_failed_pid_write_leaves_no_lock(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "x.lock"
        closed: list[int] = []
        real_close = os.close

        def failing_write(fd, data):
            raise OSError(28, "No space left on device")

        def tracking_close(fd):
            closed.append(fd)
            real_close(fd)

        monkeypatch.setattr(locks.os, "write", failing_write)
        monkeypatch.setattr(locks.os, "close", tracking_close)
        lock = FileLock(path, timeout=0.1, poll_interval=0.02)

        with pytest.raises(OSError, match="No space left"):
            lock.acquire()
        monkeypatch.undo()

        assert len(closed) == 1
        assert not lock.held
        assert not path.exists()
        with FileLock(path, timeout=0.1) as again:
            assert again.held

    def test_release_when_not_held(self, tmp_path: Path):
        path = tmp_path / "x.lock"
        path.write_text("someone else")
        FileLock(path).release()
        assert path.exists()

    def test_timeout_is_timeout_error(self):
        assert issubclass(LockTimeoutError, TimeoutError)
