"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from mitl.adapters.mock import MockRunner
from mitl.core.models.runtime import HardwareProfile


class SequenceTimer:
    """Fake perf_counter returning scripted values in order."""

    def __init__(self, *values: float):
        self._values = list(values)

    def __call__(self) -> float:
        return self._values.pop(0)

    def push(self, *values: float) -> None:
        self._values.extend(values)


class MutableClock:
    """Settable clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """Return a temporary mitl state directory."""
    d = tmp_path / "state"
    d.mkdir()
    return d


@pytest.fixture
def runner() -> MockRunner:
    """A command runner that touches no real executable."""
    return MockRunner()


@pytest.fixture
def linux_profile() -> HardwareProfile:
    return HardwareProfile(os="linux", arch="amd64", apple_silicon=False, cpu_cores=8, memory_gb=16)


@pytest.fixture
def apple_profile() -> HardwareProfile:
    return HardwareProfile(os="darwin", arch="arm64", apple_silicon=True, cpu_cores=10, memory_gb=32)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def sequence_timer():
    """Factory: sequence_timer(0.0, 2.0, ...) → fake perf_counter."""
    return SequenceTimer


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """CLI invocations reconfigure the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)
