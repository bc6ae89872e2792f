"""
Runtime models — hardware fingerprint, discovered engines, benchmark results.

HardwareProfile is computed once per process and never mutated.
Runtime entries are created at discovery and updated in place as
benchmark scores arrive.  BenchmarkResult and ScoreCacheFile are the
persisted shape of a benchmark batch (see persistence/score_cache.py).
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

BenchMode = Literal["exec", "build+exec"]

MODE_EXEC: BenchMode = "exec"
MODE_BUILD_EXEC: BenchMode = "build+exec"

_NS_PER_SECOND = 1_000_000_000

# RFC3339 fractions beyond microseconds (e.g. nanosecond stamps)
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def _now() -> datetime:
    return datetime.now(UTC)


class HardwareProfile(BaseModel):
    """Host fingerprint used for runtime priorities and cache trust."""

    model_config = ConfigDict(frozen=True)

    os: str
    arch: str
    apple_silicon: bool = False  # native only: false under Rosetta
    cpu_cores: int = 0
    memory_gb: int = 0

    def matches(self, other: HardwareProfile) -> bool:
        """Whether two profiles describe the same hardware class.

        Core count and memory are informational and ignored.
        """
        return (
            self.os == other.os
            and self.arch == other.arch
            and self.apple_silicon == other.apple_silicon
        )


class Runtime(BaseModel):
    """A discovered container engine executable."""

    name: str                       # docker, podman, finch, container, nerdctl
    path: str                       # /usr/local/bin/docker
    version: str = "unknown"
    priority: int = 0               # higher = preferred
    capabilities: list[str] = Field(default_factory=list)
    performance: float = 0.0        # normalized score, 0 = unknown
    last_benchmark: datetime | None = None


class BenchmarkResult(BaseModel):
    """One benchmark trial.  Durations are integer nanoseconds."""

    runtime: str
    build_time: int = 0
    start_time: int = 0
    exec_time: int = 0
    score: float = 0.0              # lower is better; 1.0 = fastest after normalization
    timestamp: datetime = Field(default_factory=_now)
    error: str | None = None
    mode: BenchMode = MODE_EXEC

    @field_validator("error", mode="before")
    @classmethod
    def _blank_error_is_none(cls, v: object) -> object:
        return v or None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _trim_fraction(cls, v: object) -> object:
        if isinstance(v, str):
            return _EXTRA_FRACTION.sub(r"\1", v, count=1)
        return v

    @field_validator("mode", mode="before")
    @classmethod
    def _blank_mode_is_exec(cls, v: object) -> object:
        return v or MODE_EXEC

    @property
    def usable(self) -> bool:
        """Whether this result may take part in selection."""
        return not self.error and self.score > 0

    @property
    def build_seconds(self) -> float:
        return self.build_time / _NS_PER_SECOND

    @property
    def start_seconds(self) -> float:
        return self.start_time / _NS_PER_SECOND

    @property
    def exec_seconds(self) -> float:
        return self.exec_time / _NS_PER_SECOND


class ScoreCacheFile(BaseModel):
    """On-disk benchmark cache document."""

    hardware: HardwareProfile
    results: dict[str, BenchmarkResult] = Field(default_factory=dict)


def seconds_to_ns(seconds: float) -> int:
    """Convert a float duration in seconds to integer nanoseconds."""
    return int(round(seconds * _NS_PER_SECOND))
