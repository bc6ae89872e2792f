"""
Tests for domain models — validation, defaults, helpers.
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from mitl.core.models import (
    BenchmarkResult,
    CacheStatistics,
    HardwareProfile,
    ImageDetails,
    Runtime,
)
from mitl.core.models.runtime import seconds_to_ns


class TestHardwareProfile:
    def test_matches_ignores_size(self):
        a = HardwareProfile(os="linux", arch="amd64", cpu_cores=4, memory_gb=8)
        b = HardwareProfile(os="linux", arch="amd64", cpu_cores=64, memory_gb=512)
        assert a.matches(b)

    def test_mismatch(self):
        a = HardwareProfile(os="darwin", arch="arm64", apple_silicon=True)
        assert not a.matches(a.model_copy(update={"apple_silicon": False}))
        assert not a.matches(a.model_copy(update={"arch": "amd64"}))

    def test_frozen(self):
        profile = HardwareProfile(os="linux", arch="amd64")
        with pytest.raises(ValidationError):
            profile.os = "darwin"


class TestRuntime:
    def test_defaults(self):
        rt = Runtime(name="docker", path="/usr/bin/docker")
        assert rt.version == "unknown"
        assert rt.performance == 0.0
        assert rt.capabilities == []
        assert rt.last_benchmark is None


class TestBenchmarkResult:
    def test_usable(self):
        assert BenchmarkResult(runtime="a", score=1.0).usable
        assert not BenchmarkResult(runtime="a", score=0.0).usable
        assert not BenchmarkResult(runtime="a", score=1.0, error="x").usable

    def test_defaults(self):
        r = BenchmarkResult(runtime="a")
        assert r.mode == "exec"
        assert r.error is None
        assert r.timestamp.tzinfo is not None

    def test_rejects_unknown_mode(self):
        with pytest.raises(ValidationError):
            BenchmarkResult(runtime="a", mode="turbo")

    def test_nanosecond_timestamp(self):
        r = BenchmarkResult.model_validate(
            {"runtime": "a", "timestamp": "2026-10-01T12:00:00.987654321Z"}
        )
        assert r.timestamp == datetime(2026, 10, 1, 12, 0, 0, 987654, tzinfo=UTC)

    def test_seconds(self):
        r = BenchmarkResult(runtime="a", build_time=1_500_000_000, start_time=250_000_000)
        assert r.build_seconds == 1.5
        assert r.start_seconds == 0.25
        assert seconds_to_ns(0.4) == 400_000_000


class TestCapsuleModels:
    def test_image_details_aliases(self):
        d = ImageDetails.model_validate(
            {"Created": "x", "Size": 1, "Architecture": "arm64", "RepoDigests": ["r@sha256:1"],
             "Config": {"Cmd": ["sh"]}}
        )
        assert d.repo_digests == ["r@sha256:1"]
        assert ImageDetails(size=3).size == 3

    def test_hit_rate(self):
        assert CacheStatistics().hit_rate == 0.0
        assert CacheStatistics(hits=3, misses=1).hit_rate == 0.75
