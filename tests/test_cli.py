"""
Tests for CLI commands — global options, runtime and cache groups.

Settings, runner and hardware profile are pre-seeded through ``obj``
so no real engine is touched.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from mitl.adapters.mock import MockRunner
from mitl.core.config.settings import Settings
from mitl.core.models.runtime import HardwareProfile
from mitl.main import cli

TAG = "mitl-capsule:3f2a9c"


@pytest.fixture
def engines() -> MockRunner:
    runner = MockRunner()
    runner.add_executable("podman")
    runner.add_executable("docker")
    runner.set_response(("/usr/bin/podman", "--version"), stdout="podman version 4.9.3\n")
    runner.set_response(("/usr/bin/podman", "run"), stdout="hello\n")
    runner.set_response(("/usr/bin/docker", "run"), stdout="hello\n")
    return runner


@pytest.fixture
def obj(state_dir: Path, engines: MockRunner, linux_profile: HardwareProfile) -> dict:
    return {
        "settings": Settings(state_dir=state_dir, no_benchmark=True, build_cli="docker"),
        "runner": engines,
        "profile": linux_profile,
    }


def _invoke(args: list[str], obj: dict | None = None):
    return CliRunner().invoke(cli, args, obj=obj)


class TestCLIGlobal:
    def test_help(self):
        result = _invoke(["--help"])
        assert result.exit_code == 0
        assert "runtime" in result.output
        assert "cache" in result.output

    def test_version(self):
        result = _invoke(["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config_file(self, tmp_path: Path):
        result = _invoke(["--config", str(tmp_path / "nope.yml"), "runtime", "select"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestRuntimeCommands:
    def test_select(self, obj: dict):
        result = _invoke(["runtime", "select"], obj)
        assert result.exit_code == 0
        assert result.output.strip() == "/usr/bin/podman"

    def test_list(self, obj: dict):
        result = _invoke(["runtime", "list"], obj)
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert "podman 4.9.3" in lines[0]
        assert "docker" in lines[1]

    def test_list_json(self, obj: dict):
        result = _invoke(["runtime", "list", "--json"], obj)
        data = json.loads(result.output)
        assert [r["name"] for r in data] == ["podman", "docker"]
        assert data[0]["priority"] == 90

    def test_info_json(self, obj: dict):
        result = _invoke(["runtime", "info", "--json"], obj)
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["selected"] == "/usr/bin/podman"
        assert data["runtimes"][0]["active"] is True
        assert data["bench_mode"] is None

    def test_info_text(self, obj: dict):
        result = _invoke(["runtime", "info"], obj)
        assert result.exit_code == 0
        assert "Available Runtimes" in result.output
        assert "[ACTIVE]" in result.output
        assert "No performance data cached" in result.output

    def test_benchmark_json(self, obj: dict, state_dir: Path):
        result = _invoke(["runtime", "benchmark", "--json"], obj)
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["mode"] == "exec"
        assert data["best"] in ("podman", "docker")
        assert (state_dir / "benchmarks.json").is_file()

    def test_benchmark_text(self, obj: dict):
        result = _invoke(["runtime", "benchmark", "-b"], obj)
        assert result.exit_code == 0
        assert "Benchmark complete (build+exec)" in result.output

    def test_recommend(self, obj: dict):
        result = _invoke(["runtime", "recommend"], obj)
        assert result.exit_code == 0
        assert "Selected runtime: /usr/bin/podman" in result.output


class TestCacheCommands:
    def test_exists(self, obj: dict, engines: MockRunner):
        engines.set_response(("docker", "images", "-q", TAG), stdout="0123456789ab\n")
        result = _invoke(["cache", "exists", TAG], obj)
        assert result.exit_code == 0
        assert TAG in result.output

    def test_missing_exits_1(self, obj: dict):
        result = _invoke(["cache", "exists", TAG], obj)
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_probe_error_exits_1(self, obj: dict, engines: MockRunner):
        engines.set_failure(("docker", "images"), stderr="daemon not running")
        result = _invoke(["cache", "exists", TAG], obj)
        assert result.exit_code == 1
        assert "daemon not running" in result.output

    def test_inspect_json(self, obj: dict, engines: MockRunner):
        engines.set_response(("docker", "images", "-q", TAG), stdout="0123456789ab\n")
        engines.set_response(
            ("docker", "inspect", TAG),
            stdout='{"Created": "2026-10-01T08:30:00Z", "Size": 42, "Architecture": "amd64"}',
        )
        result = _invoke(["cache", "inspect", TAG, "--json"], obj)
        assert result.exit_code == 0
        assert json.loads(result.output)["size"] == 42

    def test_verify(self, obj: dict, engines: MockRunner):
        engines.set_response(("docker", "images", "-q", TAG), stdout="0123456789ab\n")
        engines.set_response(
            ("docker", "inspect", TAG),
            stdout='{"RepoDigests": ["mitl-capsule@sha256:abc123"]}',
        )
        assert _invoke(["cache", "verify", TAG, "sha256:abc123"], obj).exit_code == 0
        assert _invoke(["cache", "verify", TAG, "sha256:ffff"], obj).exit_code == 1

    def test_clear(self, obj: dict, engines: MockRunner):
        engines.set_response(("docker", "images", "--filter"), stdout="aaa\nbbb\n")
        result = _invoke(["cache", "clear"], obj)
        assert result.exit_code == 0
        assert "Removed 2" in result.output

    def test_list_empty(self, obj: dict):
        result = _invoke(["cache", "list"], obj)
        assert result.exit_code == 0
        assert "No cached capsules" in result.output

    def test_stats(self, obj: dict):
        result = _invoke(["cache", "stats"], obj)
        assert result.exit_code == 0
        assert "Cached capsules: 0" in result.output
