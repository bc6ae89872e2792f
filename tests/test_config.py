"""
Tests for settings loading — defaults, config.yml, MITL_* overrides.
"""

from pathlib import Path

import pytest

from mitl.core.config.settings import (
    ConfigError,
    Settings,
    default_state_dir,
    load_settings,
)


class TestDefaults:
    def test_defaults(self, tmp_path: Path):
        settings = load_settings(env={"HOME": str(tmp_path)})

        assert settings.state_dir == tmp_path / ".mitl"
        assert settings.no_benchmark is False
        assert settings.bench_image == "alpine:latest"
        assert settings.build_cli is None
        assert settings.capsule_prefix == "mitl-capsule"
        assert settings.capsule_ttl_seconds == 300
        assert settings.bench_ttl_days == 14

    def test_paths(self, tmp_path: Path):
        settings = Settings(state_dir=tmp_path)
        assert settings.benchmark_cache_path == tmp_path / "benchmarks.json"
        assert settings.benchmark_lock_path == tmp_path / "benchmarks.lock"

    def test_no_home(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert default_state_dir({}) == Path.cwd() / ".mitl"


class TestEnvironment:
    def test_overrides(self, tmp_path: Path):
        env = {
            "HOME": str(tmp_path),
            "MITL_STATE_DIR": str(tmp_path / "custom"),
            "MITL_NO_BENCHMARK": "1",
            "MITL_BENCH_IMAGE": "busybox:latest",
            "MITL_BUILD_CLI": "podman",
            "MITL_RUN_CLI": "nerdctl",
        }
        settings = load_settings(env=env)

        assert settings.state_dir == tmp_path / "custom"
        assert settings.no_benchmark is True
        assert settings.bench_image == "busybox:latest"
        assert settings.build_cli == "podman"
        assert settings.run_cli == "nerdctl"

    @pytest.mark.parametrize("value", ["0", "true", "yes", ""])
    def test_only_one_disables_benchmark(self, tmp_path: Path, value):
        settings = load_settings(env={"HOME": str(tmp_path), "MITL_NO_BENCHMARK": value})
        assert settings.no_benchmark is False

    def test_empty_values_ignored(self, tmp_path: Path):
        settings = load_settings(env={"HOME": str(tmp_path), "MITL_BENCH_IMAGE": ""})
        assert settings.bench_image == "alpine:latest"


class TestConfigFile:
    def test_state_dir_config(self, tmp_path: Path):
        state = tmp_path / ".mitl"
        state.mkdir()
        (state / "config.yml").write_text(
            "bench_image: alpine:3.19\ncapsule_prefix: ci-capsule\nbench_ttl_days: 7\n"
        )
        settings = load_settings(env={"HOME": str(tmp_path)})

        assert settings.bench_image == "alpine:3.19"
        assert settings.capsule_prefix == "ci-capsule"
        assert settings.bench_ttl_days == 7

    def test_env_beats_file(self, tmp_path: Path):
        cfg = tmp_path / "mitl.yml"
        cfg.write_text("bench_image: from-file\nno_benchmark: true\n")
        settings = load_settings(
            cfg, env={"HOME": str(tmp_path), "MITL_BENCH_IMAGE": "from-env"},
        )
        assert settings.bench_image == "from-env"
        assert settings.no_benchmark is True

    def test_empty_file(self, tmp_path: Path):
        cfg = tmp_path / "mitl.yml"
        cfg.write_text("")
        assert load_settings(cfg, env={"HOME": str(tmp_path)}).bench_image == "alpine:latest"

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml", env={"HOME": str(tmp_path)})

    def test_invalid_yaml(self, tmp_path: Path):
        cfg = tmp_path / "mitl.yml"
        cfg.write_text("bench_image: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(cfg, env={"HOME": str(tmp_path)})

    def test_not_a_mapping(self, tmp_path: Path):
        cfg = tmp_path / "mitl.yml"
        cfg.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(cfg, env={"HOME": str(tmp_path)})

    def test_invalid_value(self, tmp_path: Path):
        cfg = tmp_path / "mitl.yml"
        cfg.write_text("capsule_ttl_seconds: soon\n")
        with pytest.raises(ConfigError, match="Invalid mitl configuration"):
            load_settings(cfg, env={"HOME": str(tmp_path)})
