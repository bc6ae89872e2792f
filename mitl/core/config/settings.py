"""
Settings loader — defaults, optional config.yml, then environment.

Precedence (lowest to highest):
    model defaults  >  <state_dir>/config.yml  >  MITL_* environment variables

Recognised environment variables:
    MITL_STATE_DIR      state directory (default ~/.mitl)
    MITL_NO_BENCHMARK   "1" disables benchmarking (static priority order)
    MITL_BENCH_IMAGE    base image for benchmark trials
    MITL_BUILD_CLI      explicit build engine override
    MITL_RUN_CLI        explicit run engine override
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"
DEFAULT_BENCH_IMAGE = "alpine:latest"
DEFAULT_CAPSULE_PREFIX = "mitl-capsule"


class ConfigError(Exception):
    """Raised when the mitl configuration file is invalid."""


def default_state_dir(env: Mapping[str, str] | None = None) -> Path:
    """``$HOME/.mitl``, or ``./.mitl`` when HOME is unset."""
    env = os.environ if env is None else env
    home = env.get("HOME")
    base = Path(home) if home else Path.cwd()
    return base / ".mitl"


class Settings(BaseModel):
    """Resolved runtime configuration."""

    state_dir: Path
    no_benchmark: bool = False
    bench_image: str = DEFAULT_BENCH_IMAGE
    build_cli: str | None = None
    run_cli: str | None = None
    capsule_prefix: str = DEFAULT_CAPSULE_PREFIX
    capsule_ttl_seconds: float = 300.0
    bench_ttl_days: float = 14.0
    lock_timeout_seconds: float = 10.0

    @property
    def benchmark_cache_path(self) -> Path:
        return self.state_dir / "benchmarks.json"

    @property
    def benchmark_lock_path(self) -> Path:
        return self.state_dir / "benchmarks.lock"


def _read_config_file(path: Path) -> dict:
    """Parse a YAML config file into a mapping."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _env_overrides(env: Mapping[str, str]) -> dict:
    overrides: dict = {}
    if env.get("MITL_STATE_DIR"):
        overrides["state_dir"] = Path(env["MITL_STATE_DIR"])
    if "MITL_NO_BENCHMARK" in env:
        overrides["no_benchmark"] = env["MITL_NO_BENCHMARK"] == "1"
    if env.get("MITL_BENCH_IMAGE"):
        overrides["bench_image"] = env["MITL_BENCH_IMAGE"]
    if env.get("MITL_BUILD_CLI"):
        overrides["build_cli"] = env["MITL_BUILD_CLI"]
    if env.get("MITL_RUN_CLI"):
        overrides["run_cli"] = env["MITL_RUN_CLI"]
    return overrides


def load_settings(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Resolve settings for this process.

    Args:
        config_path: Explicit config file. If None, ``<state_dir>/config.yml``
            is used when it exists.
        env: Environment mapping (default: ``os.environ``).

    Returns:
        Validated Settings.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    env = os.environ if env is None else env
    env_values = _env_overrides(env)
    state_dir = env_values.get("state_dir") or default_state_dir(env)

    data: dict = {"state_dir": state_dir}

    if config_path is not None and not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")
    path = config_path or state_dir / CONFIG_FILE
    if path.is_file():
        logger.debug("Loading mitl config from %s", path)
        data.update(_read_config_file(path))

    data.update(env_values)

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid mitl configuration: {e}") from e

    logger.debug(
        "Settings: state_dir=%s no_benchmark=%s bench_image=%s",
        settings.state_dir, settings.no_benchmark, settings.bench_image,
    )
    return settings
