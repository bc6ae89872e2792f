"""
Runtime selector — pick the engine executable for the current operation.

Selection order:
    1. Native Apple Silicon + Apple ``container`` found → use it, no benchmark.
    2. Score cache stale → run an exec-only benchmark batch and persist it.
    3. Lowest normalized score among usable results.
    4. Highest-priority discovered runtime (static fallback).
    5. "docker", even if absent — callers handle "not found".

One RuntimeSelector is built per process (see build_selector) and
passed to whoever needs it.  Shared state (runtimes, in-memory scores)
sits behind a reader/writer lock; the benchmark-and-persist step also
takes a cross-process advisory file lock when one is configured.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from mitl.adapters.shell.command import CommandRunner, SubprocessRunner
from mitl.core.config.settings import Settings
from mitl.core.models.runtime import (
    MODE_BUILD_EXEC,
    MODE_EXEC,
    BenchmarkResult,
    HardwareProfile,
    Runtime,
)
from mitl.core.persistence.score_cache import ScoreCache
from mitl.core.reliability.locks import FileLock, LockTimeoutError, ReadWriteLock
from mitl.core.services.benchmark import BenchmarkEngine
from mitl.core.services.discovery import (
    RT_CONTAINER,
    RT_DOCKER,
    RuntimeDiscoverer,
    runtime_description,
)
from mitl.core.services.hardware import (
    HardwareProfiler,
    apple_silicon_generation,
    optimization_hints,
)

logger = logging.getLogger(__name__)

FALLBACK_RUNTIME = RT_DOCKER


@dataclass
class BenchmarkSummary:
    """Outcome of an explicit recalibration."""

    mode: str
    results: list[BenchmarkResult] = field(default_factory=list)
    best: str | None = None
    relative_speed: float = 0.0

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "best": self.best,
            "relative_speed": self.relative_speed,
            "results": [r.model_dump(mode="json") for r in self.results],
        }


@dataclass
class RuntimeRow:
    """One line of the runtime table."""

    runtime: Runtime
    active: bool = False
    description: str = ""


@dataclass
class RuntimeInfo:
    """Everything the ``runtime info`` view shows."""

    hardware: str
    profile: HardwareProfile
    selected: str
    rows: list[RuntimeRow] = field(default_factory=list)
    bench_mode: str | None = None                # None = no cached scores
    scores: list[tuple[str, float]] = field(default_factory=list)
    hints: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "hardware": self.hardware,
            "profile": self.profile.model_dump(),
            "selected": self.selected,
            "runtimes": [
                {
                    **row.runtime.model_dump(mode="json"),
                    "active": row.active,
                    "description": row.description,
                }
                for row in self.rows
            ],
            "bench_mode": self.bench_mode,
            "scores": {name: score for name, score in self.scores},
            "hints": self.hints,
        }


class RuntimeSelector:
    """Benchmark-driven engine selection for one host.

    Args:
        profile: Hardware profile detected at process start.
        runtimes: Discovered runtimes, highest priority first.
        score_cache: Persistent benchmark store.
        engine: Benchmark engine used when the cache is stale.
        runner: Command runner for the informational probes.
        file_lock: Optional cross-process lock around benchmark + save.
    """

    def __init__(
        self,
        profile: HardwareProfile,
        runtimes: Iterable[Runtime],
        score_cache: ScoreCache,
        engine: BenchmarkEngine,
        runner: CommandRunner | None = None,
        file_lock: FileLock | None = None,
    ):
        self._profile = profile
        self._runtimes = list(runtimes)
        self._score_cache = score_cache
        self._engine = engine
        self._runner = runner or SubprocessRunner()
        self._file_lock = file_lock
        self._lock = ReadWriteLock()
        self._scores: dict[str, BenchmarkResult] = score_cache.load()
        self._apply_cached_performance()

    # ── Accessors ───────────────────────────────────────────────

    @property
    def hardware_profile(self) -> HardwareProfile:
        return self._profile

    def available_runtimes(self) -> list[Runtime]:
        """Discovered runtimes, highest priority first."""
        with self._lock.read():
            return list(self._runtimes)

    def scores(self) -> dict[str, BenchmarkResult]:
        """Snapshot of the in-memory benchmark results."""
        with self._lock.read():
            return dict(self._scores)

    # ── Selection ───────────────────────────────────────────────

    def select_optimal(self) -> str:
        """Return the executable path of the best runtime."""
        native = self._native_fast_path()
        if native is not None:
            logger.info("Using Apple Container (native fast path): %s", native.path)
            return native.path

        if self._score_cache.is_stale(self._profile, self.available_runtimes()):
            logger.info("Running quick performance test (one-time)...")
            self._run_benchmark(include_build=False, force=False)

        best = self.best_by_performance()
        if best is not None:
            rel = self.relative_speed(best.name)
            if rel > 0:
                logger.info("Using %s (%.1fx faster)", best.name, rel)
            return best.path

        runtimes = self.available_runtimes()
        if runtimes:
            logger.debug("No usable benchmark — falling back to priority order")
            return runtimes[0].path

        logger.debug("No container runtime discovered — defaulting to %s", FALLBACK_RUNTIME)
        return FALLBACK_RUNTIME

    def best_by_performance(self) -> Runtime | None:
        """Runtime with the lowest usable score (priority order breaks ties)."""
        with self._lock.read():
            best: Runtime | None = None
            best_score = 0.0
            for rt in self._runtimes:
                res = self._scores.get(rt.name)
                if res is None or not res.usable:
                    continue
                if best is None or res.score < best_score:
                    best, best_score = rt, res.score
            return best

    def relative_speed(self, name: str) -> float:
        """How many times faster ``name`` is than the slowest other runtime.

        Returns 0 when there is nothing usable to compare against.
        """
        with self._lock.read():
            chosen = self._scores.get(name)
            if chosen is None or chosen.score <= 0:
                return 0.0
            slowest = max(
                (r.score for n, r in self._scores.items() if n != name and r.usable),
                default=0.0,
            )
        if slowest <= 0:
            return 0.0
        return slowest / chosen.score

    def force_benchmark(self, include_build: bool = False) -> BenchmarkSummary:
        """Re-run the benchmark batch regardless of cache state."""
        results = self._run_benchmark(include_build=include_build, force=True)
        summary = BenchmarkSummary(
            mode=MODE_BUILD_EXEC if include_build else MODE_EXEC,
            results=results,
        )
        best = self.best_by_performance()
        if best is not None:
            summary.best = best.name
            summary.relative_speed = self.relative_speed(best.name)
        return summary

    # ── Reporting ───────────────────────────────────────────────

    def runtime_info(self) -> RuntimeInfo:
        """Data behind ``mitl runtime info``."""
        chip = apple_silicon_generation(self._profile, self._runner)
        hardware = f"Apple {chip}" if chip and chip != "unknown" else self._profile.os

        selected = self.select_optimal()
        selected_name = Path(selected).name

        info = RuntimeInfo(
            hardware=hardware,
            profile=self._profile,
            selected=selected,
            hints=optimization_hints(self._profile, self._runner),
        )
        scores = self.scores()
        for rt in self.available_runtimes():
            info.rows.append(
                RuntimeRow(
                    runtime=rt,
                    active=rt.path == selected or rt.name == selected_name,
                    description=runtime_description(rt.name),
                )
            )
            res = scores.get(rt.name)
            if res is not None and res.usable:
                info.scores.append((rt.name, res.score))

        if scores:
            modes = {r.mode for r in scores.values()}
            info.bench_mode = MODE_BUILD_EXEC if MODE_BUILD_EXEC in modes else "exec-only"
        return info

    def recommendations(self) -> list[str]:
        """Human-readable optimization advice for this host."""
        lines: list[str] = []
        if self._profile.apple_silicon and self._native_fast_path() is None:
            lines.append("Apple Container not found (would be 5-10x faster)")
            lines.append("Install from: developer.apple.com/virtualization")

        selected = self.select_optimal()
        lines.append(f"Selected runtime: {selected}")
        lines.extend(optimization_hints(self._profile, self._runner))
        return lines

    # ── Internals ───────────────────────────────────────────────

    def _native_fast_path(self) -> Runtime | None:
        if not self._profile.apple_silicon:
            return None
        with self._lock.read():
            for rt in self._runtimes:
                if rt.name == RT_CONTAINER:
                    return rt
        return None

    def _run_benchmark(self, include_build: bool, force: bool) -> list[BenchmarkResult]:
        """Benchmark all runtimes, persist, and update in-memory scores."""
        acquired = self._acquire_file_lock()
        try:
            runtimes = self.available_runtimes()
            if acquired and not force and not self._score_cache.is_stale(self._profile, runtimes):
                # Another process finished a batch while we waited for the lock
                logger.info("Benchmark cache refreshed by another process — reusing it")
                self._reload_scores()
                return list(self.scores().values())

            results = self._engine.run_batch(runtimes, include_build)
            self._score_cache.save(self._profile, results)
            self._update_scores(results)
            return results
        finally:
            if acquired and self._file_lock is not None:
                self._file_lock.release()

    def _acquire_file_lock(self) -> bool:
        if self._file_lock is None:
            return False
        try:
            self._file_lock.acquire()
        except LockTimeoutError as e:
            logger.warning("%s — benchmarking without cross-process lock", e)
            return False
        except OSError as e:
            logger.warning("Cannot create benchmark lock %s: %s", self._file_lock.path, e)
            return False
        return True

    def _reload_scores(self) -> None:
        loaded = self._score_cache.load()
        with self._lock.write():
            self._scores.update(loaded)
        self._apply_cached_performance()

    def _update_scores(self, results: list[BenchmarkResult]) -> None:
        by_name = {r.runtime: r for r in results}
        with self._lock.write():
            self._scores.update(by_name)
            for rt in self._runtimes:
                res = by_name.get(rt.name)
                if res is not None and res.usable:
                    rt.performance = res.score
                    rt.last_benchmark = res.timestamp

    def _apply_cached_performance(self) -> None:
        """Copy fresh, error-free cached scores onto the Runtime entries."""
        cutoff = datetime.now(UTC) - self._score_cache.validity
        with self._lock.write():
            for rt in self._runtimes:
                cached = self._scores.get(rt.name)
                if cached is None or not cached.usable:
                    continue
                stamp = cached.timestamp
                if stamp.tzinfo is None:
                    stamp = stamp.replace(tzinfo=UTC)
                if stamp >= cutoff:
                    rt.performance = cached.score
                    rt.last_benchmark = cached.timestamp


# ── Construction ────────────────────────────────────────────────


def build_selector(
    settings: Settings,
    runner: CommandRunner | None = None,
    profile: HardwareProfile | None = None,
) -> RuntimeSelector:
    """Detect hardware, discover runtimes and wire a RuntimeSelector."""
    runner = runner or SubprocessRunner()
    profile = profile or HardwareProfiler(runner).detect()
    runtimes = RuntimeDiscoverer(runner).discover(profile)

    score_cache = ScoreCache(
        settings.benchmark_cache_path,
        validity=timedelta(days=settings.bench_ttl_days),
        disabled=settings.no_benchmark,
    )
    engine = BenchmarkEngine(runner, bench_image=settings.bench_image)
    lock = FileLock(settings.benchmark_lock_path, timeout=settings.lock_timeout_seconds)
    return RuntimeSelector(profile, runtimes, score_cache, engine, runner=runner, file_lock=lock)


def find_build_cli(
    settings: Settings,
    runner: CommandRunner | None = None,
    selector: RuntimeSelector | None = None,
) -> str:
    """Engine for builds: MITL_BUILD_CLI when resolvable, else the selection."""
    return _find_cli(settings.build_cli, settings, runner, selector)


def find_run_cli(
    settings: Settings,
    runner: CommandRunner | None = None,
    selector: RuntimeSelector | None = None,
) -> str:
    """Engine for runs: MITL_RUN_CLI when resolvable, else the selection."""
    return _find_cli(settings.run_cli, settings, runner, selector)


def _find_cli(
    override: str | None,
    settings: Settings,
    runner: CommandRunner | None,
    selector: RuntimeSelector | None,
) -> str:
    runner = runner or SubprocessRunner()
    if override:
        if runner.which(override):
            return override
        logger.warning("Configured runtime %r not found on PATH — ignoring", override)
    selector = selector or build_selector(settings, runner)
    return selector.select_optimal()
