"""
Benchmark engine — timed real-world trials against each runtime.

Two trial modes:
    exec        ``<rt> run --rm <image> echo hello``
    build+exec  build a one-line image in a temp dir, run it, remove it

Trials never raise: failures are recorded in BenchmarkResult.error and
the score stays 0.  Every temp dir, image and container is cleaned up,
including on the failure path.

Trials in a batch run one at a time.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path

from mitl.adapters.shell.command import CommandRunner
from mitl.core.config.settings import DEFAULT_BENCH_IMAGE
from mitl.core.models.runtime import (
    MODE_BUILD_EXEC,
    MODE_EXEC,
    BenchmarkResult,
    Runtime,
    seconds_to_ns,
)

logger = logging.getLogger(__name__)

EXPECTED_OUTPUT = "hello"

_DOCKERFILE = 'FROM {image}\nRUN echo benchmark\nCMD ["echo", "hello"]\n'


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_scores(results: list[BenchmarkResult]) -> list[BenchmarkResult]:
    """Rescale usable scores in place so the fastest becomes 1.0.

    Results with an error or a non-positive score are left alone.  When
    no result is usable the batch is returned unchanged.  Re-normalizing
    a normalized batch is a no-op (its minimum is already 1.0).
    """
    usable = [r.score for r in results if r.usable]
    if not usable:
        return results
    fastest = min(usable)
    for r in results:
        if r.usable:
            r.score = r.score / fastest
    return results


class BenchmarkEngine:
    """Runs benchmark trials through a CommandRunner.

    Args:
        runner: Command execution boundary.
        bench_image: Base image for trials (MITL_BENCH_IMAGE).
        timer: Monotonic seconds source used to time each step.
        clock: Wall-clock source for result timestamps.
    """

    def __init__(
        self,
        runner: CommandRunner,
        bench_image: str = DEFAULT_BENCH_IMAGE,
        timer: Callable[[], float] = time.perf_counter,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._runner = runner
        self.bench_image = bench_image
        self._timer = timer
        self._clock = clock

    # ── Batch ───────────────────────────────────────────────────

    def run_batch(
        self,
        runtimes: Iterable[Runtime],
        include_build: bool = False,
    ) -> list[BenchmarkResult]:
        """One trial per runtime, sequentially, then normalize."""
        results = [self.run_trial(rt, include_build) for rt in runtimes]
        normalize_scores(results)

        ok = sum(1 for r in results if r.usable)
        logger.info("Benchmark batch finished: %d/%d runtimes usable", ok, len(results))
        if results and not ok:
            logger.warning(
                "Benchmark could not run (likely no local images or network blocked). "
                "Pre-pull '%s' and retry.",
                self.bench_image,
            )
        return results

    # ── Single trial ────────────────────────────────────────────

    def run_trial(self, runtime: Runtime, include_build: bool = False) -> BenchmarkResult:
        """Time one trial against ``runtime``. Never raises."""
        mode = MODE_BUILD_EXEC if include_build else MODE_EXEC
        result = BenchmarkResult(runtime=runtime.name, timestamp=self._clock(), mode=mode)
        logger.debug("Benchmarking %s (%s)", runtime.name, mode)

        try:
            if include_build:
                self._build_and_run(runtime, result)
            else:
                self._run(runtime, self.bench_image, result)
        except Exception as e:
            # Cleanup already ran in the helpers; only the record is left
            logger.error("Benchmark of %s crashed: %s", runtime.name, e)
            result.error = f"benchmark error: {e}"
            result.score = 0.0

        if result.error:
            logger.info("Benchmark of %s failed: %s", runtime.name, result.error)
        return result

    def _build_and_run(self, runtime: Runtime, result: BenchmarkResult) -> None:
        tmp_dir = Path(tempfile.mkdtemp(prefix="mitl-bench-"))
        tag = f"mitl-bench-{runtime.name}-{time.time_ns()}"
        try:
            dockerfile = tmp_dir / "Dockerfile"
            dockerfile.write_text(_DOCKERFILE.format(image=self.bench_image), encoding="utf-8")

            start = self._timer()
            build = self._runner.run(
                [runtime.path, "build", "-t", tag, "-f", str(dockerfile), str(tmp_dir)]
            )
            build_seconds = self._timer() - start
            result.build_time = seconds_to_ns(build_seconds)

            if not build.ok:
                result.error = f"build failed: {build.describe_failure()}"
                return

            run_seconds = self._run(runtime, tag, result)
            if run_seconds is not None:
                result.score = build_seconds + run_seconds
        finally:
            self._runner.run([runtime.path, "rmi", tag])
            shutil.rmtree(tmp_dir, ignore_errors=True)

    def _run(self, runtime: Runtime, image: str, result: BenchmarkResult) -> float | None:
        """Run ``echo hello`` in ``image``.

        Returns the total run seconds on success, None on failure.
        """
        container = f"mitl-bench-{time.time_ns()}"
        start = self._timer()
        run = self._runner.run(
            [runtime.path, "run", "--rm", "--name", container, image, "echo", EXPECTED_OUTPUT]
        )
        total = self._timer() - start

        if not run.ok:
            self._runner.run([runtime.path, "rm", "-f", container])
            result.error = f"run failed: {run.describe_failure()}"
            return None
        if run.stdout.strip() != EXPECTED_OUTPUT:
            self._runner.run([runtime.path, "rm", "-f", container])
            result.error = "unexpected output"
            return None

        # Heuristic: start-up and exec cannot be separated from the outside,
        # so the total is split evenly. Not an independent measurement.
        half = seconds_to_ns(total / 2)
        result.start_time = half
        result.exec_time = half
        if result.mode == MODE_EXEC:
            result.score = total
        return total
