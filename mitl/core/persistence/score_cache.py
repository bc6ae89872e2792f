"""
Score cache — persisted benchmark results with staleness detection.

Stored as JSON at ``<state_dir>/benchmarks.json``:

    {
      "hardware": {"os": ..., "arch": ..., "apple_silicon": ..., ...},
      "results":  {"<runtime>": {"runtime": ..., "score": ..., ...}}
    }

The file is trusted only when it is younger than the validity window,
was produced on the same hardware class, and covers every currently
discovered runtime.  Anything unreadable is simply stale.  Writes are
atomic (write to temp file, then rename) so a crash or a concurrent
writer never leaves a half-written document behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import timedelta
from pathlib import Path

from mitl.core.models.runtime import BenchmarkResult, HardwareProfile, Runtime, ScoreCacheFile

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY = timedelta(days=14)
DEFAULT_CACHE_FILE = "benchmarks.json"


class ScoreCache:
    """File-backed store of benchmark results.

    Args:
        path: Location of the JSON cache file.
        validity: Maximum age (by mtime) before the file is stale.
        disabled: Benchmarking opt-out (MITL_NO_BENCHMARK=1). When set,
            the cache never reports stale, so no benchmark is triggered.
        clock: Wall-clock seconds source compared against file mtimes.
    """

    def __init__(
        self,
        path: Path,
        validity: timedelta = DEFAULT_VALIDITY,
        disabled: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self.validity = validity
        self.disabled = disabled
        self._clock = clock

    # ── Staleness ───────────────────────────────────────────────

    def is_stale(self, profile: HardwareProfile, runtimes: Iterable[Runtime]) -> bool:
        """Whether a fresh benchmark is needed."""
        reason = self.stale_reason(profile, runtimes)
        if reason:
            logger.debug("Score cache %s is stale: %s", self.path, reason)
        return reason is not None

    def stale_reason(
        self,
        profile: HardwareProfile,
        runtimes: Iterable[Runtime],
    ) -> str | None:
        """Why the cache is stale, or None when it can be trusted."""
        if self.disabled:
            return None

        names = [rt.name for rt in runtimes]
        if not names:
            # Nothing to benchmark
            return None

        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return "no cache file"
        except OSError as e:
            return f"cannot stat cache file: {e}"

        age = self._clock() - mtime
        if age > self.validity.total_seconds():
            return f"older than {self.validity.days} days"

        doc = self._read()
        if doc is None:
            return "unreadable cache file"

        if not doc.hardware.matches(profile):
            return (
                f"hardware changed ({doc.hardware.os}/{doc.hardware.arch}"
                f"/apple_silicon={doc.hardware.apple_silicon})"
            )

        missing = [n for n in names if n not in doc.results]
        if missing:
            return f"no results for {', '.join(missing)}"

        return None

    # ── Load / save ─────────────────────────────────────────────

    def load(self) -> dict[str, BenchmarkResult]:
        """Cached results keyed by runtime name ({} when unreadable)."""
        doc = self._read()
        return dict(doc.results) if doc else {}

    def save(self, profile: HardwareProfile, results: Iterable[BenchmarkResult]) -> None:
        """Persist a full batch with the current hardware fingerprint.

        Overwrites the previous file.  Failures are logged, not raised:
        an unsaved batch just means the next process benchmarks again.
        """
        doc = ScoreCacheFile(
            hardware=profile,
            results={r.runtime: r for r in results},
        )
        content = json.dumps(_to_json(doc), indent=2) + "\n"

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=".benchmarks_",
                suffix=".tmp",
            )
            tmp = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                tmp.replace(self.path)
                logger.debug("Saved %d benchmark results to %s", len(doc.results), self.path)
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Failed to save benchmark cache to %s: %s", self.path, e)

    def _read(self) -> ScoreCacheFile | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
            return ScoreCacheFile.model_validate(json.loads(raw))
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cannot read benchmark cache %s: %s", self.path, e)
            return None
        except ValueError as e:
            # UnicodeDecodeError, json.JSONDecodeError and ValidationError
            logger.warning("Corrupt benchmark cache %s: %s", self.path, e)
            return None


def _to_json(doc: ScoreCacheFile) -> Mapping:
    """Serialize with optional fields dropped (no "error": null)."""
    data = doc.model_dump(mode="json")
    for entry in data["results"].values():
        if entry.get("error") is None:
            entry.pop("error", None)
    return data
