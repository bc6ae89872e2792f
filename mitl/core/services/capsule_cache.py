"""
Capsule cache — short-TTL existence checks for built images.

``CapsuleCache`` answers "does this capsule image exist?" by asking the
selected runtime (``<rt> images -q <tag>``) and remembering the answer,
positive or negative, for five minutes.  Details come from
``<rt> inspect <tag> --format {{json .}}`` and are never cached.

``CapsuleManager`` hands out one CapsuleCache per tag and performs bulk
maintenance over every image named ``<prefix>:*``.

Probe failures raise CapsuleProbeError.  Digest validation fails closed.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from mitl.adapters.shell.command import CommandRunner
from mitl.core.config.settings import DEFAULT_CAPSULE_PREFIX
from mitl.core.models.capsule import CacheStatistics, CapsuleCacheEntry, ImageDetails
from mitl.core.reliability.locks import ReadWriteLock

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class CapsuleProbeError(RuntimeError):
    """The runtime could not be queried about a capsule."""


class CapsuleInspectError(CapsuleProbeError):
    """Inspect output could not be parsed.

    The existence answer obtained before the inspect is still valid
    and is carried in ``exists``.
    """

    def __init__(self, message: str, exists: bool = True):
        super().__init__(message)
        self.exists = exists


class CapsuleCache:
    """Existence/metadata cache for one capsule tag.

    Args:
        runtime: Engine executable (name or path).
        tag: Image reference, e.g. ``mitl-capsule:3f2a9c``.
        runner: Command execution boundary.
        ttl: Seconds an existence answer stays valid.
        clock: Monotonic seconds source.
    """

    def __init__(
        self,
        runtime: str,
        tag: str,
        runner: CommandRunner,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runtime = runtime
        self.tag = tag
        self.ttl = ttl
        self._runner = runner
        self._clock = clock
        self._lock = ReadWriteLock()
        self._mem_cache: dict[str, CapsuleCacheEntry] = {}
        self._counter_lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @property
    def cached(self) -> bool:
        """Whether a live (unexpired) entry is held for this tag."""
        return self._fresh_entry() is not None

    def exists(self) -> bool:
        """Whether the image exists, consulting the memory cache first.

        Raises:
            CapsuleProbeError: The image listing command failed.
        """
        entry = self._fresh_entry()
        if entry is not None:
            self._count(hit=True)
            return entry.exists

        self._count(hit=False)
        r = self._runner.run([self.runtime, "images", "-q", self.tag])
        if not r.ok:
            raise CapsuleProbeError(f"{self.runtime} images failed: {r.describe_failure()}")
        exists = r.stdout.strip() != ""

        with self._lock.write():
            self._mem_cache[self.tag] = CapsuleCacheEntry(exists=exists, checked_at=self._clock())
        logger.debug("Capsule %s exists=%s (probed)", self.tag, exists)
        return exists

    def exists_with_details(self) -> tuple[bool, ImageDetails | None]:
        """Like exists(), plus parsed inspect metadata when present.

        Raises:
            CapsuleProbeError: Listing or inspect command failed.
            CapsuleInspectError: Inspect output was not parseable.
        """
        if not self.exists():
            return False, None

        r = self._runner.run([self.runtime, "inspect", self.tag, "--format", "{{json .}}"])
        if not r.ok:
            raise CapsuleProbeError(f"{self.runtime} inspect failed: {r.describe_failure()}")

        try:
            return True, parse_inspect_output(r.stdout)
        except ValueError as e:
            raise CapsuleInspectError(f"parse inspect output: {e}", exists=True) from e

    def invalidate_cache(self) -> None:
        """Drop the memory entry so the next exists() re-probes."""
        with self._lock.write():
            self._mem_cache.pop(self.tag, None)

    def validate_digest(self, expected_digest: str) -> bool:
        """True when any recorded repo digest contains ``expected_digest``.

        Any error, or a missing image, yields False.
        """
        if not expected_digest:
            return False
        try:
            exists, details = self.exists_with_details()
        except CapsuleProbeError as e:
            logger.debug("Digest validation for %s failed closed: %s", self.tag, e)
            return False
        if not exists or details is None:
            return False
        return any(expected_digest in d for d in details.repo_digests)

    def _fresh_entry(self) -> CapsuleCacheEntry | None:
        with self._lock.read():
            entry = self._mem_cache.get(self.tag)
        if entry is None or self._clock() - entry.checked_at >= self.ttl:
            return None
        return entry

    def _count(self, hit: bool) -> None:
        with self._counter_lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1


def parse_inspect_output(raw: str) -> ImageDetails:
    """Parse ``inspect --format {{json .}}`` output.

    Accepts a single JSON object or a list whose first element is one.

    Raises:
        ValueError: Output is empty, not JSON, or not an object.
    """
    data = json.loads(raw)
    if isinstance(data, list):
        if not data:
            raise ValueError("empty inspect result")
        data = data[0]
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    try:
        return ImageDetails.model_validate(data)
    except ValidationError as e:
        raise ValueError(str(e)) from e


class CapsuleManager:
    """Per-tag cache factory plus bulk capsule maintenance.

    Args:
        runtime: Engine executable used for every probe.
        runner: Command execution boundary.
        prefix: Capsule repository name (``<prefix>:<tag>``).
        ttl: Existence TTL handed to each CapsuleCache.
        clock: Monotonic seconds source for the caches.
        now: Wall-clock source for age-based cleanup.
    """

    def __init__(
        self,
        runtime: str,
        runner: CommandRunner,
        prefix: str = DEFAULT_CAPSULE_PREFIX,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.runtime = runtime
        self.prefix = prefix
        self._runner = runner
        self._ttl = ttl
        self._clock = clock
        self._now = now
        self._lock = ReadWriteLock()
        self._caches: dict[str, CapsuleCache] = {}

    def get_capsule_cache(self, tag: str) -> CapsuleCache:
        """The shared CapsuleCache for ``tag`` (created on first use)."""
        with self._lock.read():
            cache = self._caches.get(tag)
        if cache is not None:
            return cache
        with self._lock.write():
            cache = self._caches.get(tag)
            if cache is None:
                cache = CapsuleCache(self.runtime, tag, self._runner, ttl=self._ttl, clock=self._clock)
                self._caches[tag] = cache
            return cache

    def stats(self) -> CacheStatistics:
        """Hit/miss counters summed over all caches handed out."""
        with self._lock.read():
            caches = list(self._caches.values())
        return CacheStatistics(
            hits=sum(c.hits for c in caches),
            misses=sum(c.misses for c in caches),
            item_count=sum(1 for c in caches if c.cached),
        )

    def list_capsules(self) -> list[str]:
        """Image listing lines that belong to capsules.

        Raises:
            CapsuleProbeError: The listing command failed.
        """
        r = self._runner.run([self.runtime, "images"])
        if not r.ok:
            raise CapsuleProbeError(f"list images failed: {r.describe_failure()}")
        return [line for line in r.stdout.splitlines() if self.prefix in line]

    def clear_all(self) -> int:
        """Remove every ``<prefix>:*`` image. Returns the number removed.

        Individual removal failures are ignored.

        Raises:
            CapsuleProbeError: The listing command failed.
        """
        ids = self._list_ids()
        return self._remove(ids)

    def clear_old(self, age: timedelta) -> int:
        """Remove capsule images created more than ``age`` ago.

        Creation times come from inspect; images whose age cannot be
        determined are kept.

        Raises:
            CapsuleProbeError: The listing command failed.
        """
        cutoff = self._now() - age
        old: list[str] = []
        for image_id in self._list_ids():
            created = self._created_at(image_id)
            if created is not None and created < cutoff:
                old.append(image_id)
        return self._remove(old)

    def _list_ids(self) -> list[str]:
        r = self._runner.run(
            [self.runtime, "images", "--filter", f"reference={self.prefix}:*", "-q"]
        )
        if not r.ok:
            raise CapsuleProbeError(f"list images failed: {r.describe_failure()}")
        # One image id may be listed once per tag
        return list(dict.fromkeys(line.strip() for line in r.stdout.splitlines() if line.strip()))

    def _remove(self, ids: list[str]) -> int:
        removed = 0
        for image_id in ids:
            r = self._runner.run([self.runtime, "rmi", image_id])
            if r.ok:
                removed += 1
            else:
                logger.debug("Could not remove %s: %s", image_id, r.describe_failure())

        if ids:
            with self._lock.read():
                caches = list(self._caches.values())
            for cache in caches:
                cache.invalidate_cache()
        logger.info("Removed %d/%d capsule images", removed, len(ids))
        return removed

    def _created_at(self, image_id: str) -> datetime | None:
        r = self._runner.run([self.runtime, "inspect", image_id, "--format", "{{json .}}"])
        if not r.ok:
            logger.debug("Cannot inspect %s: %s", image_id, r.describe_failure())
            return None
        try:
            return parse_created(parse_inspect_output(r.stdout).created)
        except ValueError as e:
            logger.debug("Cannot read creation time of %s: %s", image_id, e)
            return None


_FRACTION = re.compile(r"(\.\d{1,6})\d*")


def parse_created(value: str) -> datetime:
    """Parse an RFC3339 ``Created`` value (nanosecond precision allowed).

    Raises:
        ValueError: Not a timestamp.
    """
    text = _FRACTION.sub(r"\1", value.strip().replace("Z", "+00:00"), count=1)
    created = datetime.fromisoformat(text)
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return created
