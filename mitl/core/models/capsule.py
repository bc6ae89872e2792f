"""
Capsule models — image metadata and cache bookkeeping.

A capsule is an image built and tracked by mitl, named
``<prefix>:<tag>`` by convention.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ImageDetails(BaseModel):
    """Subset of ``<runtime> inspect`` output we care about."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    created: str = Field(default="", alias="Created")
    size: int = Field(default=0, alias="Size")
    architecture: str = Field(default="", alias="Architecture")
    repo_digests: list[str] = Field(default_factory=list, alias="RepoDigests")


class CapsuleCacheEntry(BaseModel):
    """In-memory existence record. Never persisted."""

    exists: bool
    checked_at: float  # clock seconds


class CacheStatistics(BaseModel):
    """Hit/miss counters across all capsule caches of a manager."""

    hits: int = 0
    misses: int = 0
    item_count: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0
