"""
Domain models — Pydantic types for runtime selection and capsule caching.

All models are re-exported here for convenient access:

    from mitl.core.models import HardwareProfile, Runtime, BenchmarkResult
"""

from mitl.core.models.capsule import CacheStatistics, CapsuleCacheEntry, ImageDetails
from mitl.core.models.runtime import (
    MODE_BUILD_EXEC,
    MODE_EXEC,
    BenchmarkResult,
    BenchMode,
    HardwareProfile,
    Runtime,
    ScoreCacheFile,
)

__all__ = [
    # runtime.py
    "MODE_BUILD_EXEC",
    "MODE_EXEC",
    "BenchMode",
    "BenchmarkResult",
    "HardwareProfile",
    "Runtime",
    "ScoreCacheFile",
    # capsule.py
    "CacheStatistics",
    "CapsuleCacheEntry",
    "ImageDetails",
]
