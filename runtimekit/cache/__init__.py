"""
Dependency and toolchain caching.

Lockfile discovery, cache keys, cache paths, cache service backends and the
restore/save lifecycle.
"""

from .lockfiles import discover_lockfiles, relative_lockfiles
from .keys import CacheKey, build_cache_key
from .paths import resolve_cache_paths, sort_paths_absolute_first
from .service import CacheService, LocalCacheService
from .manager import CacheManager, CacheOutcome, CacheState

__all__ = [
    "discover_lockfiles",
    "relative_lockfiles",
    "CacheKey",
    "build_cache_key",
    "resolve_cache_paths",
    "sort_paths_absolute_first",
    "CacheService",
    "LocalCacheService",
    "CacheManager",
    "CacheOutcome",
    "CacheState",
]
