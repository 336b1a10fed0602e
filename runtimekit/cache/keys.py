"""
Cache key computation.

A key has the form ``{platform}-{version_hash}-{lockfile_hash}``:

- ``version_hash`` covers the resolved runtime versions and the package
  manager, so changing any toolchain version invalidates the cache
- ``lockfile_hash`` covers the raw bytes of every lockfile

The fallback key ``{platform}-{version_hash}-`` lets a job whose lockfiles
changed restore the toolchains and most dependencies from an older entry.
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from runtimekit.runtime.package_manager import PackageManagerInfo
from runtimekit.runtime.versions import ResolvedVersion

logger = logging.getLogger(__name__)

HASH_LENGTH = 8
READ_CHUNK_SIZE = 65536


@dataclass(frozen=True)
class CacheKey:
    """
    Keys for one job.

    Attributes:
        platform: Host OS (linux, darwin, win32)
        version_hash: 8 hex digits over runtime and package manager versions
        lockfile_hash: 8 hex digits over lockfile contents
        primary_key: Exact key saved after the job
        fallback_key: Prefix tried when the exact key misses
        salted: True when a cache-bust salt went into the version hash
    """

    platform: str
    version_hash: str
    lockfile_hash: str
    primary_key: str
    fallback_key: str
    salted: bool = False

    @property
    def restore_keys(self) -> list:
        """Prefix keys to try after the primary key; none for salted keys."""
        return [] if self.salted else [self.fallback_key]


def compute_version_hash(
    resolved: Iterable[ResolvedVersion],
    package_manager: PackageManagerInfo,
    salt: Optional[str] = None,
) -> str:
    """
    Hash the toolchain versions.

    The digest covers, in order: the salt (only when given), then
    ``runtime:version`` for each runtime sorted by name, then
    ``pm_name:pm_version``. Input order of ``resolved`` does not matter.
    """
    hasher = hashlib.sha256()
    if salt is not None:
        hasher.update(salt.encode("utf-8"))
    for item in sorted(resolved, key=lambda r: str(r.runtime.value)):
        hasher.update(f"{item.runtime.value}:{item.concrete_version}".encode("utf-8"))
    hasher.update(f"{package_manager.name}:{package_manager.version}".encode("utf-8"))
    return hasher.hexdigest()[:HASH_LENGTH]


def compute_lockfile_hash(lockfiles: Sequence[Path]) -> str:
    """
    Hash the concatenated contents of lockfiles in sorted path order.

    Unreadable files are logged and skipped. No lockfiles yields the hash of
    empty input, ``e3b0c442``.
    """
    hasher = hashlib.sha256()
    for path in sorted((Path(p) for p in lockfiles), key=str):
        try:
            with open(path, "rb") as f:
                while chunk := f.read(READ_CHUNK_SIZE):
                    hasher.update(chunk)
        except OSError as e:
            logger.warning(f"Failed to read lockfile {path}: {e}")
    return hasher.hexdigest()[:HASH_LENGTH]


def build_cache_key(
    resolved: Iterable[ResolvedVersion],
    package_manager: PackageManagerInfo,
    lockfiles: Sequence[Path],
    platform: str,
    salt: Optional[str] = None,
) -> CacheKey:
    """
    Build the cache key for a job.

    Args:
        resolved: Resolved runtime versions
        package_manager: Primary package manager
        lockfiles: Discovered lockfiles
        platform: Host OS name
        salt: Cache-bust salt; mixed in only when explicitly given

    Example:
        >>> key = build_cache_key([node_20], npm_info, [], "linux")
        >>> key.primary_key
        'linux-1a2b3c4d-e3b0c442'
    """
    version_hash = compute_version_hash(resolved, package_manager, salt)
    lockfile_hash = compute_lockfile_hash(lockfiles)
    fallback_key = f"{platform}-{version_hash}-"
    key = CacheKey(
        platform=platform,
        version_hash=version_hash,
        lockfile_hash=lockfile_hash,
        primary_key=f"{fallback_key}{lockfile_hash}",
        fallback_key=fallback_key,
        salted=salt is not None,
    )
    logger.debug(f"Cache key {key.primary_key} (fallback {key.fallback_key})")
    return key


__all__ = [
    "CacheKey",
    "HASH_LENGTH",
    "compute_version_hash",
    "compute_lockfile_hash",
    "build_cache_key",
]
