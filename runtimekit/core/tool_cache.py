"""
Local tool cache for installed runtimes.

Installed runtimes live under a per-host root laid out like the hosted tool
cache of CI runners:

    {root}/{runtime}/{version}/{target}/            installed files
    {root}/{runtime}/{version}/{target}.complete    publish marker
    {root}/.locks/{runtime}-{version}-{target}.lock per-entry file lock

``target`` is the platform key ``{os}-{arch}`` (``linux-x64``, ``win32-arm64``),
so builds for different systems never share an entry.

An entry is only visible once its marker exists. Entries are staged in a
sibling temporary directory on the same filesystem and moved into place with
a single rename, so a partially written directory never appears under its
final name.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from filelock import FileLock, Timeout

from runtimekit.core.directory import get_tool_cache_dir
from runtimekit.core.exceptions import ToolCacheError, ToolCacheLockTimeout
from runtimekit.core.filesystem import atomic_write, safe_rmtree, temporary_directory

logger = logging.getLogger(__name__)

COMPLETE_SUFFIX = ".complete"


class ToolCache:
    """
    Manages the tool cache with per-entry locking.

    Example:
        >>> cache = ToolCache(Path('/opt/hostedtoolcache'))
        >>> cache.find("node", "20.19.5", "linux-x64")
        PosixPath("/opt/hostedtoolcache/node/20.19.5/linux-x64")
    """

    def __init__(self, root: Optional[Path] = None, lock_timeout: float = 300):
        """
        Initialize the tool cache.

        Args:
            root: Tool cache root (default: $RUNNER_TOOL_CACHE or ~/.runtimekit/toolcache)
            lock_timeout: Seconds to wait for another process installing the same entry
        """
        self.root = Path(root) if root is not None else get_tool_cache_dir()
        self.lock_timeout = lock_timeout
        logger.debug(f"Using tool cache at {self.root}")

    def entry_dir(self, runtime: str, version: str, target: str) -> Path:
        return self.root / runtime / version / target

    def _marker(self, runtime: str, version: str, target: str) -> Path:
        return self.root / runtime / version / f"{target}{COMPLETE_SUFFIX}"

    def find(self, runtime: str, version: str, target: str) -> Optional[Path]:
        """
        Look up a completed entry.

        Returns:
            The entry directory, or None when missing or incomplete
        """
        entry = self.entry_dir(runtime, version, target)
        if entry.is_dir() and self._marker(runtime, version, target).is_file():
            return entry
        return None

    def versions(self, runtime: str, target: str) -> List[str]:
        """List versions of a runtime with a completed entry for ``target``."""
        runtime_dir = self.root / runtime
        if not runtime_dir.is_dir():
            return []
        return sorted(
            child.name
            for child in runtime_dir.iterdir()
            if child.is_dir() and self.find(runtime, child.name, target) is not None
        )

    @contextmanager
    def lock(self, runtime: str, version: str, target: str):
        """
        Context manager for exclusive access to one entry.

        Raises:
            ToolCacheLockTimeout: If lock cannot be acquired within timeout
        """
        lock_path = self.root / ".locks" / f"{runtime}-{version}-{target}.lock"
        lock_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with FileLock(lock_path, timeout=self.lock_timeout):
                logger.debug(f"Acquired tool cache lock {lock_path.name}")
                yield
        except Timeout as e:
            raise ToolCacheLockTimeout(
                f"Could not lock {runtime} {version} ({target}) in the tool cache "
                f"within {self.lock_timeout} seconds"
            ) from e

    @contextmanager
    def staging_directory(self, runtime: str):
        """
        Yield a scratch directory on the same filesystem as the cache entries.

        The directory is removed on exit, including whatever was not published.
        """
        with temporary_directory(prefix=".staging-", parent=self.root / runtime) as staging:
            yield staging

    def publish(self, runtime: str, version: str, target: str, source_dir: Path) -> Path:
        """
        Move a fully prepared directory into the cache.

        Must be called while holding :meth:`lock` for the same entry.

        Args:
            runtime: Runtime name
            version: Concrete version
            target: Platform key such as ``linux-x64``
            source_dir: Directory to move; must live under the cache root

        Returns:
            Final entry directory

        Raises:
            ToolCacheError: If the rename fails
        """
        existing = self.find(runtime, version, target)
        if existing is not None:
            logger.debug(f"{runtime} {version} ({target}) already published")
            return existing

        entry = self.entry_dir(runtime, version, target)
        if entry.exists():
            # Leftover from an interrupted publish without a marker
            logger.warning(f"Removing incomplete tool cache entry {entry}")
            safe_rmtree(entry, require_prefix=self.root)

        entry.parent.mkdir(parents=True, exist_ok=True)
        try:
            Path(source_dir).rename(entry)
        except OSError as e:
            raise ToolCacheError(f"Failed to publish {runtime} {version} to {entry}: {e}") from e

        atomic_write(
            self._marker(runtime, version, target),
            datetime.now(timezone.utc).isoformat(),
        )
        logger.info(f"Cached {runtime} {version} ({target}) at {entry}")
        return entry


__all__ = ["ToolCache", "COMPLETE_SUFFIX"]
