"""
Runtime download and installation.

This module turns a :class:`ResolvedVersion` into an installed runtime:

1. Check the (runtime, platform, arch) combination against the distribution
   table, before any network access
2. Reuse a completed tool cache entry when one exists
3. Download the archive into a staging directory inside the tool cache
4. Extract it and locate the runtime root
5. Publish the root into the tool cache with an atomic rename
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import requests

from runtimekit.core.download import (
    DownloadProgress,
    RetryPolicy,
    download_file,
    fetch_text,
)
from runtimekit.core.exceptions import ChecksumError, ExtractionError
from runtimekit.core.filesystem import extract_archive, make_executable
from runtimekit.core.platform import PlatformInfo, detect_platform
from runtimekit.core.tool_cache import ToolCache
from runtimekit.runtime.distributions import Distribution, get_distribution, parse_shasums
from runtimekit.runtime.versions import ResolvedVersion, Runtime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallResult:
    """Result of installing one runtime."""

    runtime: Runtime
    version: str
    bin_directory: Path
    """Directory to put on PATH"""

    from_tool_cache: bool
    """Whether the runtime was already cached (no download needed)"""

    install_directory: Path
    """Tool cache entry holding the runtime root"""


def locate_archive_root(extract_dir: Path, root_glob: Optional[str]) -> Path:
    """
    Find the runtime root inside an extracted archive.

    Args:
        extract_dir: Directory where archive was extracted
        root_glob: Pattern for the single top-level directory, or None when
            the archive is flat

    Returns:
        Path to the runtime root

    Raises:
        ExtractionError: If zero or several top-level directories match
    """
    if root_glob is None:
        if not any(extract_dir.iterdir()):
            raise ExtractionError(f"Archive extracted to {extract_dir} is empty")
        return extract_dir

    candidates = [p for p in extract_dir.glob(root_glob) if p.is_dir()]
    if len(candidates) != 1:
        found = sorted(p.name for p in extract_dir.iterdir())
        raise ExtractionError(
            f"Expected exactly one '{root_glob}' directory in the archive, "
            f"found {len(candidates)} (contents: {', '.join(found) or 'none'})"
        )
    return candidates[0]


class ArchiveInstaller:
    """
    Installs runtimes into the tool cache.

    Example:
        >>> installer = ArchiveInstaller(ToolCache(Path('/opt/hostedtoolcache')))
        >>> result = installer.install(resolved_node)
        >>> print(result.bin_directory)
        /opt/hostedtoolcache/node/20.11.0/x64/bin
    """

    def __init__(
        self,
        tool_cache: ToolCache,
        platform: Optional[PlatformInfo] = None,
        timeout: float = 60,
        policy: Optional[RetryPolicy] = None,
        verify_checksums: bool = False,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the installer.

        Args:
            tool_cache: Cache receiving installed runtimes
            platform: Target platform (default: host platform)
            timeout: Per-request timeout in seconds
            policy: Retry policy for downloads
            verify_checksums: Verify archives against the published SHASUMS256.txt
                where the runtime publishes one
            session: Optional requests session
            sleep: Sleep function used between retries
        """
        self.tool_cache = tool_cache
        self.platform = platform or detect_platform()
        self.timeout = timeout
        self.policy = policy
        self.verify_checksums = verify_checksums
        self.session = session
        self.sleep = sleep

    def install(self, resolved: ResolvedVersion) -> InstallResult:
        """
        Install one resolved runtime.

        Raises:
            UnsupportedPlatformError: Before any network access
            DownloadError: When the download fails after retries
            ExtractionError: For corrupt archives or unexpected layouts
            ToolCacheLockTimeout: When another process holds the entry too long
        """
        runtime = Runtime(resolved.runtime)
        version = resolved.concrete_version
        distribution = get_distribution(runtime)
        distribution.check_supported(self.platform)
        target = self.platform.platform_string()

        cached = self.tool_cache.find(runtime.value, version, target)
        if cached is not None:
            logger.info(f"Found {runtime.display_name} {version} in tool cache")
            return self._result(distribution, version, cached, from_tool_cache=True)

        with self.tool_cache.lock(runtime.value, version, target):
            # Another process may have finished while we waited for the lock
            cached = self.tool_cache.find(runtime.value, version, target)
            if cached is not None:
                logger.info(f"{runtime.display_name} {version} was installed by another process")
                return self._result(distribution, version, cached, from_tool_cache=True)

            entry = self._download_and_publish(distribution, version)

        return self._result(distribution, version, entry, from_tool_cache=False)

    def install_all(
        self, resolved: Sequence[ResolvedVersion], parallel: bool = False
    ) -> List[InstallResult]:
        """
        Install several runtimes, returning results in input order.

        Args:
            resolved: Runtimes to install
            parallel: Install independent runtimes concurrently
        """
        if not parallel or len(resolved) < 2:
            return [self.install(item) for item in resolved]

        with ThreadPoolExecutor(max_workers=len(resolved)) as pool:
            return list(pool.map(self.install, resolved))

    def _download_and_publish(self, distribution: Distribution, version: str) -> Path:
        runtime = distribution.runtime
        url = distribution.download_url(version, self.platform)
        asset = distribution.asset_name(version, self.platform)
        expected_sha256 = self._expected_checksum(distribution, version, asset)

        with self.tool_cache.staging_directory(runtime.value) as staging:
            archive_path = staging / asset
            extract_dir = staging / "extract"

            logger.info(f"Downloading {runtime.display_name} {version} from {url}")
            download_start = time.monotonic()
            download_file(
                url,
                archive_path,
                expected_sha256=expected_sha256,
                progress_callback=_log_progress,
                timeout=self.timeout,
                policy=self.policy,
                session=self.session,
                sleep=self.sleep,
            )
            logger.debug(f"Download complete in {time.monotonic() - download_start:.2f}s")

            extract_archive(archive_path, extract_dir)
            root = locate_archive_root(extract_dir, distribution.root_glob)

            executable = root / distribution.bin_subdir(self.platform) / distribution.executable_name(
                self.platform
            )
            if executable.is_file():
                make_executable(executable)
            else:
                logger.warning(f"{runtime.display_name} executable not found at {executable}")

            return self.tool_cache.publish(
                runtime.value, version, self.platform.platform_string(), root
            )

    def _expected_checksum(
        self, distribution: Distribution, version: str, asset: str
    ) -> Optional[str]:
        if not self.verify_checksums:
            return None
        checksum_url = distribution.checksum_url(version)
        if checksum_url is None:
            logger.debug(f"No published checksums for {distribution.runtime.display_name}")
            return None

        sums = parse_shasums(
            fetch_text(
                checksum_url,
                timeout=self.timeout,
                policy=self.policy,
                session=self.session,
                sleep=self.sleep,
            )
        )
        if asset not in sums:
            raise ChecksumError(f"{asset} is not listed in {checksum_url}", url=checksum_url)
        return sums[asset]

    def _result(
        self, distribution: Distribution, version: str, entry: Path, from_tool_cache: bool
    ) -> InstallResult:
        subdir = distribution.bin_subdir(self.platform)
        bin_directory = entry / subdir if subdir else entry
        return InstallResult(
            runtime=distribution.runtime,
            version=version,
            bin_directory=bin_directory,
            from_tool_cache=from_tool_cache,
            install_directory=entry,
        )


def _log_progress(progress: DownloadProgress) -> None:
    logger.debug(f"Downloaded {progress}")


__all__ = [
    "InstallResult",
    "ArchiveInstaller",
    "locate_archive_root",
]
