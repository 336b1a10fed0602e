"""
Platform detection for RuntimeKit.

This module detects the host operating system and CPU architecture used to
select runtime archives and to prefix cache keys.

Platform names follow the conventions used by CI runners and the Node.js
release index:
- OS: 'linux', 'darwin', 'win32'
- Architecture: 'x64', 'arm64'

Usage:
    from runtimekit.core.platform import detect_platform

    info = detect_platform()
    print(info.platform_string())  # e.g. 'linux-x64'
"""

import functools
import platform
from dataclasses import dataclass
from typing import Optional

SUPPORTED_OS = ("linux", "darwin", "win32")
SUPPORTED_ARCH = ("x64", "arm64")


@dataclass(frozen=True)
class PlatformInfo:
    """
    Host platform information.

    Attributes:
        os: Operating system ('linux', 'darwin', 'win32')
        arch: CPU architecture ('x64', 'arm64', or the raw machine name)
    """

    os: str
    arch: str

    def platform_string(self) -> str:
        """
        Get canonical platform string (e.g., 'linux-x64', 'darwin-arm64').

        Example:
            >>> PlatformInfo('linux', 'x64').platform_string()
            'linux-x64'
        """
        return f"{self.os}-{self.arch}"

    @property
    def is_windows(self) -> bool:
        return self.os == "win32"

    def __str__(self) -> str:
        return self.platform_string()


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.

    Returns:
        PlatformInfo for the host
    """
    return PlatformInfo(os=_detect_os(), arch=_detect_architecture())


def _detect_os() -> str:
    """
    Detect operating system.

    Returns:
        Normalized OS name: 'linux', 'darwin', 'win32', or the lowercased
        system name for anything else
    """
    system = platform.system().lower()

    if system == "windows":
        return "win32"
    elif system == "linux":
        return "linux"
    elif system == "darwin":
        return "darwin"
    return system


def _detect_architecture() -> str:
    """
    Detect CPU architecture.

    Returns:
        Normalized architecture: 'x64', 'arm64', or the original machine name
    """
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    elif machine in ("aarch64", "arm64", "armv8l"):
        return "arm64"
    return machine


def is_supported_platform(info: Optional[PlatformInfo] = None) -> bool:
    """
    Check if the platform is one RuntimeKit can install runtimes on.

    Args:
        info: PlatformInfo to check. If None, detects current platform.
    """
    if info is None:
        info = detect_platform()

    return info.os in SUPPORTED_OS and info.arch in SUPPORTED_ARCH


def clear_platform_cache():
    """
    Clear the platform detection cache.

    Forces the next call to detect_platform() to re-detect. Useful for tests.
    """
    detect_platform.cache_clear()


__all__ = [
    "PlatformInfo",
    "SUPPORTED_OS",
    "SUPPORTED_ARCH",
    "detect_platform",
    "is_supported_platform",
    "clear_platform_cache",
]
