"""
Centralized exception hierarchy for RuntimeKit.

This module defines all custom exceptions used across the codebase so that
callers can distinguish fatal resolution/installation failures from the
recoverable cache-service failures.
"""

from typing import Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class RuntimeKitError(Exception):
    """Base exception for all RuntimeKit errors."""

    pass


# ============================================================================
# Version Resolution Exceptions
# ============================================================================


class VersionNotFoundError(RuntimeKitError):
    """Raised when no release in the index matches a version specifier."""

    def __init__(self, runtime: str, specifier: str, detail: str = ""):
        self.runtime = runtime
        self.specifier = specifier
        msg = f"No {runtime} version matches specifier '{specifier}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvalidVersionError(RuntimeKitError):
    """Invalid version string or specifier format."""

    pass


# ============================================================================
# Installation Exceptions
# ============================================================================


class UnsupportedPlatformError(RuntimeKitError):
    """Raised when a runtime has no build for the host platform/architecture."""

    def __init__(self, runtime: str, platform: str, arch: str):
        self.runtime = runtime
        self.platform = platform
        self.arch = arch
        super().__init__(f"{runtime} is not available for {platform}-{arch}")


class DownloadError(RuntimeKitError):
    """Raised when a network fetch fails after the retry budget is spent."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        attempts: int = 0,
        status_code: Optional[int] = None,
    ):
        self.url = url
        self.attempts = attempts
        self.status_code = status_code
        super().__init__(message)


class ChecksumError(DownloadError):
    """Raised when a downloaded file does not match its expected digest."""

    pass


class ExtractionError(RuntimeKitError):
    """Raised for corrupt archives or unexpected archive layouts."""

    pass


class UnsupportedArchiveFormat(ExtractionError):
    """Archive format is not supported."""

    pass


class InsecureArchiveError(ExtractionError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


class FilesystemError(RuntimeKitError):
    """Base exception for filesystem operations."""

    pass


class ToolCacheError(RuntimeKitError):
    """Base exception for local tool cache errors."""

    pass


class ToolCacheLockTimeout(ToolCacheError):
    """Raised when a tool cache entry lock cannot be acquired within timeout."""

    pass


class CommandError(RuntimeKitError):
    """Raised when an external command (corepack, dependency install) fails."""

    def __init__(self, command: str, message: str, returncode: Optional[int] = None):
        self.command = command
        self.returncode = returncode
        super().__init__(f"'{command}' {message}")


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(RuntimeKitError):
    """Base exception for invalid project or user configuration."""

    pass


class ConfigError(ConfigurationError):
    """Invalid runtimekit.yaml contents or input values."""

    pass


class PackageManagerConfigError(ConfigurationError):
    """Malformed package manager declaration or non-absolute version."""

    pass


class RuntimeDeclarationError(ConfigurationError):
    """Malformed devEngines.runtime declaration in package.json."""

    pass


# ============================================================================
# Cache Exceptions
# ============================================================================


class CacheServiceError(RuntimeKitError):
    """
    Raised by cache service backends.

    Never fatal: the cache manager logs it and degrades to a fresh install.
    """

    pass


class StateError(RuntimeKitError):
    """Raised when the state handed from setup to save cannot be used."""

    pass


__all__ = [
    "RuntimeKitError",
    "VersionNotFoundError",
    "InvalidVersionError",
    "UnsupportedPlatformError",
    "DownloadError",
    "ChecksumError",
    "ExtractionError",
    "UnsupportedArchiveFormat",
    "InsecureArchiveError",
    "FilesystemError",
    "ToolCacheError",
    "ToolCacheLockTimeout",
    "CommandError",
    "ConfigurationError",
    "ConfigError",
    "PackageManagerConfigError",
    "RuntimeDeclarationError",
    "CacheServiceError",
    "StateError",
]
