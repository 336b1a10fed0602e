"""
Core functionality for RuntimeKit.

This package contains the foundational modules that other components depend on.
"""

from .directory import (
    get_global_dir,
    get_tool_cache_dir,
    get_cache_service_dir,
    get_project_local_dir,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    is_supported_platform,
    clear_platform_cache,
)

from .tool_cache import ToolCache

from .exceptions import (
    RuntimeKitError,
    VersionNotFoundError,
    InvalidVersionError,
    UnsupportedPlatformError,
    DownloadError,
    ChecksumError,
    ExtractionError,
    ToolCacheError,
    ToolCacheLockTimeout,
    ConfigurationError,
    ConfigError,
    PackageManagerConfigError,
    RuntimeDeclarationError,
    CacheServiceError,
)

__all__ = [
    "get_global_dir",
    "get_tool_cache_dir",
    "get_cache_service_dir",
    "get_project_local_dir",
    "PlatformInfo",
    "detect_platform",
    "is_supported_platform",
    "clear_platform_cache",
    "ToolCache",
    "RuntimeKitError",
    "VersionNotFoundError",
    "InvalidVersionError",
    "UnsupportedPlatformError",
    "DownloadError",
    "ChecksumError",
    "ExtractionError",
    "ToolCacheError",
    "ToolCacheLockTimeout",
    "ConfigurationError",
    "ConfigError",
    "PackageManagerConfigError",
    "RuntimeDeclarationError",
    "CacheServiceError",
]
