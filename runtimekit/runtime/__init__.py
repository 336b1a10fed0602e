"""
Runtime resolution and installation.

Version resolution, release indexes, distribution tables and the archive
installer for Node.js, Bun and Deno. Package manager detection lives in
:mod:`runtimekit.runtime.package_manager` and is imported from there.
"""

from .versions import (
    Runtime,
    ReleaseEntry,
    RuntimeSpec,
    ResolvedVersion,
    is_absolute_version,
)

from .index import (
    VersionIndex,
    StaticVersionIndex,
    VersionIndexClient,
)

from .resolver import VersionResolver

from .distributions import Distribution, get_distribution

from .installer import ArchiveInstaller, InstallResult

__all__ = [
    "Runtime",
    "ReleaseEntry",
    "RuntimeSpec",
    "ResolvedVersion",
    "is_absolute_version",
    "VersionIndex",
    "StaticVersionIndex",
    "VersionIndexClient",
    "VersionResolver",
    "Distribution",
    "get_distribution",
    "ArchiveInstaller",
    "InstallResult",
]
