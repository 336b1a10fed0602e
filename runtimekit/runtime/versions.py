"""
Runtime identifiers, version records and version-string helpers.

Versions are compared numerically on (major, minor, patch); ``"20.10.0"`` is
newer than ``"20.9.0"``. Pre-release versions (``1.2.0-canary.1``) are
recognized so they can be excluded from range and alias matching.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from runtimekit.core.exceptions import InvalidVersionError

# Where a requested version came from
SOURCE_INPUT = "input"
SOURCE_VERSION_FILE = "version-file"
SOURCE_PACKAGE_METADATA = "package-metadata"
SOURCE_DEFAULT = "default"

SEMVER_RE = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$"
)
EXACT_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")


class Runtime(str, Enum):
    """Supported JavaScript runtimes."""

    NODE = "node"
    BUN = "bun"
    DENO = "deno"

    def __str__(self) -> str:
        return self.value

    @property
    def display_name(self) -> str:
        return {"node": "Node.js", "bun": "Bun", "deno": "Deno"}[self.value]

    @classmethod
    def parse(cls, name: str) -> "Runtime":
        """
        Parse a runtime name.

        Raises:
            ValueError: If the name is not node, bun or deno
        """
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown runtime '{name}'. Expected one of: node, bun, deno"
            ) from None


@dataclass(frozen=True)
class ReleaseEntry:
    """
    One published release of a runtime.

    Attributes:
        version: Concrete version without a leading 'v'
        is_lts: Whether the release belongs to an LTS line
        release_line: LTS codename for Node.js ('iron'), 'major.minor' otherwise
    """

    version: str
    is_lts: bool = False
    release_line: str = ""

    @property
    def is_prerelease(self) -> bool:
        return is_prerelease(self.version)


@dataclass(frozen=True)
class RuntimeSpec:
    """
    A requested runtime before resolution.

    Attributes:
        name: Runtime to install
        version_specifier: Exact version, partial version or alias; '' if none
        version_file: File holding the specifier (.nvmrc, .node-version)
        source: Where the request came from
    """

    name: Runtime
    version_specifier: str = ""
    version_file: Optional[Path] = None
    source: str = SOURCE_INPUT


@dataclass(frozen=True)
class ResolvedVersion:
    """A runtime request mapped to one concrete, installable version."""

    runtime: Runtime
    requested_specifier: str
    concrete_version: str
    source: str


def strip_v_prefix(version: str) -> str:
    """
    Trim whitespace and one leading 'v'.

    Example:
        >>> strip_v_prefix(" v20.11.0 ")
        '20.11.0'
    """
    version = version.strip()
    if version[:1] in ("v", "V"):
        return version[1:]
    return version


def is_exact_version(version: str) -> bool:
    """True for plain 'major.minor.patch' (no pre-release or build suffix)."""
    return bool(EXACT_VERSION_RE.match(version))


def is_semantic_version(version: str) -> bool:
    return bool(SEMVER_RE.match(strip_v_prefix(version)))


def is_prerelease(version: str) -> bool:
    match = SEMVER_RE.match(version)
    return bool(match and match.group(4))


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    Parse a version into its numeric (major, minor, patch) tuple.

    Raises:
        InvalidVersionError: If the string is not a semantic version

    Example:
        >>> parse_version("1.2.0-canary.3")
        (1, 2, 0)
    """
    match = SEMVER_RE.match(strip_v_prefix(version))
    if not match:
        raise InvalidVersionError(f"Invalid version: '{version}'")
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def version_key(version: str) -> Tuple[int, int, int, int]:
    """
    Sort key ordering versions numerically, releases after their pre-releases.

    Example:
        >>> sorted(["20.9.0", "20.10.0"], key=version_key)
        ['20.9.0', '20.10.0']
    """
    major, minor, patch = parse_version(version)
    return major, minor, patch, 0 if is_prerelease(strip_v_prefix(version)) else 1


def is_absolute_version(version: str) -> bool:
    """
    Check for a concrete semantic version with no range operators.

    Example:
        >>> is_absolute_version("9.15.0")
        True
        >>> is_absolute_version("^9.15.0")
        False
    """
    # Wildcards like '9.x' already fail the numeric fields of SEMVER_RE
    if not version or re.search(r"[~^<>=*|\s]", version):
        return False
    return bool(SEMVER_RE.match(version))


__all__ = [
    "Runtime",
    "ReleaseEntry",
    "RuntimeSpec",
    "ResolvedVersion",
    "SOURCE_INPUT",
    "SOURCE_VERSION_FILE",
    "SOURCE_PACKAGE_METADATA",
    "SOURCE_DEFAULT",
    "strip_v_prefix",
    "is_exact_version",
    "is_semantic_version",
    "is_prerelease",
    "parse_version",
    "version_key",
    "is_absolute_version",
]
