"""
Version resolution.

Maps a :class:`RuntimeSpec` to one concrete version found in a
:class:`VersionIndex`. Accepted specifiers, checked in this order:

- Exact: ``20.11.0`` or ``v20.11.0``; must exist in the index
- LTS alias: ``lts``, ``lts/*`` (highest LTS), ``lts/iron`` (highest of a line)
- Latest alias: ``latest``, ``current``, ``*``
- Partial: ``20``, ``20.x``, ``20.1``, ``20.1.x`` (highest match)

An empty specifier falls back to the version file, then to the runtime
default. Pre-releases are never selected by aliases or partial versions.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from runtimekit.core.exceptions import VersionNotFoundError
from runtimekit.runtime.index import VersionIndex
from runtimekit.runtime.versions import (
    SOURCE_DEFAULT,
    SOURCE_VERSION_FILE,
    ReleaseEntry,
    ResolvedVersion,
    Runtime,
    RuntimeSpec,
    is_exact_version,
    is_semantic_version,
    parse_version,
    strip_v_prefix,
    version_key,
)

logger = logging.getLogger(__name__)

LTS_ALIASES = ("lts", "lts/*")
LATEST_ALIASES = ("latest", "current", "*")
PARTIAL_VERSION_RE = re.compile(r"^(\d+)(?:\.(\d+|[xX*]))?(?:\.[xX*])?$")

DEFAULT_SPECIFIERS: Dict[Runtime, str] = {Runtime.NODE: "lts/*"}


def read_version_file(path: Path) -> str:
    """
    Read a version file such as .nvmrc or .node-version.

    Returns:
        The first non-empty line, trimmed, without a leading 'v'; '' if none
    """
    content = Path(path).read_text(encoding="utf-8")
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            return strip_v_prefix(line)
    return ""


class VersionResolver:
    """
    Resolves runtime specs against a version index.

    Args:
        index: Release index to pick versions from
        defaults: Specifier used when nothing was requested, per runtime
            (Node.js defaults to 'lts/*'; Bun and Deno have no default unless
            the active package manager declares one)

    Example:
        >>> resolver = VersionResolver(StaticVersionIndex({Runtime.NODE: ["20.9.0", "20.10.0"]}))
        >>> resolver.resolve(RuntimeSpec(Runtime.NODE, "20.x")).concrete_version
        '20.10.0'
    """

    def __init__(self, index: VersionIndex, defaults: Optional[Mapping[Runtime, str]] = None):
        self.index = index
        self.defaults = dict(DEFAULT_SPECIFIERS)
        if defaults:
            self.defaults.update(defaults)

    def resolve(self, spec: RuntimeSpec) -> ResolvedVersion:
        """
        Resolve one spec.

        Raises:
            VersionNotFoundError: If no release matches; never falls back
        """
        runtime = Runtime(spec.name)
        specifier = spec.version_specifier.strip()
        source = spec.source

        if not specifier and spec.version_file is not None:
            specifier = self._specifier_from_file(runtime, Path(spec.version_file))
            source = SOURCE_VERSION_FILE

        if not specifier:
            specifier = self.defaults.get(runtime, "")
            source = SOURCE_DEFAULT
            if not specifier:
                raise VersionNotFoundError(
                    runtime.value, "", "no version requested and no default available"
                )
            logger.info(f"No {runtime.display_name} version specified, defaulting to {specifier}")

        concrete = self.match(runtime, specifier)
        logger.info(f"Resolved {runtime.display_name} {specifier} -> {concrete}")
        return ResolvedVersion(runtime, specifier, concrete, source)

    def _specifier_from_file(self, runtime: Runtime, path: Path) -> str:
        try:
            specifier = read_version_file(path)
        except OSError as e:
            raise VersionNotFoundError(
                runtime.value, str(path), f"cannot read version file: {e}"
            ) from e
        if not specifier:
            raise VersionNotFoundError(runtime.value, str(path), "version file is empty")
        logger.debug(f"Read {runtime} version '{specifier}' from {path}")
        return specifier

    def match(self, runtime: Runtime, specifier: str) -> str:
        """
        Pick the concrete version a specifier selects.

        Raises:
            VersionNotFoundError: If nothing matches or the specifier is not understood
        """
        entries = self.index.releases(runtime)
        stripped = strip_v_prefix(specifier)
        lowered = specifier.strip().lower()

        if is_exact_version(stripped):
            if any(entry.version == stripped for entry in entries):
                return stripped
            raise VersionNotFoundError(runtime.value, specifier, "version is not published")

        # Entries that are not semantic versions can never be selected by a range
        stable = [
            entry
            for entry in entries
            if not entry.is_prerelease and is_semantic_version(entry.version)
        ]

        if lowered in LTS_ALIASES:
            candidates = [entry for entry in stable if entry.is_lts]
        elif lowered.startswith("lts/"):
            codename = lowered[len("lts/"):]
            candidates = [
                entry for entry in stable if entry.is_lts and entry.release_line.lower() == codename
            ]
        elif lowered in LATEST_ALIASES:
            candidates = stable
        else:
            candidates = self._match_partial(runtime, specifier, stripped, stable)

        if not candidates:
            raise VersionNotFoundError(runtime.value, specifier)
        return _highest(candidates).version

    def _match_partial(
        self, runtime: Runtime, specifier: str, stripped: str, stable: List[ReleaseEntry]
    ) -> List[ReleaseEntry]:
        match = PARTIAL_VERSION_RE.match(stripped)
        if not match:
            raise VersionNotFoundError(runtime.value, specifier, "unrecognized version specifier")

        major = int(match.group(1))
        minor = int(match.group(2)) if match.group(2) and match.group(2).isdigit() else None

        candidates = []
        for entry in stable:
            entry_major, entry_minor, _ = parse_version(entry.version)
            if entry_major == major and (minor is None or entry_minor == minor):
                candidates.append(entry)
        return candidates


def _highest(entries: List[ReleaseEntry]) -> ReleaseEntry:
    return max(entries, key=lambda entry: version_key(entry.version))


__all__ = [
    "VersionResolver",
    "read_version_file",
    "LTS_ALIASES",
    "LATEST_ALIASES",
    "DEFAULT_SPECIFIERS",
]
