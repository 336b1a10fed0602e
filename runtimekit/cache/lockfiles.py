"""
Lockfile discovery.

Finds the files whose contents decide whether cached dependencies are still
valid. Each active package manager contributes its default glob patterns;
users may add more. Matches inside ``node_modules`` and VCS directories are
ignored so that installed dependencies never change the result.
"""

import fnmatch
import glob
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from runtimekit.config.inputs import parse_list_input

logger = logging.getLogger(__name__)

DEFAULT_LOCKFILE_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "npm": ("**/package-lock.json", "**/npm-shrinkwrap.json"),
    "pnpm": ("**/pnpm-lock.yaml", "**/pnpm-workspace.yaml", "**/.pnpmfile.cjs"),
    "yarn": ("**/yarn.lock", "**/.pnp.cjs", "**/.yarn/install-state.gz"),
    "bun": ("**/bun.lock", "**/bun.lockb"),
    "deno": ("**/deno.lock",),
}

IGNORED_DIRECTORIES = frozenset({"node_modules", ".git", ".hg", ".svn"})

LockfileSet = Tuple[Path, ...]


def lockfile_patterns(
    package_managers: Iterable[str],
    additional: Union[str, Iterable[str], None] = None,
) -> List[str]:
    """
    Collect glob patterns for the given package managers plus user patterns.

    ``additional`` accepts any of the list forms understood by
    :func:`parse_list_input`. Duplicates are dropped, first occurrence wins.
    """
    patterns: List[str] = []
    for name in package_managers:
        for pattern in DEFAULT_LOCKFILE_PATTERNS.get(name, ()):
            if pattern not in patterns:
                patterns.append(pattern)

    extra = parse_list_input(additional)
    if extra:
        logger.info(f"Additional lockfile patterns: {', '.join(extra)}")
    for pattern in extra:
        if pattern not in patterns:
            patterns.append(pattern)
    return patterns


def _is_ignored(path: Path, root: Path) -> bool:
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    return any(part in IGNORED_DIRECTORIES for part in parts[:-1])


def _walk_for_basename(root: Path, name_pattern: str) -> List[Path]:
    """Match ``**/<name>`` without descending into ignored directories."""
    matches = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRECTORIES)
        for filename in fnmatch.filter(filenames, name_pattern):
            matches.append(Path(dirpath) / filename)
    return matches


def expand_pattern(pattern: str, project_root: Path) -> List[Path]:
    """
    Expand one glob pattern to existing regular files.

    Relative patterns are anchored at the project root; absolute and ``~``
    patterns are used as given.
    """
    root = Path(project_root)
    expanded = os.path.expanduser(pattern)

    if not os.path.isabs(expanded):
        rest = expanded[len("**/"):] if expanded.startswith("**/") else None
        if rest and "/" not in rest and os.sep not in rest:
            return [p for p in _walk_for_basename(root, rest) if p.is_file()]
        expanded = str(root / expanded)

    results = []
    for match in glob.glob(expanded, recursive=True):
        path = Path(match)
        if path.is_file() and not _is_ignored(path, root):
            results.append(path)
    return results


def discover_lockfiles(
    project_root: Path,
    package_managers: Iterable[str],
    additional_patterns: Union[str, Iterable[str], None] = None,
) -> LockfileSet:
    """
    Find every lockfile relevant to the active package managers.

    Args:
        project_root: Directory patterns are relative to
        package_managers: Active package manager names
        additional_patterns: User patterns in any supported list form

    Returns:
        Absolute paths, deduplicated and sorted lexicographically; empty when
        nothing matches

    Example:
        >>> discover_lockfiles(Path('/work/app'), ['pnpm'])
        (PosixPath('/work/app/pnpm-lock.yaml'), PosixPath('/work/app/pnpm-workspace.yaml'))
    """
    root = Path(project_root).resolve()
    found = set()
    for pattern in lockfile_patterns(package_managers, additional_patterns):
        matches = expand_pattern(pattern, root)
        if not matches:
            logger.debug(f"No files match {pattern}")
        found.update(match.resolve() for match in matches)

    lockfiles = tuple(sorted(found, key=str))
    if lockfiles:
        logger.info(f"Found lock files: {', '.join(str(p) for p in lockfiles)}")
    else:
        logger.info("No lock files found, caching without lockfile contents")
    return lockfiles


def relative_lockfiles(lockfiles: LockfileSet, project_root: Optional[Path] = None) -> List[str]:
    """Render lockfiles relative to the project root where possible."""
    root = Path(project_root).resolve() if project_root is not None else None
    rendered = []
    for path in lockfiles:
        if root is not None and path.is_relative_to(root):
            rendered.append(path.relative_to(root).as_posix())
        else:
            rendered.append(str(path))
    return rendered


__all__ = [
    "DEFAULT_LOCKFILE_PATTERNS",
    "IGNORED_DIRECTORIES",
    "LockfileSet",
    "lockfile_patterns",
    "expand_pattern",
    "discover_lockfiles",
    "relative_lockfiles",
]
