"""
Cache path resolution.

The cache for a job combines:
- each package manager's global store, asked from the package manager
  itself and falling back to the documented per-OS default
- dependency install directories (``**/node_modules`` and Yarn's project dirs)
- the tool cache entries of the installed runtimes
- user-supplied paths

The result is deduplicated and ordered with :func:`sort_paths_absolute_first`
so that logs of the path list are stable between runs.
"""

import json
import logging
import os
import re
from functools import partial
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from runtimekit.config.inputs import parse_list_input
from runtimekit.core.process import query_command
from runtimekit.runtime.versions import ResolvedVersion

logger = logging.getLogger(__name__)

QueryFn = Callable[[List[str]], Optional[str]]

GLOB_CHARS_RE = re.compile(r"[*?[]")

# package manager -> {os or '*': default store paths}
DEFAULT_STORE_PATHS: Dict[str, Dict[str, List[str]]] = {
    "npm": {"win32": ["~/AppData/Local/npm-cache"], "*": ["~/.npm"]},
    "pnpm": {"win32": ["~/AppData/Local/pnpm/store"], "*": ["~/.local/share/pnpm/store"]},
    "yarn": {
        "win32": ["~/AppData/Local/Yarn/Cache", "~/AppData/Local/Yarn/Berry/cache"],
        "*": ["~/.yarn/cache", "~/.cache/yarn"],
    },
    "bun": {"win32": ["~/AppData/Local/bun/install/cache"], "*": ["~/.bun/install/cache"]},
    "deno": {"win32": ["~/AppData/Local/deno"], "*": ["~/.cache/deno"]},
}

DEPENDENCY_DIRECTORIES: Dict[str, List[str]] = {
    "npm": ["**/node_modules"],
    "pnpm": ["**/node_modules"],
    "yarn": ["**/node_modules", "**/.yarn/cache", "**/.yarn/unplugged", "**/.yarn/install-state.gz"],
    "bun": ["**/node_modules"],
    "deno": [],
}


def _first_line(output: Optional[str]) -> Optional[str]:
    if not output:
        return None
    line = output.strip().splitlines()[0].strip()
    return line or None


def detect_store_path(package_manager: str, query: QueryFn) -> Optional[str]:
    """
    Ask a package manager where its global store lives.

    Args:
        package_manager: npm, pnpm, yarn, bun or deno
        query: Runs a command and returns stdout, or None on failure

    Returns:
        The store directory, or None when the package manager cannot tell
    """
    if package_manager == "npm":
        return _first_line(query(["npm", "config", "get", "cache"]))

    if package_manager == "pnpm":
        return _first_line(query(["pnpm", "store", "path"]))

    if package_manager == "yarn":
        # Yarn Berry first, then Yarn Classic
        berry = _first_line(query(["yarn", "config", "get", "cacheFolder"]))
        if berry and berry != "undefined":
            return berry
        return _first_line(query(["yarn", "cache", "dir"]))

    if package_manager == "bun":
        return _first_line(query(["bun", "pm", "cache"]))

    if package_manager == "deno":
        output = query(["deno", "info", "--json"])
        if not output:
            return None
        try:
            info = json.loads(output)
        except json.JSONDecodeError:
            logger.debug("deno info --json returned invalid JSON")
            return None
        deno_dir = info.get("denoDir") if isinstance(info, dict) else None
        return deno_dir or None

    return None


def default_store_paths(package_manager: str, os_name: str) -> List[str]:
    """Documented default store locations, with ``~`` expanded."""
    table = DEFAULT_STORE_PATHS.get(package_manager, {})
    paths = table.get(os_name, table.get("*", []))
    return [os.path.expanduser(path) for path in paths]


def store_paths(package_manager: str, os_name: str, query: QueryFn) -> List[str]:
    detected = detect_store_path(package_manager, query)
    if detected:
        logger.info(f"Detected {package_manager} cache path: {detected}")
        return [detected]
    defaults = default_store_paths(package_manager, os_name)
    logger.debug(f"Using default {package_manager} cache paths: {', '.join(defaults)}")
    return defaults


def tool_cache_paths(tool_cache_root: Path, resolved: Iterable[ResolvedVersion]) -> List[str]:
    """
    Tool cache directories of the installed runtimes.

    The ``/*`` variant covers the per-platform directories one level down.
    """
    root = Path(tool_cache_root).as_posix()
    paths = []
    for item in resolved:
        base = f"{root}/{item.runtime.value}/{item.concrete_version}"
        paths.extend([base, f"{base}/*"])
    return paths


def is_glob_pattern(path: str) -> bool:
    """
    True for relative paths holding glob characters.

    Absolute paths are always literal locations, even with a trailing ``/*``.
    """
    if PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute():
        return False
    return bool(GLOB_CHARS_RE.search(path))


def sort_paths_absolute_first(paths: Iterable[str]) -> List[str]:
    """
    Deduplicate and order cache paths.

    Glob patterns (see :func:`is_glob_pattern`) come after every other entry;
    each group is sorted lexicographically.

    Example:
        >>> sort_paths_absolute_first(["**/node_modules", "/b", "/a", "/a", "./apps/*/cache"])
        ['/a', '/b', '**/node_modules', './apps/*/cache']
    """
    unique = set(paths)
    plain = sorted(p for p in unique if not is_glob_pattern(p))
    globs = sorted(p for p in unique if is_glob_pattern(p))
    return plain + globs


def resolve_cache_paths(
    package_managers: Iterable[str],
    resolved: Iterable[ResolvedVersion],
    tool_cache_root: Path,
    os_name: str,
    additional: Union[str, Iterable[str], None] = None,
    query: Optional[QueryFn] = None,
    project_root: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> List[str]:
    """
    Build the full cache path list for a job.

    Args:
        package_managers: Active package managers, primary first
        resolved: Installed runtime versions
        tool_cache_root: Root of the tool cache
        os_name: Host OS (linux, darwin, win32)
        additional: User paths in any supported list form
        query: Command runner for store detection (default: run the real tools)
        project_root: Working directory for store detection commands
        env: Environment for store detection commands

    Returns:
        Deduplicated paths, absolute paths first
    """
    if query is None:
        query = partial(query_command, cwd=project_root, env=env)

    paths: List[str] = []
    for name in package_managers:
        paths.extend(store_paths(name, os_name, query))
        paths.extend(DEPENDENCY_DIRECTORIES.get(name, []))

    paths.extend(tool_cache_paths(tool_cache_root, resolved))

    extra = parse_list_input(additional)
    if extra:
        logger.info(f"Additional cache paths: {', '.join(extra)}")
    paths.extend(os.path.expanduser(path) for path in extra)

    return sort_paths_absolute_first(paths)


__all__ = [
    "DEFAULT_STORE_PATHS",
    "DEPENDENCY_DIRECTORIES",
    "detect_store_path",
    "default_store_paths",
    "store_paths",
    "tool_cache_paths",
    "is_glob_pattern",
    "sort_paths_absolute_first",
    "resolve_cache_paths",
]
