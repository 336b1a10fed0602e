"""
Directory layout for RuntimeKit.

This module resolves the locations RuntimeKit reads and writes, honouring the
environment variables set by CI runners.

Directory Structure:
    Global (~/.runtimekit/ or %USERPROFILE%\\.runtimekit\\):
        - toolcache/  : Installed runtimes, unless $RUNNER_TOOL_CACHE is set
        - cache/      : LocalCacheService archives, unless $RUNTIMEKIT_CACHE_DIR is set

    Project-Local (<project-root>/.runtimekit/):
        - state.json  : Data handed from `runtimekit setup` to `runtimekit save`
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from runtimekit.core.exceptions import ConfigError

TOOL_CACHE_ENV = "RUNNER_TOOL_CACHE"
CACHE_DIR_ENV = "RUNTIMEKIT_CACHE_DIR"


def get_global_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the platform-specific global RuntimeKit directory.

    Returns:
        Path: %USERPROFILE%\\.runtimekit on Windows, ~/.runtimekit elsewhere

    Raises:
        ConfigError: If USERPROFILE is not set on Windows
    """
    env = os.environ if environ is None else environ
    if os.name == "nt":
        user_profile = env.get("USERPROFILE")
        if not user_profile:
            raise ConfigError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine the RuntimeKit directory."
            )
        return Path(user_profile) / ".runtimekit"
    return Path.home() / ".runtimekit"


def get_tool_cache_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the tool cache root.

    Example:
        >>> get_tool_cache_dir({"RUNNER_TOOL_CACHE": "/opt/hostedtoolcache"})
        PosixPath('/opt/hostedtoolcache')
    """
    env = os.environ if environ is None else environ
    configured = env.get(TOOL_CACHE_ENV)
    if configured:
        return Path(configured).expanduser()
    return get_global_dir(env) / "toolcache"


def get_cache_service_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Get the directory holding LocalCacheService archives."""
    env = os.environ if environ is None else environ
    configured = env.get(CACHE_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return get_global_dir(env) / "cache"


def get_project_local_dir(project_root: Path) -> Path:
    """
    Get the project-local .runtimekit directory path.

    Example:
        >>> get_project_local_dir(Path('/work/app'))
        PosixPath('/work/app/.runtimekit')
    """
    return Path(project_root) / ".runtimekit"


__all__ = [
    "TOOL_CACHE_ENV",
    "CACHE_DIR_ENV",
    "get_global_dir",
    "get_tool_cache_dir",
    "get_cache_service_dir",
    "get_project_local_dir",
]
