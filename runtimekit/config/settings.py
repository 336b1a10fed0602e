"""
Layered settings for RuntimeKit.

Settings are built from four layers, later layers winning:

1. Built-in defaults
2. ``runtimekit.yaml`` in the project root (or ``--config PATH``)
3. ``INPUT_*`` environment variables, as set by GitHub Actions
4. Command-line flags

Example runtimekit.yaml::

    node-version: 20.x
    package-manager: pnpm
    additional-lockfiles:
      - tools/*/pnpm-lock.yaml
    cache: true
    network:
      timeout: 120
      max_attempts: 5
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from runtimekit.config.inputs import parse_bool_input, parse_list_input
from runtimekit.core.actions import input_env_name
from runtimekit.core.directory import get_cache_service_dir, get_tool_cache_dir
from runtimekit.core.download import RetryPolicy
from runtimekit.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "runtimekit.yaml"

# Checked in order when no Node.js version is given
NODE_VERSION_FILES = (".nvmrc", ".node-version")

# option name -> (Settings attribute, kind)
OPTIONS: Dict[str, tuple] = {
    "node-version": ("node_version", "str"),
    "node-version-file": ("node_version_file", "path"),
    "bun-version": ("bun_version", "str"),
    "deno-version": ("deno_version", "str"),
    "package-manager": ("package_manager", "str"),
    "package-manager-version": ("package_manager_version", "str"),
    "install-deps": ("install_deps", "bool"),
    "cache": ("cache", "bool"),
    "cache-bust": ("cache_bust", "salt"),
    "additional-lockfiles": ("additional_lockfiles", "list"),
    "additional-cache-paths": ("additional_cache_paths", "list"),
    "tool-cache-dir": ("tool_cache_dir", "path"),
    "cache-dir": ("cache_dir", "path"),
    "verify-checksums": ("verify_checksums", "bool"),
    "parallel": ("parallel", "bool"),
}

NETWORK_OPTIONS = ("timeout", "max_attempts")


@dataclass
class NetworkSettings:
    """Timeouts and retry budget for every HTTP request."""

    timeout: int = 60
    max_attempts: int = 3


@dataclass
class Settings:
    """Effective settings for one RuntimeKit run."""

    project_root: Path = field(default_factory=Path.cwd)
    node_version: str = ""
    node_version_file: Optional[Path] = None
    bun_version: str = ""
    deno_version: str = ""
    package_manager: str = ""
    package_manager_version: str = ""
    install_deps: bool = True
    cache: bool = True
    cache_bust: Optional[str] = None
    additional_lockfiles: List[str] = field(default_factory=list)
    additional_cache_paths: List[str] = field(default_factory=list)
    tool_cache_dir: Optional[Path] = None
    cache_dir: Optional[Path] = None
    verify_checksums: bool = False
    parallel: bool = False
    network: NetworkSettings = field(default_factory=NetworkSettings)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.network.max_attempts)


def _coerce(name: str, kind: str, value: Any, project_root: Path, source: str) -> Any:
    """Convert a raw option value to its Settings type."""
    if kind == "bool":
        try:
            return parse_bool_input(value)
        except ValueError:
            raise ConfigError(f"{source}: '{name}' must be true or false, got '{value}'")

    if kind == "list":
        if not isinstance(value, (str, list, tuple)):
            raise ConfigError(f"{source}: '{name}' must be a list or a string")
        return parse_list_input(value)

    if isinstance(value, (dict, list)):
        raise ConfigError(f"{source}: '{name}' must be a single value")
    if isinstance(value, float):
        # YAML reads 20.10 as the number 20.1
        raise ConfigError(f"{source}: '{name}' must be quoted, got the number {value}")
    text = str(value).strip()

    if kind == "path":
        if not text:
            return None
        path = Path(text).expanduser()
        return path if path.is_absolute() else project_root / path

    if kind == "salt":
        return text or None

    return text


def _apply(settings: Settings, values: Mapping[str, Any], source: str) -> None:
    for name, value in values.items():
        if value is None:
            continue
        attribute, kind = OPTIONS[name]
        setattr(settings, attribute, _coerce(name, kind, value, settings.project_root, source))
        logger.debug(f"{name} set from {source}")


def _parse_network(data: Any, network: NetworkSettings, source: str) -> None:
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: 'network' must be a mapping")
    for key, value in data.items():
        if key not in NETWORK_OPTIONS:
            raise ConfigError(
                f"{source}: unknown key 'network.{key}' "
                f"(expected one of {', '.join(NETWORK_OPTIONS)})"
            )
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigError(f"{source}: 'network.{key}' must be a positive integer")
        setattr(network, key, value)


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """
    Read runtimekit.yaml.

    Returns:
        The top-level mapping; empty for an empty file

    Raises:
        ConfigError: If the file is unreadable, not valid YAML, or not a mapping
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {config_path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    return data


def _apply_config_file(settings: Settings, config_path: Path) -> None:
    data = load_config_file(config_path)
    source = config_path.name

    unknown = sorted(str(k) for k in data if k not in OPTIONS and k != "network")
    if unknown:
        raise ConfigError(f"{source}: unknown key(s): {', '.join(unknown)}")

    if "network" in data:
        _parse_network(data.pop("network"), settings.network, source)
    _apply(settings, data, source)


def detect_node_version_file(project_root: Path) -> Optional[Path]:
    """Find .nvmrc or .node-version in the project root."""
    for name in NODE_VERSION_FILES:
        candidate = Path(project_root) / name
        if candidate.is_file():
            return candidate
    return None


def load_settings(
    project_root: Optional[Path] = None,
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Settings:
    """
    Build the effective settings.

    Args:
        project_root: Project directory (default: current directory)
        config_path: Explicit configuration file; must exist when given
        environ: Environment for INPUT_* variables and directory defaults
            (default: os.environ)
        overrides: Option values from the command line, keyed by option name;
            None values are ignored

    Returns:
        Settings with directories filled in

    Raises:
        ConfigError: If any layer holds an invalid value

    Example:
        >>> settings = load_settings(Path('.'), overrides={"node-version": "22"})
        >>> settings.node_version
        '22'
    """
    env = os.environ if environ is None else environ
    root = Path(project_root) if project_root is not None else Path.cwd()
    settings = Settings(project_root=root)

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise ConfigError(f"Configuration file not found: {config_path}")
    else:
        candidate = root / CONFIG_FILE_NAME
        config_path = candidate if candidate.is_file() else None

    if config_path is not None:
        logger.debug(f"Loading configuration from {config_path}")
        _apply_config_file(settings, config_path)

    # Actions sets INPUT_* for every declared input; empty means unset
    from_env = {}
    for name in OPTIONS:
        value = env.get(input_env_name(name), "")
        if value.strip():
            from_env[name] = value
    _apply(settings, from_env, "action inputs")

    if overrides:
        unknown = sorted(k for k in overrides if k not in OPTIONS)
        if unknown:
            raise ConfigError(f"Unknown option(s): {', '.join(unknown)}")
        _apply(settings, overrides, "command line")

    if settings.tool_cache_dir is None:
        settings.tool_cache_dir = get_tool_cache_dir(env)
    if settings.cache_dir is None:
        settings.cache_dir = get_cache_service_dir(env)

    if not settings.node_version and settings.node_version_file is None:
        settings.node_version_file = detect_node_version_file(root)
        if settings.node_version_file is not None:
            logger.info(f"Using Node.js version file {settings.node_version_file.name}")

    return settings


__all__ = [
    "CONFIG_FILE_NAME",
    "NODE_VERSION_FILES",
    "OPTIONS",
    "NetworkSettings",
    "Settings",
    "load_config_file",
    "detect_node_version_file",
    "load_settings",
]
