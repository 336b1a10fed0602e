"""
Reading runtime and package manager declarations from package.json.

Two places in package.json declare tooling:

- ``devEngines.packageManager`` and ``devEngines.runtime``, each either an
  object ``{"name": ..., "version": ...}`` or an array of such objects
- the corepack ``"packageManager": "pnpm@9.15.0+sha512.abc..."`` field

Declared versions must be absolute (``9.15.0``, ``1.0.0-beta.1``); ranges are
rejected so that cache keys stay reproducible.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from runtimekit.core.exceptions import (
    ConfigError,
    PackageManagerConfigError,
    RuntimeDeclarationError,
)
from runtimekit.runtime.versions import (
    SOURCE_PACKAGE_METADATA,
    Runtime,
    RuntimeSpec,
    is_absolute_version,
)

logger = logging.getLogger(__name__)

PACKAGE_MANAGER_NAMES = ("npm", "pnpm", "yarn", "bun", "deno")

SOURCE_DEV_ENGINES = "devEngines"
SOURCE_PACKAGE_MANAGER_FIELD = "packageManager-field"


@dataclass(frozen=True)
class PackageManagerDeclaration:
    """A package manager named in package.json."""

    name: str
    version: str
    source: str


def _entries(value: Any, field_name: str, error_class) -> List[Any]:
    if isinstance(value, list):
        if not value:
            raise error_class(f"devEngines.{field_name} array must not be empty")
        return value
    return [value]


def _validate_entry(
    entry: Any, index: int, field_name: str, valid_names, error_class
) -> Dict[str, str]:
    where = f"devEngines.{field_name}[{index}]"
    if not isinstance(entry, dict):
        raise error_class(f"{where} must be an object")

    name = entry.get("name")
    if not isinstance(name, str) or name not in valid_names:
        raise error_class(
            f"{where}.name must be one of: {', '.join(valid_names)} (got: {json.dumps(name)})"
        )

    version = entry.get("version")
    if not isinstance(version, str):
        raise error_class(f"{where}.version must be a string")
    if not is_absolute_version(version):
        raise error_class(
            f"{where}.version must be an absolute version (e.g. \"10.20.0\"), "
            f"not a range. Got: \"{version}\""
        )
    return {"name": name, "version": version}


class PackageJson:
    """
    Parsed package.json of a project.

    Example:
        >>> pkg = PackageJson.load(Path('/work/app'))
        >>> pkg.dev_engines_package_manager()
        PackageManagerDeclaration(name='pnpm', version='9.15.0', source='devEngines')
    """

    def __init__(self, path: Path, data: Dict[str, Any]):
        self.path = Path(path)
        self.data = data

    @classmethod
    def load(cls, project_root: Path) -> Optional["PackageJson"]:
        """
        Load ``package.json`` from a project root.

        Returns:
            PackageJson, or None when the project has no package.json

        Raises:
            ConfigError: If the file is not a JSON object
        """
        path = Path(project_root) / "package.json"
        if not path.is_file():
            logger.debug(f"No package.json in {project_root}")
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {path}: invalid JSON - {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a JSON object")
        return cls(path, data)

    @property
    def dev_engines(self) -> Dict[str, Any]:
        value = self.data.get("devEngines")
        return value if isinstance(value, dict) else {}

    def dev_engines_package_manager(self) -> Optional[PackageManagerDeclaration]:
        """
        Read ``devEngines.packageManager``; the first entry of an array wins.

        Raises:
            PackageManagerConfigError: For unknown names or non-absolute versions
        """
        value = self.dev_engines.get("packageManager")
        if value is None:
            return None

        first = _entries(value, "packageManager", PackageManagerConfigError)[0]
        entry = _validate_entry(
            first, 0, "packageManager", PACKAGE_MANAGER_NAMES, PackageManagerConfigError
        )
        return PackageManagerDeclaration(entry["name"], entry["version"], SOURCE_DEV_ENGINES)

    def package_manager_field(self) -> Optional[PackageManagerDeclaration]:
        """
        Read the corepack ``packageManager`` field ('name@version[+hash]').

        Raises:
            PackageManagerConfigError: If the field is malformed
        """
        value = self.data.get("packageManager")
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip():
            raise PackageManagerConfigError(
                f"packageManager field in {self.path} must be a 'name@version' string"
            )

        name, _, version = value.strip().partition("@")
        version = version.split("+", 1)[0]
        if name not in PACKAGE_MANAGER_NAMES:
            raise PackageManagerConfigError(
                f"packageManager field names unknown package manager '{name}'"
            )
        if version and not is_absolute_version(version):
            raise PackageManagerConfigError(
                f"packageManager field must pin an absolute version, got '{version}'"
            )
        return PackageManagerDeclaration(name, version, SOURCE_PACKAGE_MANAGER_FIELD)

    def runtime_specs(self) -> List[RuntimeSpec]:
        """
        Read ``devEngines.runtime`` as runtime specs.

        Raises:
            RuntimeDeclarationError: For unknown runtimes or non-absolute versions
        """
        value = self.dev_engines.get("runtime")
        if value is None:
            return []

        specs = []
        valid_names = tuple(runtime.value for runtime in Runtime)
        for index, raw in enumerate(_entries(value, "runtime", RuntimeDeclarationError)):
            entry = _validate_entry(raw, index, "runtime", valid_names, RuntimeDeclarationError)
            specs.append(
                RuntimeSpec(
                    name=Runtime(entry["name"]),
                    version_specifier=entry["version"],
                    source=SOURCE_PACKAGE_METADATA,
                )
            )
        return specs


__all__ = [
    "PACKAGE_MANAGER_NAMES",
    "SOURCE_DEV_ENGINES",
    "SOURCE_PACKAGE_MANAGER_FIELD",
    "PackageManagerDeclaration",
    "PackageJson",
]
