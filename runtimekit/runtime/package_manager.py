"""
Package manager detection and activation.

The active (primary) package manager is decided in tiers:

1. Explicit declaration: a ``package-manager`` input, or
   ``devEngines.packageManager`` in package.json
2. The corepack ``packageManager`` field of package.json
3. Lockfiles in the project root
4. npm, with a warning

pnpm and yarn ship through corepack and are activated after Node.js is
installed; npm, bun and deno come with their runtime.
"""

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from runtimekit.config.package_json import PACKAGE_MANAGER_NAMES, PackageJson
from runtimekit.core.exceptions import PackageManagerConfigError
from runtimekit.core.process import query_command, run_command
from runtimekit.runtime.versions import Runtime, is_absolute_version, strip_v_prefix

logger = logging.getLogger(__name__)

SOURCE_EXPLICIT_INPUT = "input"
SOURCE_LOCKFILE_HEURISTIC = "lockfile-heuristic"
SOURCE_DEFAULT = "default"

# First match wins
LOCKFILE_HEURISTIC = (
    ("deno.lock", "deno"),
    ("bun.lock", "bun"),
    ("bun.lockb", "bun"),
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
    ("npm-shrinkwrap.json", "npm"),
)

COREPACK_MANAGERS = {"pnpm": "latest", "yarn": "stable"}

VERSION_IN_OUTPUT_RE = re.compile(r"v?(\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?)")


@dataclass(frozen=True)
class PackageManagerInfo:
    """
    The package manager driving dependency installs for a job.

    Attributes:
        name: npm, pnpm, yarn, bun or deno
        version: Declared or probed version; '' when unknown
        source: input, devEngines, packageManager-field, lockfile-heuristic or default
    """

    name: str
    version: str
    source: str

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name

    @property
    def runtime(self) -> Optional[Runtime]:
        """Runtime that is its own package manager (bun, deno), if any."""
        if self.name in (Runtime.BUN.value, Runtime.DENO.value):
            return Runtime(self.name)
        return None


def detect_package_manager(
    project_root: Path,
    explicit_name: str = "",
    explicit_version: str = "",
    package_json: Optional[PackageJson] = None,
) -> PackageManagerInfo:
    """
    Decide the primary package manager.

    Args:
        project_root: Project root directory
        explicit_name: Package manager requested by the caller, if any
        explicit_version: Version requested by the caller, if any
        package_json: Already-loaded package.json (loaded from project_root if None)

    Raises:
        PackageManagerConfigError: For unknown names or non-absolute versions
    """
    project_root = Path(project_root)

    if explicit_name:
        name = explicit_name.strip().lower()
        version = strip_v_prefix(explicit_version) if explicit_version else ""
        if name not in PACKAGE_MANAGER_NAMES:
            raise PackageManagerConfigError(
                f"Unknown package manager '{explicit_name}'. "
                f"Expected one of: {', '.join(PACKAGE_MANAGER_NAMES)}"
            )
        if version and not is_absolute_version(version):
            raise PackageManagerConfigError(
                f"package-manager-version must be an absolute version, got '{explicit_version}'"
            )
        return _detected(PackageManagerInfo(name, version, SOURCE_EXPLICIT_INPUT))

    if explicit_version.strip():
        logger.warning(
            f"Ignoring package-manager-version '{explicit_version}' "
            "because package-manager is not set"
        )

    if package_json is None:
        package_json = PackageJson.load(project_root)

    if package_json is not None:
        for declaration in (
            package_json.dev_engines_package_manager(),
            package_json.package_manager_field(),
        ):
            if declaration is not None:
                return _detected(
                    PackageManagerInfo(declaration.name, declaration.version, declaration.source)
                )

    for lockfile, name in LOCKFILE_HEURISTIC:
        if (project_root / lockfile).is_file():
            logger.debug(f"Found {lockfile}")
            return _detected(PackageManagerInfo(name, "", SOURCE_LOCKFILE_HEURISTIC))

    logger.warning("No package manager declared and no lockfile found, defaulting to npm")
    return PackageManagerInfo("npm", "", SOURCE_DEFAULT)


def _detected(info: PackageManagerInfo) -> PackageManagerInfo:
    logger.info(f"Detected package manager: {info} (from {info.source})")
    return info


def active_package_managers(
    primary: PackageManagerInfo, installed_runtimes: Iterable[Runtime]
) -> List[str]:
    """
    List package managers whose caches matter for the job.

    Example:
        >>> active_package_managers(PackageManagerInfo("pnpm", "9.15.0", "devEngines"),
        ...                         [Runtime.NODE, Runtime.BUN])
        ['pnpm', 'bun']
    """
    names = [primary.name]
    for runtime in installed_runtimes:
        runtime = Runtime(runtime)
        if runtime in (Runtime.BUN, Runtime.DENO) and runtime.value not in names:
            names.append(runtime.value)
    return names


def parse_version_output(output: str) -> str:
    """
    Extract a version from ``--version`` output.

    Example:
        >>> parse_version_output("deno 2.1.4 (stable, release, x86_64-unknown-linux-gnu)")
        '2.1.4'
    """
    match = VERSION_IN_OUTPUT_RE.search(output)
    return match.group(1) if match else ""


def probe_version(
    info: PackageManagerInfo, env: Optional[Mapping[str, str]] = None, cwd: Optional[Path] = None
) -> PackageManagerInfo:
    """
    Fill in an unknown version by running ``{pm} --version``.

    Returns:
        ``info`` unchanged when the version is already known or probing fails
    """
    if info.version:
        return info
    output = query_command([info.name, "--version"], cwd=cwd, env=env)
    version = parse_version_output(output or "")
    if not version:
        logger.debug(f"Could not determine {info.name} version")
        return info
    logger.debug(f"Probed {info.name} version {version}")
    return replace(info, version=version)


def corepack_commands(info: PackageManagerInfo) -> List[List[str]]:
    """
    Commands that activate a corepack-managed package manager.

    Example:
        >>> corepack_commands(PackageManagerInfo("pnpm", "", "lockfile-heuristic"))
        [['corepack', 'enable'], ['corepack', 'prepare', 'pnpm@latest', '--activate']]
    """
    if info.name not in COREPACK_MANAGERS:
        return []
    version = info.version or COREPACK_MANAGERS[info.name]
    return [
        ["corepack", "enable"],
        ["corepack", "prepare", f"{info.name}@{version}", "--activate"],
    ]


def activate_package_manager(
    info: PackageManagerInfo,
    project_root: Path,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> None:
    """
    Activate pnpm or yarn through corepack; a no-op for the others.

    Raises:
        CommandError: If corepack fails
    """
    for command in corepack_commands(info):
        run_command(command, cwd=project_root, env=env, timeout=timeout)


def dependency_install_command(name: str, project_root: Path) -> List[str]:
    """
    Command installing a project's dependencies, frozen when a lockfile exists.

    Example:
        >>> dependency_install_command("yarn", Path("/work/app-without-lockfile"))
        ['yarn', 'install', '--no-immutable']
    """
    root = Path(project_root)

    def has(*names: str) -> bool:
        return any((root / n).is_file() for n in names)

    if name == "npm":
        return ["npm", "ci"] if has("package-lock.json", "npm-shrinkwrap.json") else ["npm", "install"]
    if name == "pnpm":
        return ["pnpm", "install", "--frozen-lockfile"] if has("pnpm-lock.yaml") else ["pnpm", "install"]
    if name == "yarn":
        # Yarn 4 defaults to immutable installs on CI
        return ["yarn", "install", "--immutable" if has("yarn.lock") else "--no-immutable"]
    if name == "bun":
        return ["bun", "install", "--frozen-lockfile"] if has("bun.lock", "bun.lockb") else ["bun", "install"]
    if name == "deno":
        return ["deno", "install"]
    raise PackageManagerConfigError(f"Unknown package manager '{name}'")


def install_dependencies(
    info: PackageManagerInfo,
    project_root: Path,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> None:
    """
    Install project dependencies with the primary package manager.

    Raises:
        CommandError: If the install fails
    """
    run_command(dependency_install_command(info.name, project_root), cwd=project_root, env=env, timeout=timeout)


__all__ = [
    "PackageManagerInfo",
    "LOCKFILE_HEURISTIC",
    "detect_package_manager",
    "active_package_managers",
    "parse_version_output",
    "probe_version",
    "corepack_commands",
    "activate_package_manager",
    "dependency_install_command",
    "install_dependencies",
]
