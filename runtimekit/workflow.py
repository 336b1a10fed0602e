"""
Setup and post-job save pipelines.

The setup pipeline runs, in order:

1. Read package.json and detect the primary package manager
2. Decide which runtimes to install and resolve their versions
3. Install the runtimes into the tool cache and put them on PATH
4. Activate corepack-managed package managers and probe their versions
5. Discover lockfiles, resolve cache paths and build the cache key
6. Restore the cache
7. Install dependencies unless the exact key was restored

The save pipeline runs after the job and saves the cache under the key the
setup step computed.

Usage:
    from runtimekit.config.settings import load_settings
    from runtimekit.workflow import SetupWorkflow

    workflow = SetupWorkflow(load_settings(Path('.')))
    result = workflow.run()
    workflow.write_outputs(result)
    workflow.save_state(result)
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from runtimekit.cache.keys import CacheKey, build_cache_key
from runtimekit.cache.lockfiles import LockfileSet, discover_lockfiles, relative_lockfiles
from runtimekit.cache.manager import CacheManager, CacheOutcome
from runtimekit.cache.paths import QueryFn, resolve_cache_paths
from runtimekit.cache.service import CacheService, LocalCacheService
from runtimekit.config.package_json import PackageJson
from runtimekit.config.settings import Settings
from runtimekit.core.actions import ActionsContext
from runtimekit.core.exceptions import StateError
from runtimekit.core.state import SetupState, StateManager
from runtimekit.core.tool_cache import ToolCache
from runtimekit.runtime.distributions import get_distribution
from runtimekit.runtime.index import VersionIndex, VersionIndexClient
from runtimekit.runtime.installer import ArchiveInstaller, InstallResult
from runtimekit.runtime.package_manager import (
    COREPACK_MANAGERS,
    PackageManagerInfo,
    activate_package_manager,
    active_package_managers,
    detect_package_manager,
    install_dependencies,
    probe_version,
)
from runtimekit.runtime.resolver import VersionResolver
from runtimekit.runtime.versions import (
    SOURCE_DEFAULT,
    SOURCE_INPUT,
    ResolvedVersion,
    Runtime,
    RuntimeSpec,
)

logger = logging.getLogger(__name__)

# $GITHUB_STATE entry carrying SetupState from setup to save
STATE_NAME = "RUNTIMEKIT_STATE"

# Bun or Deno as the package manager without a declared version
RUNTIME_PACKAGE_MANAGER_DEFAULT = "latest"


@dataclass
class SetupResult:
    """Everything the setup pipeline decided and did."""

    resolved: List[ResolvedVersion]
    installs: List[InstallResult]
    package_manager: PackageManagerInfo
    package_managers: List[str]
    lockfiles: LockfileSet
    cache_paths: List[str]
    cache_key: CacheKey
    cache_outcome: CacheOutcome = CacheOutcome.NOT_APPLICABLE
    matched_key: Optional[str] = None
    dependencies_installed: bool = False

    def version_of(self, runtime: Runtime) -> str:
        for item in self.resolved:
            if item.runtime == runtime:
                return item.concrete_version
        return ""

    def outputs(self, project_root: Optional[Path] = None) -> Dict[str, str]:
        """
        Step outputs, in a stable order.

        Example:
            >>> result.outputs(Path('/work/app'))["cache-key"]
            'linux-1a2b3c4d-9f86d081'
        """
        outputs: Dict[str, str] = {}
        for runtime in Runtime:
            version = self.version_of(runtime)
            outputs[f"{runtime.value}-version"] = version
            outputs[f"{runtime.value}-enabled"] = "true" if version else "false"
        outputs["package-manager"] = self.package_manager.name
        outputs["package-manager-version"] = self.package_manager.version
        outputs["cache-hit"] = str(self.cache_outcome)
        outputs["cache-key"] = self.cache_key.primary_key
        outputs["lockfiles"] = ",".join(relative_lockfiles(self.lockfiles, project_root))
        outputs["cache-paths"] = ",".join(self.cache_paths)
        return outputs


# ============================================================================
# Runtime Planning
# ============================================================================


def plan_runtimes(
    settings: Settings,
    package_json: Optional[PackageJson],
    package_manager: PackageManagerInfo,
) -> List[RuntimeSpec]:
    """
    Decide which runtimes to install.

    Per runtime, an explicit input (or Node.js version file) wins over
    ``devEngines.runtime``. Node.js is installed unless the primary package
    manager is Bun or Deno and nothing asks for Node.js; Bun and Deno are
    installed when requested or when they are the package manager.

    Raises:
        RuntimeDeclarationError: If devEngines.runtime is malformed
    """
    declared = {}
    if package_json is not None:
        declared = {spec.name: spec for spec in package_json.runtime_specs()}

    specs: List[RuntimeSpec] = []
    if settings.node_version or settings.node_version_file is not None:
        specs.append(
            RuntimeSpec(
                Runtime.NODE,
                settings.node_version,
                settings.node_version_file,
                SOURCE_INPUT,
            )
        )
    elif Runtime.NODE in declared:
        specs.append(declared[Runtime.NODE])
    elif package_manager.runtime is None:
        specs.append(RuntimeSpec(Runtime.NODE, source=SOURCE_DEFAULT))

    for runtime, requested in (
        (Runtime.BUN, settings.bun_version),
        (Runtime.DENO, settings.deno_version),
    ):
        if requested:
            specs.append(RuntimeSpec(runtime, requested, source=SOURCE_INPUT))
        elif runtime in declared:
            specs.append(declared[runtime])
        elif package_manager.runtime == runtime:
            specs.append(RuntimeSpec(runtime, source=SOURCE_DEFAULT))

    return specs


def runtime_defaults(package_manager: PackageManagerInfo) -> Dict[Runtime, str]:
    """Default specifiers contributed by a Bun or Deno package manager."""
    if package_manager.runtime is None:
        return {}
    return {package_manager.runtime: package_manager.version or RUNTIME_PACKAGE_MANAGER_DEFAULT}


# ============================================================================
# Setup
# ============================================================================


class SetupWorkflow:
    """
    Runs the setup pipeline for one project.

    Args:
        settings: Effective settings
        actions: Runner integration (default: reads and writes os.environ)
        index: Release index (default: fetched over HTTP)
        installer: Runtime installer (default: into settings.tool_cache_dir)
        cache_service: Cache backend (default: LocalCacheService in settings.cache_dir)
        query: Command runner for cache store detection (default: real commands)
    """

    def __init__(
        self,
        settings: Settings,
        actions: Optional[ActionsContext] = None,
        index: Optional[VersionIndex] = None,
        installer: Optional[ArchiveInstaller] = None,
        cache_service: Optional[CacheService] = None,
        query: Optional[QueryFn] = None,
    ):
        self.settings = settings
        self.project_root = Path(settings.project_root).resolve()
        self.actions = actions or ActionsContext()
        policy = settings.retry_policy()
        self.index = index or VersionIndexClient(
            timeout=settings.network.timeout, policy=policy
        )
        self.installer = installer or ArchiveInstaller(
            ToolCache(settings.tool_cache_dir),
            timeout=settings.network.timeout,
            policy=policy,
            verify_checksums=settings.verify_checksums,
        )
        self.cache_service = cache_service or LocalCacheService(
            settings.cache_dir, self.project_root
        )
        self.query = query

    @property
    def environ(self) -> Dict[str, str]:
        """Environment for child processes, including PATH additions."""
        return dict(self.actions.environ)

    def detect(self) -> Tuple[Optional[PackageJson], PackageManagerInfo]:
        """Load package.json and detect the primary package manager."""
        package_json = PackageJson.load(self.project_root)
        package_manager = detect_package_manager(
            self.project_root,
            explicit_name=self.settings.package_manager,
            explicit_version=self.settings.package_manager_version,
            package_json=package_json,
        )
        return package_json, package_manager

    def resolve(self) -> Tuple[PackageManagerInfo, List[ResolvedVersion]]:
        """
        Resolve runtime versions without downloading anything.

        Raises:
            UnsupportedPlatformError: Before the release index is fetched
            VersionNotFoundError: If a specifier matches no release
            ConfigurationError: If package.json or the inputs are invalid
        """
        package_json, package_manager = self.detect()
        specs = plan_runtimes(self.settings, package_json, package_manager)
        for spec in specs:
            get_distribution(spec.name).check_supported(self.installer.platform)
        resolver = VersionResolver(self.index, runtime_defaults(package_manager))
        with self.actions.group("Resolving runtime versions"):
            resolved = [resolver.resolve(spec) for spec in specs]
        return package_manager, resolved

    def prepare(self) -> SetupResult:
        """
        Install runtimes and compute the cache key, without touching the cache.

        Raises:
            RuntimeKitError: For any fatal resolution, install or configuration error
        """
        package_manager, resolved = self.resolve()

        with self.actions.group("Installing runtimes"):
            installs = self.installer.install_all(resolved, parallel=self.settings.parallel)
            for result in installs:
                source = "tool cache" if result.from_tool_cache else "download"
                logger.info(f"{result.runtime.display_name} {result.version} ready ({source})")
                self.actions.add_path(result.bin_directory)

        if package_manager.name in COREPACK_MANAGERS:
            with self.actions.group(f"Activating {package_manager.name} with corepack"):
                activate_package_manager(package_manager, self.project_root, env=self.environ)
        package_manager = probe_version(package_manager, env=self.environ, cwd=self.project_root)

        package_managers = active_package_managers(
            package_manager, [item.runtime for item in resolved]
        )
        lockfiles = discover_lockfiles(
            self.project_root, package_managers, self.settings.additional_lockfiles
        )
        cache_paths = resolve_cache_paths(
            package_managers,
            resolved,
            self.installer.tool_cache.root,
            self.installer.platform.os,
            additional=self.settings.additional_cache_paths,
            query=self.query,
            project_root=self.project_root,
            env=self.environ,
        )
        cache_key = build_cache_key(
            resolved,
            package_manager,
            lockfiles,
            self.installer.platform.os,
            salt=self.settings.cache_bust,
        )
        return SetupResult(
            resolved=resolved,
            installs=installs,
            package_manager=package_manager,
            package_managers=package_managers,
            lockfiles=lockfiles,
            cache_paths=cache_paths,
            cache_key=cache_key,
        )

    def run(self) -> SetupResult:
        """Run the full setup pipeline."""
        result = self.prepare()

        manager = CacheManager(
            self.cache_service,
            self.project_root,
            enabled=self.settings.cache,
            warn=self.actions.warning,
        )
        with self.actions.group("Restoring cache"):
            result.cache_outcome = manager.restore(
                result.cache_key.primary_key,
                result.cache_key.fallback_key,
                result.cache_paths,
                salted=result.cache_key.salted,
            )
        result.matched_key = manager.matched_key

        if not self.settings.install_deps:
            logger.info("Skipping dependency installation")
        elif result.cache_outcome == CacheOutcome.HIT:
            logger.info("Dependencies restored from cache, skipping installation")
        else:
            with self.actions.group(f"Installing dependencies with {result.package_manager.name}"):
                install_dependencies(result.package_manager, self.project_root, env=self.environ)
            result.dependencies_installed = True

        return result

    def write_outputs(self, result: SetupResult) -> Dict[str, str]:
        outputs = result.outputs(self.project_root)
        for name, value in outputs.items():
            self.actions.set_output(name, value)
        return outputs

    def save_state(self, result: SetupResult) -> SetupState:
        """Persist what the post-job save step needs."""
        state = SetupState(
            cache_enabled=self.settings.cache,
            primary_key=result.cache_key.primary_key,
            matched_key=result.matched_key,
            cache_paths=list(result.cache_paths),
            package_managers=list(result.package_managers),
        )
        StateManager(self.project_root).save(state)
        self.actions.save_state(STATE_NAME, json.dumps(state.to_dict()))
        return state


# ============================================================================
# Post-job Save
# ============================================================================


def load_setup_state(project_root: Path, actions: ActionsContext) -> SetupState:
    """
    Load the state saved by the setup step.

    ``$GITHUB_STATE`` entries take precedence over the project state file.

    Raises:
        StateError: If no usable state exists
    """
    raw = actions.get_state(STATE_NAME)
    if raw:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StateError(f"Invalid {STATE_NAME} state: {e}") from e
        if not isinstance(data, dict):
            raise StateError(f"Invalid {STATE_NAME} state")
        return SetupState.from_dict(data)
    return StateManager(project_root).load()


def save_cache(
    settings: Settings,
    actions: Optional[ActionsContext] = None,
    cache_service: Optional[CacheService] = None,
) -> bool:
    """
    Save the cache after the job.

    Returns:
        True if a cache entry was written

    Raises:
        StateError: If the setup step left no usable state
    """
    actions = actions or ActionsContext()
    project_root = Path(settings.project_root).resolve()
    state = load_setup_state(project_root, actions)

    if not state.cache_enabled:
        logger.info("Caching disabled, nothing to save")
        return False
    if not state.primary_key:
        actions.warning("Setup did not compute a cache key, skipping cache save")
        return False

    service = cache_service or LocalCacheService(settings.cache_dir, project_root)
    manager = CacheManager(service, project_root, warn=actions.warning)
    return manager.save(state.primary_key, state.cache_paths, matched_key=state.matched_key)


__all__ = [
    "STATE_NAME",
    "SetupResult",
    "SetupWorkflow",
    "plan_runtimes",
    "runtime_defaults",
    "load_setup_state",
    "save_cache",
]
