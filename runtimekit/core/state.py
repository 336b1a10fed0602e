"""
State handed from ``runtimekit setup`` to the post-job ``runtimekit save``.

State is persisted to ``<project-root>/.runtimekit/state.json`` with atomic
writes.

Example:
    >>> manager = StateManager(Path('/work/app'))
    >>> manager.save(SetupState(primary_key='linux-x64-1a2b3c4d-e3b0c442'))
    >>> manager.load().primary_key
    'linux-x64-1a2b3c4d-e3b0c442'
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from runtimekit.core.directory import get_project_local_dir
from runtimekit.core.exceptions import StateError
from runtimekit.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

STATE_VERSION = 1


@dataclass
class SetupState:
    """
    What the setup step learned that the save step needs.

    Attributes:
        version: State file format version
        cache_enabled: Whether caching was enabled for the job
        primary_key: Exact cache key computed during setup
        matched_key: Key the restore matched, if any
        cache_paths: Paths to archive on save
        package_managers: Active package managers, primary first
        created_at: ISO 8601 timestamp of the setup run
    """

    version: int = STATE_VERSION
    cache_enabled: bool = True
    primary_key: Optional[str] = None
    matched_key: Optional[str] = None
    cache_paths: List[str] = field(default_factory=list)
    package_managers: List[str] = field(default_factory=list)
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SetupState":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class StateManager:
    """
    Manages state persistence for one project.

    Attributes:
        project_root: Project root directory
        state_file: Path to state.json file
    """

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root).resolve()
        self.state_file = get_project_local_dir(self.project_root) / "state.json"

    def exists(self) -> bool:
        return self.state_file.is_file()

    def load(self) -> SetupState:
        """
        Load state from disk.

        Raises:
            StateError: If the file is missing, corrupt or from another format version
        """
        if not self.state_file.exists():
            raise StateError(
                f"No setup state found at {self.state_file}. "
                "Run 'runtimekit setup' before 'runtimekit save'."
            )

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise StateError(f"Invalid state file {self.state_file}: {e}") from e

        if not isinstance(data, dict) or data.get("version") != STATE_VERSION:
            raise StateError(f"Unsupported state file format in {self.state_file}")

        logger.debug(f"Loaded state from {self.state_file}")
        return SetupState.from_dict(data)

    def save(self, state: SetupState) -> Path:
        """Save state to disk atomically and return the file path."""
        if state.created_at is None:
            state.created_at = datetime.now(timezone.utc).isoformat()

        atomic_write(self.state_file, json.dumps(state.to_dict(), indent=2))
        logger.debug(f"Saved state to {self.state_file}")
        return self.state_file

    def clear(self) -> None:
        self.state_file.unlink(missing_ok=True)


__all__ = ["STATE_VERSION", "SetupState", "StateManager"]
