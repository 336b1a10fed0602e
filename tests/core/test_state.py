"""
Unit tests for setup state persistence.
"""

import json

import pytest

from runtimekit.core.exceptions import RuntimeKitError, StateError
from runtimekit.core.state import STATE_VERSION, SetupState, StateManager


class TestStateManager:
    """Test saving and loading state."""

    def test_save_and_load(self, project_dir):
        """Test state survives a save/load cycle."""
        manager = StateManager(project_dir)
        state = SetupState(
            primary_key="linux-1a2b3c4d-e3b0c442",
            matched_key="linux-1a2b3c4d-ffffffff",
            cache_paths=["/home/runner/.npm", "**/node_modules"],
            package_managers=["npm"],
        )

        path = manager.save(state)
        loaded = manager.load()

        assert path == project_dir / ".runtimekit" / "state.json"
        assert loaded.primary_key == "linux-1a2b3c4d-e3b0c442"
        assert loaded.matched_key == "linux-1a2b3c4d-ffffffff"
        assert loaded.cache_paths == ["/home/runner/.npm", "**/node_modules"]
        assert loaded.created_at is not None

    def test_missing_state(self, project_dir):
        """Test loading without a state file fails."""
        manager = StateManager(project_dir)

        assert not manager.exists()
        with pytest.raises(RuntimeKitError, match="runtimekit setup") as exc_info:
            manager.load()

        assert isinstance(exc_info.value, StateError)

    def test_corrupt_state(self, project_dir):
        """Test corrupt JSON fails."""
        manager = StateManager(project_dir)
        manager.state_file.parent.mkdir(parents=True)
        manager.state_file.write_text("{not json")

        with pytest.raises(StateError, match="Invalid state file"):
            manager.load()

    def test_wrong_version(self, project_dir):
        """Test another format version is rejected."""
        manager = StateManager(project_dir)
        manager.state_file.parent.mkdir(parents=True)
        manager.state_file.write_text(json.dumps({"version": STATE_VERSION + 1}))

        with pytest.raises(StateError, match="Unsupported"):
            manager.load()

    def test_unknown_keys_ignored(self):
        """Test from_dict ignores keys it does not know."""
        state = SetupState.from_dict({"version": STATE_VERSION, "future": True, "cache_enabled": False})

        assert state.cache_enabled is False

    def test_clear(self, project_dir):
        """Test clearing removes the file."""
        manager = StateManager(project_dir)
        manager.save(SetupState())

        manager.clear()
        manager.clear()

        assert not manager.exists()
