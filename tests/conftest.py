"""
Pytest configuration and shared fixtures for RuntimeKit tests.
"""

import io
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Dict, Generator, Union

import pytest

from runtimekit.core.platform import PlatformInfo, clear_platform_cache
from runtimekit.runtime.index import StaticVersionIndex
from runtimekit.runtime.versions import ReleaseEntry, Runtime

# Runner variables that would leak a real CI environment into tests
RUNNER_VARIABLES = (
    "GITHUB_ACTIONS",
    "GITHUB_OUTPUT",
    "GITHUB_STATE",
    "GITHUB_PATH",
    "GITHUB_TOKEN",
    "RUNNER_TOOL_CACHE",
    "RUNTIMEKIT_CACHE_DIR",
)


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def project_dir(temp_dir: Path) -> Path:
    """Create an empty project directory."""
    project = temp_dir / "project"
    project.mkdir()
    return project


@pytest.fixture
def isolated_home(temp_dir: Path, monkeypatch) -> Path:
    """Create isolated home directory for tests."""
    fake_home = temp_dir / "home"
    fake_home.mkdir()

    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setenv("USERPROFILE", str(fake_home))

    return fake_home


@pytest.fixture(autouse=True)
def clean_runner_env(monkeypatch):
    """Remove GitHub Actions variables and action inputs from the environment."""
    import os

    for name in RUNNER_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("INPUT_") or name.startswith("STATE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset module-level caches between tests."""
    clear_platform_cache()
    yield
    clear_platform_cache()


@pytest.fixture
def linux_x64() -> PlatformInfo:
    return PlatformInfo("linux", "x64")


@pytest.fixture
def release_index() -> StaticVersionIndex:
    """Release index with LTS lines, a current line and pre-releases."""
    return StaticVersionIndex(
        {
            Runtime.NODE: [
                ReleaseEntry("23.3.0", False, ""),
                ReleaseEntry("22.12.0", True, "jod"),
                ReleaseEntry("22.11.0", True, "jod"),
                ReleaseEntry("20.18.1", True, "iron"),
                ReleaseEntry("20.9.0", True, "iron"),
                ReleaseEntry("20.10.0", True, "iron"),
                ReleaseEntry("18.20.5", True, "hydrogen"),
                ReleaseEntry("24.0.0-rc.1", False, ""),
            ],
            Runtime.BUN: [
                ReleaseEntry("1.1.38", False, "1.1"),
                ReleaseEntry("1.1.9", False, "1.1"),
                ReleaseEntry("1.0.36", False, "1.0"),
                ReleaseEntry("1.2.0-canary.1", False, "1.2"),
            ],
            Runtime.DENO: [
                ReleaseEntry("2.1.4", False, "2.1"),
                ReleaseEntry("2.0.6", False, "2.0"),
                ReleaseEntry("1.46.3", False, "1.46"),
            ],
        }
    )


# ============================================================================
# Archive Builders
# ============================================================================


def _entry_bytes(content: Union[str, bytes]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


@pytest.fixture
def make_tar_gz():
    """Build tar.gz bytes from {member name: content}; content None makes a directory."""

    def build(members: Dict[str, Union[str, bytes, None]], mode: int = 0o755) -> bytes:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for name, content in members.items():
                info = tarfile.TarInfo(name)
                if content is None:
                    info.type = tarfile.DIRTYPE
                    info.mode = 0o755
                    tar.addfile(info)
                    continue
                data = _entry_bytes(content)
                info.size = len(data)
                info.mode = mode
                tar.addfile(info, io.BytesIO(data))
        return buffer.getvalue()

    return build


@pytest.fixture
def make_zip():
    """Build zip bytes from {member name: content}; Unix mode stored in external_attr."""

    def build(members: Dict[str, Union[str, bytes]], mode: int = 0o755) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for name, content in members.items():
                info = zipfile.ZipInfo(name)
                info.external_attr = (0o100000 | mode) << 16
                archive.writestr(info, _entry_bytes(content))
        return buffer.getvalue()

    return build
