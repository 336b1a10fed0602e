"""
Unit tests for the local cache service.
"""

import os
import shutil

import pytest

from runtimekit.cache.service import LocalCacheService, any_path_exists, expand_cache_paths
from runtimekit.core.exceptions import CacheServiceError


@pytest.fixture
def service(temp_dir, project_dir):
    return LocalCacheService(temp_dir / "cache", project_dir)


@pytest.fixture
def installed(project_dir, temp_dir):
    """Project with node_modules and an absolute store directory."""
    (project_dir / "node_modules" / "left-pad").mkdir(parents=True)
    (project_dir / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1\n")
    (project_dir / "apps" / "web" / "node_modules").mkdir(parents=True)
    (project_dir / "apps" / "web" / "node_modules" / "dep.js").write_text("dep")
    store = temp_dir / "store"
    store.mkdir()
    (store / "blob").write_bytes(b"\x00\x01")
    return store


class TestExpandCachePaths:
    """Test cache path expansion."""

    def test_top_level_matches_only(self, project_dir, installed):
        """Test nested node_modules inside a match are not listed twice."""
        (project_dir / "node_modules" / "left-pad" / "node_modules").mkdir()

        entries = expand_cache_paths(["**/node_modules", str(installed)], project_dir)

        arcnames = [arcname for _, arcname in entries]
        assert "rel/node_modules" in arcnames
        assert "rel/apps/web/node_modules" in arcnames
        assert "rel/node_modules/left-pad/node_modules" not in arcnames
        assert "abs/" + installed.as_posix().lstrip("/") in arcnames

    def test_missing_paths(self, project_dir):
        """Test missing paths expand to nothing."""
        assert expand_cache_paths(["**/node_modules", "/definitely/missing"], project_dir) == []
        assert not any_path_exists(["**/node_modules"], project_dir)


class TestLocalCacheService:
    """Test saving and restoring archives."""

    def test_save_and_restore_exact(self, service, project_dir, installed):
        """Test files come back where they were."""
        paths = ["**/node_modules", str(installed)]
        service.save(paths, "linux-aaaaaaaa-11111111")

        shutil.rmtree(project_dir / "node_modules")
        shutil.rmtree(installed)

        matched = service.restore(paths, "linux-aaaaaaaa-11111111", ["linux-aaaaaaaa-"])

        assert matched == "linux-aaaaaaaa-11111111"
        assert (project_dir / "node_modules" / "left-pad" / "index.js").read_text() == (
            "module.exports = 1\n"
        )
        assert (installed / "blob").read_bytes() == b"\x00\x01"

    def test_restore_prefix_newest_first(self, service, installed):
        """Test prefix restores pick the newest matching entry."""
        service.save(["**/node_modules"], "linux-aaaaaaaa-11111111")
        service.save(["**/node_modules"], "linux-aaaaaaaa-22222222")
        service.save(["**/node_modules"], "linux-bbbbbbbb-33333333")
        os.utime(service._archive_path("linux-aaaaaaaa-11111111"), (1000, 1000))
        os.utime(service._archive_path("linux-aaaaaaaa-22222222"), (2000, 2000))
        os.utime(service._archive_path("linux-bbbbbbbb-33333333"), (3000, 3000))

        matched = service.restore(["**/node_modules"], "linux-aaaaaaaa-99999999", ["linux-aaaaaaaa-"])

        assert matched == "linux-aaaaaaaa-22222222"
        assert service.keys() == [
            "linux-bbbbbbbb-33333333",
            "linux-aaaaaaaa-22222222",
            "linux-aaaaaaaa-11111111",
        ]

    def test_miss(self, service):
        """Test a miss returns None."""
        assert service.restore(["**/node_modules"], "linux-a-b", ["linux-a-"]) is None

    def test_no_restore_keys(self, service, installed):
        """Test prefixes are not tried without restore keys."""
        service.save(["**/node_modules"], "linux-aaaaaaaa-11111111")

        assert service.restore(["**/node_modules"], "linux-aaaaaaaa-22222222", []) is None

    def test_save_existing_key(self, service, installed):
        """Test entries are immutable."""
        service.save(["**/node_modules"], "linux-aaaaaaaa-11111111")

        with pytest.raises(CacheServiceError, match="already exists"):
            service.save(["**/node_modules"], "linux-aaaaaaaa-11111111")

    def test_save_nothing(self, service):
        """Test saving without existing paths fails."""
        with pytest.raises(CacheServiceError, match="nothing to save"):
            service.save(["**/node_modules"], "linux-aaaaaaaa-11111111")

    def test_corrupt_archive(self, service, temp_dir):
        """Test a corrupt archive raises CacheServiceError."""
        (temp_dir / "cache").mkdir()
        service._archive_path("linux-aaaaaaaa-11111111").write_bytes(b"not a tarball")

        with pytest.raises(CacheServiceError, match="Failed to restore"):
            service.restore([], "linux-aaaaaaaa-11111111")

    def test_no_temporary_files_left(self, service, installed, temp_dir):
        """Test saving leaves only the final archive."""
        service.save(["**/node_modules"], "linux-aaaaaaaa-11111111")

        assert sorted(p.name for p in (temp_dir / "cache").iterdir()) == [
            "linux-aaaaaaaa-11111111.tar.gz"
        ]
