"""
Unit tests for filesystem module.

Tests archive extraction (including permission restoration and traversal
protection), atomic writes and directory removal.
"""

import os
import sys

import pytest

from runtimekit.core.exceptions import (
    ExtractionError,
    FilesystemError,
    InsecureArchiveError,
    RuntimeKitError,
    UnsupportedArchiveFormat,
)
from runtimekit.core.filesystem import (
    archive_format,
    atomic_write,
    extract_archive,
    make_executable,
    safe_rmtree,
    temporary_directory,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")


class TestArchiveFormat:
    """Test archive format detection."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("node-v20.11.0-linux-x64.tar.gz", "r:gz"),
            ("archive.tgz", "r:gz"),
            ("node-v20.11.0-linux-x64.tar.xz", "r:xz"),
            ("bun-linux-x64.zip", "zip"),
            ("DENO.ZIP", "zip"),
            ("file.rar", None),
        ],
    )
    def test_detection(self, name, expected):
        """Test format detection from the file name."""
        assert archive_format(name) == expected


class TestExtractArchive:
    """Test archive extraction."""

    def test_extract_tar_gz(self, temp_dir, make_tar_gz):
        """Test extracting a tar.gz archive."""
        archive = temp_dir / "node.tar.gz"
        archive.write_bytes(
            make_tar_gz({"node-v20.0.0/": None, "node-v20.0.0/bin/node": "#!/bin/sh\n"})
        )

        extract_archive(archive, temp_dir / "out")

        assert (temp_dir / "out" / "node-v20.0.0" / "bin" / "node").read_text() == "#!/bin/sh\n"

    def test_extract_zip(self, temp_dir, make_zip):
        """Test extracting a zip archive."""
        archive = temp_dir / "deno.zip"
        archive.write_bytes(make_zip({"deno": "binary"}))

        extract_archive(archive, temp_dir / "out")

        assert (temp_dir / "out" / "deno").read_text() == "binary"

    @posix_only
    def test_zip_restores_permissions(self, temp_dir, make_zip):
        """Test zip extraction restores the Unix mode bits."""
        archive = temp_dir / "bun.zip"
        archive.write_bytes(make_zip({"bun-linux-x64/bun": "binary"}, mode=0o755))

        extract_archive(archive, temp_dir / "out")

        mode = os.stat(temp_dir / "out" / "bun-linux-x64" / "bun").st_mode & 0o777
        assert mode == 0o755

    def test_zip_traversal_blocked(self, temp_dir, make_zip):
        """Test zip members escaping the destination are rejected."""
        archive = temp_dir / "evil.zip"
        archive.write_bytes(make_zip({"../escaped.txt": "evil"}))

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, temp_dir / "out")

        assert not (temp_dir / "escaped.txt").exists()

    def test_tar_traversal_blocked(self, temp_dir, make_tar_gz):
        """Test tar members escaping the destination are rejected."""
        archive = temp_dir / "evil.tar.gz"
        archive.write_bytes(make_tar_gz({"../../escaped.txt": "evil"}))

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, temp_dir / "out")

    def test_insecure_is_extraction_error(self):
        """Test InsecureArchiveError is an ExtractionError."""
        assert issubclass(InsecureArchiveError, ExtractionError)

    def test_unsupported_format(self, temp_dir):
        """Test unknown archive suffixes are rejected."""
        archive = temp_dir / "file.rar"
        archive.write_bytes(b"data")

        with pytest.raises(UnsupportedArchiveFormat):
            extract_archive(archive, temp_dir / "out")

    def test_corrupt_archive(self, temp_dir):
        """Test corrupt archives raise ExtractionError."""
        archive = temp_dir / "broken.tar.gz"
        archive.write_bytes(b"definitely not gzip")

        with pytest.raises(ExtractionError):
            extract_archive(archive, temp_dir / "out")

    def test_missing_archive(self, temp_dir):
        """Test a missing archive raises ExtractionError."""
        with pytest.raises(ExtractionError, match="Archive not found"):
            extract_archive(temp_dir / "missing.zip", temp_dir / "out")

    def test_progress_callback(self, temp_dir, make_zip):
        """Test progress is reported per zip member."""
        archive = temp_dir / "a.zip"
        archive.write_bytes(make_zip({"a": "1", "b": "2"}))
        calls = []

        extract_archive(archive, temp_dir / "out", progress_callback=lambda c, t: calls.append((c, t)))

        assert calls == [(1, 2), (2, 2)]


class TestFileOperations:
    """Test atomic writes and directory removal."""

    def test_atomic_write_text(self, temp_dir):
        """Test writing text creates parent directories."""
        target = temp_dir / "a" / "b" / "state.json"

        atomic_write(target, "{}")

        assert target.read_text() == "{}"
        assert [p.name for p in target.parent.iterdir()] == ["state.json"]

    def test_atomic_write_replaces(self, temp_dir):
        """Test writing replaces existing content."""
        target = temp_dir / "file.bin"
        target.write_bytes(b"old")

        atomic_write(target, b"new")

        assert target.read_bytes() == b"new"

    @posix_only
    def test_make_executable(self, temp_dir):
        """Test execute bits are added."""
        target = temp_dir / "tool"
        target.write_text("")
        target.chmod(0o644)

        make_executable(target)

        assert target.stat().st_mode & 0o111 == 0o111

    def test_safe_rmtree(self, temp_dir):
        """Test removing a directory tree."""
        victim = temp_dir / "victim"
        (victim / "nested").mkdir(parents=True)
        (victim / "nested" / "file").write_text("x")

        safe_rmtree(victim, require_prefix=temp_dir)

        assert not victim.exists()

    def test_safe_rmtree_requires_prefix(self, temp_dir):
        """Test paths outside the required prefix are refused."""
        outside = temp_dir / "outside"
        outside.mkdir()

        with pytest.raises(ValueError, match="Refusing to delete"):
            safe_rmtree(outside, require_prefix=temp_dir / "cache")

        assert outside.exists()

    def test_safe_rmtree_missing_is_noop(self, temp_dir):
        """Test removing a missing directory does nothing."""
        safe_rmtree(temp_dir / "missing")

    def test_safe_rmtree_rejects_files(self, temp_dir):
        """Test files are not removed."""
        target = temp_dir / "file"
        target.write_text("x")

        with pytest.raises(RuntimeKitError) as exc_info:
            safe_rmtree(target)

        assert isinstance(exc_info.value, FilesystemError)

    def test_temporary_directory(self, temp_dir):
        """Test temporary directories are removed on exit."""
        with temporary_directory(parent=temp_dir) as tmp:
            (tmp / "file").write_text("x")
            assert tmp.parent == temp_dir

        assert not tmp.exists()

    def test_temporary_directory_without_cleanup(self, temp_dir):
        """Test cleanup=False keeps the directory."""
        with temporary_directory(parent=temp_dir, cleanup=False) as tmp:
            pass

        assert tmp.exists()
