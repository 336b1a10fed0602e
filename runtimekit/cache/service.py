"""
Cache service backends.

A cache service stores directory trees under string keys. Restores look up
the exact key first, then each restore key as a prefix, newest entry first.

:class:`LocalCacheService` keeps one ``tar.gz`` archive per key in a local
directory, which suits self-hosted runners with a persistent disk and local
runs. Paths given as absolute are archived under ``abs/`` and project-relative
paths under ``rel/`` so that a restore puts each file back where it came from.
"""

import fnmatch
import glob
import logging
import os
import re
import shutil
import tarfile
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence, Tuple

from runtimekit.core.directory import get_cache_service_dir
from runtimekit.core.exceptions import CacheServiceError
from runtimekit.core.filesystem import safe_rmtree

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"
ABSOLUTE_PREFIX = "abs/"
RELATIVE_PREFIX = "rel/"


class CacheService(ABC):
    """Stores and retrieves cached paths by key."""

    @abstractmethod
    def restore(
        self, paths: Sequence[str], primary_key: str, restore_keys: Sequence[str] = ()
    ) -> Optional[str]:
        """
        Restore the best matching entry.

        Returns:
            The key of the restored entry, or None on a miss

        Raises:
            CacheServiceError: If the backend fails
        """
        pass

    @abstractmethod
    def save(self, paths: Sequence[str], key: str) -> None:
        """
        Save paths under a key.

        Raises:
            CacheServiceError: If the key already exists or the backend fails
        """
        pass


def _walk_top_matches(root: Path, name_pattern: str) -> List[str]:
    """Match ``**/<name>`` without descending into matched directories or .git."""
    matches = []
    for dirpath, dirnames, filenames in os.walk(root):
        keep = []
        for dirname in sorted(dirnames):
            if fnmatch.fnmatch(dirname, name_pattern):
                matches.append(os.path.join(dirpath, dirname))
            elif dirname != ".git":
                keep.append(dirname)
        dirnames[:] = keep
        matches.extend(os.path.join(dirpath, f) for f in fnmatch.filter(filenames, name_pattern))
    return matches


def expand_cache_paths(paths: Sequence[str], project_root: Path) -> List[Tuple[Path, str]]:
    """
    Expand cache paths and globs to existing files and directories.

    Returns:
        (path on disk, archive name) pairs; entries nested inside an earlier
        entry are dropped
    """
    root = Path(project_root).resolve()
    found = {}
    for raw in paths:
        pattern = os.path.expanduser(raw)
        is_absolute = os.path.isabs(pattern)
        full = pattern if is_absolute else str(root / pattern)
        basename = pattern[len("**/"):] if pattern.startswith("**/") else ""
        if basename and "/" not in basename:
            matches = _walk_top_matches(root, basename)
        else:
            matches = glob.glob(full, recursive=True)
        for match in matches:
            path = Path(match)
            if not (path.exists() or path.is_symlink()):
                continue
            if is_absolute:
                arcname = ABSOLUTE_PREFIX + path.as_posix().lstrip("/")
            else:
                try:
                    arcname = RELATIVE_PREFIX + path.resolve().relative_to(root).as_posix()
                except ValueError:
                    arcname = ABSOLUTE_PREFIX + path.resolve().as_posix().lstrip("/")
            found[path] = arcname

    selected: List[Tuple[Path, str]] = []
    for path in sorted(found, key=lambda p: p.as_posix()):
        if any(path.is_relative_to(parent) for parent, _ in selected):
            continue
        selected.append((path, found[path]))
    return selected


def any_path_exists(paths: Sequence[str], project_root: Path) -> bool:
    return bool(expand_cache_paths(paths, project_root))


class LocalCacheService(CacheService):
    """
    Cache entries as tar.gz archives in a local directory.

    Example:
        >>> service = LocalCacheService(Path('~/.runtimekit/cache').expanduser(), Path('.'))
        >>> service.save(['**/node_modules'], 'linux-1a2b3c4d-e3b0c442')
        >>> service.restore(['**/node_modules'], 'linux-1a2b3c4d-ffffffff', ['linux-1a2b3c4d-'])
        'linux-1a2b3c4d-e3b0c442'
    """

    def __init__(self, directory: Optional[Path] = None, project_root: Optional[Path] = None):
        self.directory = Path(directory) if directory is not None else get_cache_service_dir()
        self.project_root = Path(project_root) if project_root is not None else Path.cwd()

    @staticmethod
    def _file_name(key: str) -> str:
        return re.sub(r"[^A-Za-z0-9._-]", "_", key) + ARCHIVE_SUFFIX

    def _archive_path(self, key: str) -> Path:
        return self.directory / self._file_name(key)

    def keys(self) -> List[str]:
        """Stored keys, newest first."""
        if not self.directory.is_dir():
            return []
        archives = sorted(
            (p for p in self.directory.glob(f"*{ARCHIVE_SUFFIX}") if not p.name.startswith(".")),
            key=lambda p: (p.stat().st_mtime, p.name),
            reverse=True,
        )
        return [p.name[: -len(ARCHIVE_SUFFIX)] for p in archives]

    def _find(self, primary_key: str, restore_keys: Sequence[str]) -> Optional[str]:
        if self._archive_path(primary_key).is_file():
            return primary_key
        stored = self.keys()
        for prefix in restore_keys:
            safe_prefix = self._file_name(prefix)[: -len(ARCHIVE_SUFFIX)]
            for key in stored:
                if key.startswith(safe_prefix):
                    return key
        return None

    def restore(
        self, paths: Sequence[str], primary_key: str, restore_keys: Sequence[str] = ()
    ) -> Optional[str]:
        matched = self._find(primary_key, restore_keys)
        if matched is None:
            logger.debug(f"No local cache entry for {primary_key}")
            return None

        archive = self._archive_path(matched)
        logger.info(f"Restoring cache entry {matched}")
        try:
            self._extract(archive)
        except (OSError, tarfile.TarError, EOFError) as e:
            raise CacheServiceError(f"Failed to restore cache entry {matched}: {e}") from e
        return matched

    def save(self, paths: Sequence[str], key: str) -> None:
        archive = self._archive_path(key)
        if archive.exists():
            raise CacheServiceError(f"Cache entry {key} already exists")

        entries = expand_cache_paths(paths, self.project_root)
        if not entries:
            raise CacheServiceError("None of the cache paths exist, nothing to save")

        self.directory.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=self.directory, prefix=".saving-", suffix=ARCHIVE_SUFFIX)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f, tarfile.open(fileobj=f, mode="w:gz") as tar:
                for path, arcname in entries:
                    logger.debug(f"Archiving {path} as {arcname}")
                    tar.add(path, arcname=arcname)
            if archive.exists():
                raise CacheServiceError(f"Cache entry {key} already exists")
            temp_path.replace(archive)
        except (OSError, tarfile.TarError) as e:
            raise CacheServiceError(f"Failed to save cache entry {key}: {e}") from e
        finally:
            temp_path.unlink(missing_ok=True)

        logger.info(f"Saved cache entry {key} ({archive.stat().st_size / 1024 / 1024:.1f} MB)")

    def _target(self, name: str) -> Path:
        if name.startswith(ABSOLUTE_PREFIX):
            rest = name[len(ABSOLUTE_PREFIX):]
            base = None
        elif name.startswith(RELATIVE_PREFIX):
            rest = name[len(RELATIVE_PREFIX):]
            base = self.project_root.resolve()
        else:
            raise CacheServiceError(f"Unexpected member '{name}' in cache archive")

        if ".." in PurePosixPath(rest).parts:
            raise CacheServiceError(f"Cache archive member '{name}' escapes its destination")
        if base is not None:
            return base / rest
        target = Path(rest)
        # POSIX paths lost their leading '/'; Windows paths keep their drive
        return target if target.is_absolute() else Path("/") / rest

    def _extract(self, archive: Path) -> None:
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar:
                target = self._target(member.name)
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                if target.is_symlink() or target.is_file():
                    target.unlink()
                elif target.is_dir():
                    safe_rmtree(target)

                if member.issym():
                    try:
                        os.symlink(member.linkname, target)
                    except OSError as e:
                        logger.debug(f"Could not restore symlink {target}: {e}")
                elif member.isfile() or member.islnk():
                    source = tar.extractfile(member)
                    if source is None:
                        continue
                    with source, open(target, "wb") as dst:
                        shutil.copyfileobj(source, dst)
                    os.chmod(target, member.mode & 0o777)


__all__ = [
    "CacheService",
    "LocalCacheService",
    "expand_cache_paths",
    "any_path_exists",
]
