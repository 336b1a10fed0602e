"""
Cache restore/save lifecycle.

State machine::

    NOT_STARTED -> RESTORING -> HIT | PARTIAL | MISS -> SAVING -> SAVED
                                                     \\-> SKIPPED
    DISABLED (caching turned off; restore and save do nothing)

Cache failures never fail a job: a broken restore is a miss and a broken
save is a warning.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from runtimekit.cache.service import CacheService, any_path_exists
from runtimekit.core.exceptions import CacheServiceError

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    NOT_STARTED = "not-started"
    RESTORING = "restoring"
    HIT = "hit"
    PARTIAL = "partial"
    MISS = "miss"
    SAVING = "saving"
    SAVED = "saved"
    SKIPPED = "skipped"
    DISABLED = "disabled"


class CacheOutcome(str, Enum):
    """Value of the ``cache-hit`` output."""

    HIT = "true"
    PARTIAL = "partial"
    MISS = "false"
    NOT_APPLICABLE = "n/a"

    def __str__(self) -> str:
        return self.value


class CacheManager:
    """
    Drives one job's cache restore and save.

    Args:
        service: Cache backend; ignored when disabled
        project_root: Directory relative cache paths are resolved against
        enabled: False turns every operation into a no-op
        warn: Receives warning messages (default: logger.warning)

    Example:
        >>> manager = CacheManager(LocalCacheService(), Path('.'))
        >>> manager.restore(key.primary_key, key.fallback_key, paths)
        <CacheOutcome.PARTIAL: 'partial'>
    """

    def __init__(
        self,
        service: Optional[CacheService],
        project_root: Path,
        enabled: bool = True,
        warn: Optional[Callable[[str], None]] = None,
    ):
        self.service = service
        self.project_root = Path(project_root)
        self.enabled = enabled and service is not None
        self.warn = warn or logger.warning
        self.state = CacheState.NOT_STARTED if self.enabled else CacheState.DISABLED
        self.outcome = CacheOutcome.NOT_APPLICABLE
        self.matched_key: Optional[str] = None

    def restore(
        self,
        primary_key: str,
        fallback_key: str,
        paths: Sequence[str],
        salted: bool = False,
    ) -> CacheOutcome:
        """
        Restore the best matching cache entry.

        Args:
            primary_key: Exact key
            fallback_key: Prefix tried after the exact key
            paths: Paths the entry covers
            salted: Salted keys never fall back to a prefix match

        Returns:
            HIT for the exact key, PARTIAL for a prefix match, MISS otherwise,
            NOT_APPLICABLE when caching is disabled
        """
        if not self.enabled:
            logger.info("Caching disabled")
            return CacheOutcome.NOT_APPLICABLE

        self.state = CacheState.RESTORING
        restore_keys = [] if salted else [fallback_key]
        logger.info(f"Restoring cache with key {primary_key}")

        try:
            self.matched_key = self.service.restore(list(paths), primary_key, restore_keys)
        except (CacheServiceError, OSError) as e:
            self.warn(f"Cache restore failed: {e}")
            self.matched_key = None

        if self.matched_key is None:
            logger.info("Cache not found")
            self.state, self.outcome = CacheState.MISS, CacheOutcome.MISS
        elif self.matched_key == primary_key:
            logger.info(f"Cache restored from key: {self.matched_key}")
            self.state, self.outcome = CacheState.HIT, CacheOutcome.HIT
        else:
            logger.info(f"Cache partially restored from key: {self.matched_key}")
            self.state, self.outcome = CacheState.PARTIAL, CacheOutcome.PARTIAL
        return self.outcome

    def save(
        self,
        primary_key: str,
        paths: Sequence[str],
        matched_key: Optional[str] = None,
    ) -> bool:
        """
        Save paths under the primary key.

        Skipped when the primary key was restored exactly or no path exists.

        Args:
            primary_key: Key to save under
            paths: Paths to save
            matched_key: Key restored earlier in the job (default: from this
                manager's own restore)

        Returns:
            True if an entry was written
        """
        if not self.enabled:
            return False

        matched = matched_key if matched_key is not None else self.matched_key
        if matched == primary_key:
            logger.info(f"Cache hit occurred on primary key {primary_key}, not saving cache")
            self.state = CacheState.SKIPPED
            return False

        if not any_path_exists(paths, self.project_root):
            logger.info("No cache paths exist, skipping cache save")
            self.state = CacheState.SKIPPED
            return False

        self.state = CacheState.SAVING
        logger.info(f"Saving cache with key {primary_key}")
        try:
            self.service.save(list(paths), primary_key)
        except (CacheServiceError, OSError) as e:
            self.warn(f"Failed to save cache: {e}")
            self.state = CacheState.SKIPPED
            return False

        self.state = CacheState.SAVED
        return True


__all__ = ["CacheState", "CacheOutcome", "CacheManager"]
