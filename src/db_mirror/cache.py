"""Process-wide read-through cache for the materials list.

The materials list is the most frequently read table.  Every write path that
touches it (material create/update/delete, restore, sync) must call
``invalidate()`` before reporting success.  Invalidation is synchronous and
unconditional, independent of the entry's age.

Usage:
    from db_mirror.cache import get_materials_cache

    cache = get_materials_cache()
    rows = cache.get()
    if rows is None:
        rows = await adapter.select("html_files", "*")
        cache.set(rows)
"""

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from db_mirror.catalog import MATERIALS_TABLE

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


@dataclass
class CacheEntry:
    data: list[dict]
    timestamp: float


class MaterialsCache:
    """Single-entry cache with a time-to-live.

    No lock: a stale read right after a concurrent invalidate-then-repopulate
    is bounded by the TTL.

    Args:
        ttl_seconds: Maximum age of a valid entry.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock=time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: CacheEntry | None = None

    def get(self) -> list[dict] | None:
        """Return cached rows, or ``None`` if empty or expired."""
        if self._entry is None:
            return None
        if self._clock() - self._entry.timestamp > self.ttl_seconds:
            self._entry = None
            return None
        return self._entry.data

    def set(self, rows: Sequence[dict]) -> None:
        """Replace the entry with a copy of ``rows`` stamped now."""
        self._entry = CacheEntry(data=list(rows), timestamp=self._clock())

    def invalidate(self) -> None:
        """Drop the entry regardless of age."""
        self._entry = None

    def is_valid(self) -> bool:
        return (
            self._entry is not None
            and self._clock() - self._entry.timestamp <= self.ttl_seconds
        )


_cache: MaterialsCache | None = None


def get_materials_cache() -> MaterialsCache:
    """Return the process-wide cache, creating it on first use."""
    global _cache
    if _cache is None:
        _cache = MaterialsCache()
    return _cache


def configure_materials_cache(ttl_seconds: float) -> MaterialsCache:
    """Replace the process-wide cache with one using ``ttl_seconds``."""
    global _cache
    _cache = MaterialsCache(ttl_seconds)
    return _cache


def invalidate_tables(tables: Iterable[str], cache: MaterialsCache | None = None) -> bool:
    """Invalidate the materials cache if ``tables`` includes the materials table.

    Returns:
        ``True`` if the cache was invalidated.
    """
    if MATERIALS_TABLE not in set(tables):
        return False
    (cache or get_materials_cache()).invalidate()
    logger.debug("Materials cache invalidated")
    return True
