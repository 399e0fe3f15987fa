"""In-memory volatile cache tier using cachetools.TLRUCache.

Each entry expires at its own ``stored_at + ttl_ms`` instant, measured on
the same millisecond clock the cache service uses, so the store's built-in
expiry and the service's freshness check always agree.  ``maxsize`` is only
a memory guard; TLRUCache drops expired items before evicting live ones.
"""

from __future__ import annotations

from typing import Any

import structlog
from cachetools import TLRUCache

from market_intel.interfaces.cache_store import IVolatileStore
from market_intel.models.cache import CacheEntry
from market_intel.utils.clock import Clock, now_ms

logger = structlog.get_logger(logger_name=__name__)


def _entry_expiry(_key: str, entry: CacheEntry, _now: Any) -> int:
    return entry.expires_at


class MemoryCacheStore(IVolatileStore):
    """Volatile tier backed by ``cachetools.TLRUCache``.

    Parameters
    ----------
    max_entries:
        Capacity guard.  When full, expired entries go first, then the
        least recently used one.
    clock:
        Millisecond clock; defaults to wall-clock time.
    """

    def __init__(self, max_entries: int = 10_000, clock: Clock | None = None) -> None:
        self._clock = clock or now_ms
        self._cache: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=max_entries, ttu=_entry_expiry, timer=self._clock
        )

    # ------------------------------------------------------------------
    # IVolatileStore implementation
    # ------------------------------------------------------------------

    def set(self, key: str, entry: CacheEntry) -> None:
        self._cache[key] = entry
        logger.debug("volatile_set", key=key, ttl_ms=entry.ttl_ms)

    def get(self, key: str) -> CacheEntry | None:
        return self._cache.get(key)

    def remove(self, key: str) -> None:
        self._cache.pop(key, None)

    def has(self, key: str) -> bool:
        return key in self._cache

    def clear(self) -> None:
        # Swap in a fresh cache in one assignment; readers never see a partial clear.
        self._cache = TLRUCache(
            maxsize=self._cache.maxsize, ttu=_entry_expiry, timer=self._clock
        )

    def keys(self, prefix: str = "") -> list[str]:
        self._cache.expire()
        return [key for key in list(self._cache.keys()) if key.startswith(prefix)]

    def sweep(self) -> int:
        """Run the built-in expiration sweep and return the number dropped."""
        before = len(self._cache)
        self._cache.expire()
        removed = before - len(self._cache)
        if removed:
            logger.debug("volatile_sweep", removed=removed)
        return removed

    def __len__(self) -> int:
        return len(self._cache)
