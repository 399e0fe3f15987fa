"""Two-tier cache service: volatile primary, durable secondary.

Read and write paths:

  get(key)
    1. volatile tier  → fresh entry?  return it
    2. durable tier   → bounded by fallback_timeout_ms; a slow or hung
                        read is abandoned and counted as a miss
                      → fresh entry?  promote into volatile, return it
                      → stale entry?  removed lazily, miss

  set(key, value, ttl_ms, outcome)
    volatile write happens synchronously; the durable write is a
    background task (awaited inline only when there is no volatile tier).
    A durable failure never fails the set.

  invalidate / invalidate_pattern
    pending durable writes for the affected keys are awaited first so a
    late write cannot resurrect an invalidated entry; then both tiers are
    purged and the target is broadcast to sibling instances, which purge
    their own volatile tier only.  A durable read that overlaps any
    invalidation is returned to its caller but not promoted.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

from market_intel.interfaces.cache_store import IDurableStore, IVolatileStore
from market_intel.interfaces.invalidation_broadcaster import IInvalidationBroadcaster
from market_intel.models.cache import CacheEntry, CacheStats, OutcomeKind
from market_intel.utils.clock import Clock, now_ms
from market_intel.utils.errors import ConfigurationError
from market_intel.utils.logging import get_logger

DEFAULT_FALLBACK_TIMEOUT_MS = 1000


class HybridCacheService:
    """Cache façade over an optional volatile and an optional durable tier.

    At least one tier is required.  The service owns all TTL decisions:
    an entry is served iff ``now < stored_at + ttl_ms`` on the injected
    clock.
    """

    def __init__(
        self,
        volatile: IVolatileStore | None = None,
        durable: IDurableStore | None = None,
        broadcaster: IInvalidationBroadcaster | None = None,
        fallback_timeout_ms: int = DEFAULT_FALLBACK_TIMEOUT_MS,
        clock: Clock | None = None,
    ) -> None:
        if volatile is None and durable is None:
            raise ConfigurationError(message="Cache service needs at least one storage tier")
        if fallback_timeout_ms <= 0:
            raise ConfigurationError(message="fallback_timeout_ms must be positive")
        self._volatile = volatile
        self._durable = durable
        self._broadcaster = broadcaster
        self._fallback_timeout_s = fallback_timeout_ms / 1000
        self._clock = clock or now_ms
        self._logger = get_logger(__name__)
        self._pending_writes: dict[str, set[asyncio.Task[None]]] = defaultdict(set)
        self._subscribed = False
        # Bumped by every local or remote invalidation; a durable read that
        # straddles a bump must not repopulate the volatile tier.
        self._invalidation_epoch = 0

        self._hits = 0
        self._misses = 0
        self._volatile_hits = 0
        self._durable_hits = 0
        self._fallback_timeouts = 0
        self._durable_write_failures = 0
        self._last_refreshed: int | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def backend(self) -> str:
        if self._volatile is not None and self._durable is not None:
            return "hybrid"
        return "memory" if self._volatile is not None else "durable"

    def now(self) -> int:
        """Current time on the service's clock, in epoch milliseconds."""
        return self._clock()

    async def start(self) -> None:
        """Subscribe to remote invalidations, if a broadcaster is configured."""
        if self._broadcaster is not None and not self._subscribed:
            await self._broadcaster.subscribe(self._on_remote_invalidation)
            self._subscribed = True

    async def flush(self) -> None:
        """Wait for every scheduled durable write to finish."""
        tasks = [task for tasks in self._pending_writes.values() for task in tasks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        await self.flush()
        if self._broadcaster is not None:
            await self._broadcaster.close()
        if self._durable is not None:
            await self._durable.close()
        self._logger.info("cache_service_closed", backend=self.backend)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached value for *key*, or ``None`` on a miss.

        A cached confirmed absence also reads as ``None``; use
        :meth:`get_entry` to tell the two apart.
        """
        entry = await self.get_entry(key)
        return entry.value if entry is not None else None

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Return the fresh entry for *key*, or ``None`` on a miss."""
        now = self._clock()

        if self._volatile is not None:
            entry = self._volatile.get(key)
            if entry is not None:
                if entry.is_fresh(now):
                    self._hits += 1
                    self._volatile_hits += 1
                    self._logger.debug("cache_hit", key=key, tier="volatile")
                    return entry
                self._volatile.remove(key)

        if self._durable is not None:
            epoch = self._invalidation_epoch
            entry = await self._load_durable(self._durable, key)
            if entry is not None:
                if entry.is_fresh(self._clock()):
                    if self._volatile is not None and epoch == self._invalidation_epoch:
                        self._volatile.set(key, entry)
                    self._hits += 1
                    self._durable_hits += 1
                    self._logger.debug("cache_hit", key=key, tier="durable")
                    return entry
                self._logger.debug("durable_entry_expired", key=key)
                await self._durable.remove(key)

        self._misses += 1
        self._logger.debug("cache_miss", key=key)
        return None

    async def _load_durable(self, durable: IDurableStore, key: str) -> CacheEntry | None:
        try:
            return await asyncio.wait_for(durable.load(key), timeout=self._fallback_timeout_s)
        except asyncio.TimeoutError:
            self._fallback_timeouts += 1
            self._logger.warning(
                "durable_read_timeout",
                key=key,
                timeout_ms=int(self._fallback_timeout_s * 1000),
            )
            return None
        except Exception as exc:
            self._logger.warning(
                "durable_read_failed",
                key=key,
                backend=durable.get_provider_name(),
                error=f"{type(exc).__name__}: {exc}",
            )
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(
        self,
        key: str,
        value: Any,
        ttl_ms: int,
        outcome: OutcomeKind = OutcomeKind.SUCCESS,
    ) -> CacheEntry:
        """Cache *value* under *key* for *ttl_ms* milliseconds."""
        entry = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock(),
            ttl_ms=ttl_ms,
            outcome=outcome,
        )
        if self._volatile is not None:
            self._volatile.set(key, entry)

        if self._durable is not None:
            if self._volatile is None:
                await self._save_durable(self._durable, key, entry)
            else:
                self._schedule_durable_write(self._durable, key, entry)

        self._last_refreshed = entry.stored_at
        self._logger.debug("cache_set", key=key, ttl_ms=ttl_ms, outcome=outcome.value)
        return entry

    def _schedule_durable_write(self, durable: IDurableStore, key: str, entry: CacheEntry) -> None:
        task = asyncio.create_task(self._save_durable(durable, key, entry))
        pending = self._pending_writes[key]
        pending.add(task)

        def _done(finished: asyncio.Task[None]) -> None:
            pending.discard(finished)
            if not pending and self._pending_writes.get(key) is pending:
                del self._pending_writes[key]

        task.add_done_callback(_done)

    async def _save_durable(self, durable: IDurableStore, key: str, entry: CacheEntry) -> None:
        try:
            await durable.save(key, entry)
        except Exception as exc:
            self._durable_write_failures += 1
            self._logger.warning("durable_write_failed", key=key, error=str(exc))

    async def _await_pending(self, keys: list[str]) -> None:
        tasks = [task for key in keys for task in self._pending_writes.get(key, ())]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(self, key: str) -> None:
        """Remove *key* from every tier and notify sibling instances.

        A concurrent ``get`` may still see the old value while this runs;
        once it returns, the key is absent from both tiers.
        """
        self._invalidation_epoch += 1
        if self._volatile is not None:
            self._volatile.remove(key)
        if self._durable is not None:
            await self._await_pending([key])
            await self._durable.remove(key)
            if self._volatile is not None:
                self._volatile.remove(key)
        self._logger.info("cache_invalidated", key=key)
        if self._broadcaster is not None:
            await self._broadcaster.publish(key, exact=True)

    async def invalidate_pattern(self, prefix: str) -> int:
        """Remove every key starting with *prefix*; return how many were dropped."""
        self._invalidation_epoch += 1
        removed: set[str] = set()
        if self._volatile is not None:
            removed.update(_purge_prefix(self._volatile, prefix))
        if self._durable is not None:
            await self._await_pending([k for k in list(self._pending_writes) if k.startswith(prefix)])
            durable_keys = await self._durable.keys(prefix)
            for key in durable_keys:
                await self._durable.remove(key)
            removed.update(durable_keys)
            if self._volatile is not None:
                removed.update(_purge_prefix(self._volatile, prefix))
        self._logger.info("cache_pattern_invalidated", prefix=prefix, removed=len(removed))
        if self._broadcaster is not None:
            await self._broadcaster.publish(prefix, exact=False)
        return len(removed)

    async def clear_all(self) -> None:
        """Drop every entry in both tiers and tell sibling instances to do the same."""
        self._invalidation_epoch += 1
        if self._volatile is not None:
            self._volatile.clear()
        if self._durable is not None:
            await self.flush()
            await self._durable.clear_all()
            if self._volatile is not None:
                self._volatile.clear()
        self._logger.info("cache_cleared", backend=self.backend)
        if self._broadcaster is not None:
            await self._broadcaster.publish("", exact=False)

    async def _on_remote_invalidation(self, target: str, exact: bool) -> None:
        self._invalidation_epoch += 1
        if self._volatile is None:
            return
        if exact:
            self._volatile.remove(target)
            removed = 1
        else:
            removed = len(_purge_prefix(self._volatile, target))
        self._logger.debug("remote_invalidation_applied", target=target, exact=exact, removed=removed)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Run the volatile tier's expiration sweep."""
        return self._volatile.sweep() if self._volatile is not None else 0

    def get_stats(self) -> CacheStats:
        return CacheStats(
            backend=self.backend,
            hits=self._hits,
            misses=self._misses,
            volatile_hits=self._volatile_hits,
            durable_hits=self._durable_hits,
            fallback_timeouts=self._fallback_timeouts,
            durable_write_failures=self._durable_write_failures,
            volatile_size=len(self._volatile) if self._volatile is not None else 0,
            durable_enabled=self._durable is not None,
            invalidation_enabled=self._broadcaster is not None,
            last_refreshed=self._last_refreshed,
        )

    async def health_check(self) -> dict[str, Any]:
        """Report ``healthy``, ``degraded`` (durable tier down in hybrid mode)
        or ``unhealthy`` (the only tier is down)."""
        durable_ok: bool | None = None
        if self._durable is not None:
            try:
                durable_ok = await asyncio.wait_for(
                    self._durable.ping(), timeout=self._fallback_timeout_s
                )
            except asyncio.TimeoutError:
                durable_ok = False

        if durable_ok is False:
            status = "degraded" if self._volatile is not None else "unhealthy"
        else:
            status = "healthy"
        return {
            "status": status,
            "backend": self.backend,
            "durable_backend": self._durable.get_provider_name() if self._durable else None,
            "durable_reachable": durable_ok,
            "volatile_size": len(self._volatile) if self._volatile is not None else 0,
        }


def _purge_prefix(volatile: IVolatileStore, prefix: str) -> list[str]:
    keys = volatile.keys(prefix)
    for key in keys:
        volatile.remove(key)
    return keys
