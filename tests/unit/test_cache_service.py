"""Unit tests for the two-tier HybridCacheService."""

from __future__ import annotations

import asyncio
import time

import pytest

from market_intel.models.cache import CacheEntry, OutcomeKind
from market_intel.providers.cache.memory_store import MemoryCacheStore
from market_intel.services.cache_service import HybridCacheService
from market_intel.utils.errors import ConfigurationError
from tests.conftest import FakeClock, InMemoryDurableStore


class _BrokenDurableStore(InMemoryDurableStore):
    async def save(self, key: str, entry: CacheEntry) -> None:
        raise RuntimeError("disk on fire")


class _UndecodableDurableStore(InMemoryDurableStore):
    async def load(self, key: str) -> CacheEntry | None:
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


class _SnapshotDurableStore(InMemoryDurableStore):
    """Reads the record first, then stalls before handing it back."""

    async def load(self, key: str) -> CacheEntry | None:
        record = self.records.get(key)
        await asyncio.sleep(0.05)
        return CacheEntry.from_record(record) if record is not None else None


def _hybrid(clock: FakeClock, durable: InMemoryDurableStore) -> HybridCacheService:
    return HybridCacheService(volatile=MemoryCacheStore(clock=clock), durable=durable, clock=clock)


# ======================================================================
# Construction
# ======================================================================


class TestConstruction:
    def test_requires_a_tier(self) -> None:
        with pytest.raises(ConfigurationError):
            HybridCacheService()

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ConfigurationError):
            HybridCacheService(volatile=MemoryCacheStore(), fallback_timeout_ms=0)

    def test_backend_names(self, clock: FakeClock) -> None:
        durable = InMemoryDurableStore()
        assert HybridCacheService(volatile=MemoryCacheStore(clock=clock)).backend == "memory"
        assert HybridCacheService(durable=durable).backend == "durable"
        assert (
            HybridCacheService(volatile=MemoryCacheStore(clock=clock), durable=durable).backend
            == "hybrid"
        )


# ======================================================================
# Reads and writes
# ======================================================================


class TestGetSet:
    @pytest.mark.asyncio
    async def test_set_then_get(self, memory_cache: HybridCacheService) -> None:
        entry = await memory_cache.set("k", {"value": 1}, ttl_ms=1_000)
        assert entry.outcome == OutcomeKind.SUCCESS
        assert await memory_cache.get("k") == {"value": 1}

    @pytest.mark.asyncio
    async def test_miss(self, memory_cache: HybridCacheService) -> None:
        assert await memory_cache.get("absent") is None
        assert memory_cache.get_stats().misses == 1

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(
        self, memory_cache: HybridCacheService, clock: FakeClock
    ) -> None:
        await memory_cache.set("k", "v", ttl_ms=1_000)
        clock.advance(999)
        assert await memory_cache.get("k") == "v"
        clock.advance(1)
        assert await memory_cache.get("k") is None

    @pytest.mark.asyncio
    async def test_set_is_idempotent(self, memory_cache: HybridCacheService) -> None:
        await memory_cache.set("k", "v", ttl_ms=1_000)
        await memory_cache.set("k", "v", ttl_ms=1_000)
        assert await memory_cache.get("k") == "v"
        assert memory_cache.get_stats().volatile_size == 1

    @pytest.mark.asyncio
    async def test_no_data_entry_is_distinguishable_from_miss(
        self, memory_cache: HybridCacheService
    ) -> None:
        await memory_cache.set("k", None, ttl_ms=1_000, outcome=OutcomeKind.NO_DATA)
        entry = await memory_cache.get_entry("k")
        assert entry is not None
        assert entry.value is None
        assert entry.outcome == OutcomeKind.NO_DATA
        assert await memory_cache.get_entry("other") is None

    @pytest.mark.asyncio
    async def test_hybrid_writes_reach_durable_tier(
        self, hybrid_cache: HybridCacheService, durable_store: InMemoryDurableStore
    ) -> None:
        await hybrid_cache.set("k", "v", ttl_ms=1_000)
        await hybrid_cache.flush()
        assert "k" in durable_store.records

    @pytest.mark.asyncio
    async def test_durable_only_mode_writes_inline(self, clock: FakeClock) -> None:
        durable = InMemoryDurableStore()
        cache = HybridCacheService(durable=durable, clock=clock)
        await cache.set("k", "v", ttl_ms=1_000)
        assert "k" in durable.records
        assert await cache.get("k") == "v"
        clock.advance(1_000)
        assert await cache.get("k") is None
        assert "k" not in durable.records

    @pytest.mark.asyncio
    async def test_durable_hit_is_promoted(
        self,
        hybrid_cache: HybridCacheService,
        durable_store: InMemoryDurableStore,
        clock: FakeClock,
    ) -> None:
        entry = CacheEntry(key="k", value="v", stored_at=clock(), ttl_ms=1_000)
        durable_store.records["k"] = entry.to_record()

        assert await hybrid_cache.get("k") == "v"
        assert await hybrid_cache.get("k") == "v"

        stats = hybrid_cache.get_stats()
        assert stats.durable_hits == 1
        assert stats.volatile_hits == 1
        assert durable_store.load_calls == 1

    @pytest.mark.asyncio
    async def test_stale_durable_entry_is_removed(
        self,
        hybrid_cache: HybridCacheService,
        durable_store: InMemoryDurableStore,
        clock: FakeClock,
    ) -> None:
        stale = CacheEntry(key="k", value="v", stored_at=clock() - 5_000, ttl_ms=1_000)
        durable_store.records["k"] = stale.to_record()

        assert await hybrid_cache.get("k") is None
        assert "k" not in durable_store.records

    @pytest.mark.asyncio
    async def test_durable_write_failure_does_not_fail_set(self, clock: FakeClock) -> None:
        cache = HybridCacheService(
            volatile=MemoryCacheStore(clock=clock), durable=_BrokenDurableStore(), clock=clock
        )
        await cache.set("k", "v", ttl_ms=1_000)
        await cache.flush()
        assert await cache.get("k") == "v"
        assert cache.get_stats().durable_write_failures == 1

    @pytest.mark.asyncio
    async def test_last_refreshed_tracks_writes(
        self, memory_cache: HybridCacheService, clock: FakeClock
    ) -> None:
        assert memory_cache.get_stats().last_refreshed is None
        await memory_cache.set("k", "v", ttl_ms=1_000)
        assert memory_cache.get_stats().last_refreshed == clock()


# ======================================================================
# Durable read timeout
# ======================================================================


class TestFallbackTimeout:
    @pytest.mark.asyncio
    async def test_hung_durable_read_abandoned_after_one_second(self, clock: FakeClock) -> None:
        durable = InMemoryDurableStore(load_delay=5.0)
        durable.records["k"] = CacheEntry(
            key="k", value="v", stored_at=clock(), ttl_ms=60_000
        ).to_record()
        cache = HybridCacheService(
            volatile=MemoryCacheStore(clock=clock), durable=durable, clock=clock
        )

        started = time.monotonic()
        result = await cache.get("k")
        elapsed = time.monotonic() - started

        assert result is None
        assert 0.9 <= elapsed < 2.5
        stats = cache.get_stats()
        assert stats.fallback_timeouts == 1
        assert stats.misses == 1

    @pytest.mark.asyncio
    async def test_custom_timeout(self, clock: FakeClock) -> None:
        durable = InMemoryDurableStore(load_delay=1.0)
        cache = HybridCacheService(durable=durable, fallback_timeout_ms=50, clock=clock)

        started = time.monotonic()
        assert await cache.get("k") is None
        assert time.monotonic() - started < 0.5
        assert cache.get_stats().fallback_timeouts == 1

    @pytest.mark.asyncio
    async def test_durable_read_error_is_a_miss(self, clock: FakeClock) -> None:
        cache = _hybrid(clock, _UndecodableDurableStore())

        assert await cache.get("k") is None
        stats = cache.get_stats()
        assert stats.misses == 1
        assert stats.fallback_timeouts == 0


# ======================================================================
# Invalidation
# ======================================================================


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_memory(self, memory_cache: HybridCacheService) -> None:
        await memory_cache.set("k", "v", ttl_ms=1_000)
        await memory_cache.invalidate("k")
        assert await memory_cache.get("k") is None

    @pytest.mark.asyncio
    async def test_invalidate_hybrid_clears_both_tiers(
        self, hybrid_cache: HybridCacheService, durable_store: InMemoryDurableStore
    ) -> None:
        await hybrid_cache.set("k", "v", ttl_ms=1_000)
        await hybrid_cache.flush()
        await hybrid_cache.invalidate("k")
        assert await hybrid_cache.get("k") is None
        assert "k" not in durable_store.records

    @pytest.mark.asyncio
    async def test_invalidate_missing_key_is_a_no_op(
        self, hybrid_cache: HybridCacheService
    ) -> None:
        await hybrid_cache.invalidate("never-set")
        await hybrid_cache.invalidate("never-set")

    @pytest.mark.asyncio
    async def test_pending_write_cannot_resurrect_invalidated_key(self, clock: FakeClock) -> None:
        durable = InMemoryDurableStore(save_delay=0.05)
        cache = HybridCacheService(
            volatile=MemoryCacheStore(clock=clock), durable=durable, clock=clock
        )
        await cache.set("k", "v", ttl_ms=60_000)
        await cache.invalidate("k")
        await cache.flush()
        await asyncio.sleep(0.1)

        assert "k" not in durable.records
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_get_during_slow_durable_remove_does_not_resurrect(
        self, clock: FakeClock
    ) -> None:
        cache = _hybrid(clock, InMemoryDurableStore(remove_delay=0.05))
        await cache.set("k", "stale", ttl_ms=86_400_000)
        await cache.flush()

        invalidation = asyncio.create_task(cache.invalidate("k"))
        await asyncio.sleep(0.01)
        await cache.get("k")
        await invalidation

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_get_during_slow_pattern_invalidation_does_not_resurrect(
        self, clock: FakeClock
    ) -> None:
        cache = _hybrid(clock, InMemoryDurableStore(remove_delay=0.05))
        await cache.set("alpha_vantage:AAPL", "stale", ttl_ms=86_400_000)
        await cache.flush()

        invalidation = asyncio.create_task(cache.invalidate_pattern("alpha_vantage:"))
        await asyncio.sleep(0.01)
        await cache.get("alpha_vantage:AAPL")
        assert await invalidation == 1

        assert await cache.get("alpha_vantage:AAPL") is None

    @pytest.mark.asyncio
    async def test_durable_read_overlapping_invalidate_is_not_promoted(
        self, clock: FakeClock
    ) -> None:
        durable = _SnapshotDurableStore()
        writer = _hybrid(clock, durable)
        await writer.set("k", "stale", ttl_ms=86_400_000)
        await writer.flush()
        cache = _hybrid(clock, durable)

        read = asyncio.create_task(cache.get("k"))
        await asyncio.sleep(0.01)
        await cache.invalidate("k")

        assert await read == "stale"
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_invalidate_pattern(
        self, hybrid_cache: HybridCacheService, durable_store: InMemoryDurableStore
    ) -> None:
        for key in ("av_OVERVIEW_AAPL", "av_OVERVIEW_MSFT", "fred_GDP"):
            await hybrid_cache.set(key, key, ttl_ms=60_000)

        removed = await hybrid_cache.invalidate_pattern("av_OVERVIEW_")

        assert removed == 2
        assert await hybrid_cache.get("av_OVERVIEW_AAPL") is None
        assert await hybrid_cache.get("av_OVERVIEW_MSFT") is None
        assert await hybrid_cache.get("fred_GDP") == "fred_GDP"
        await hybrid_cache.flush()
        assert sorted(durable_store.records) == ["fred_GDP"]

    @pytest.mark.asyncio
    async def test_invalidate_pattern_no_match(self, memory_cache: HybridCacheService) -> None:
        await memory_cache.set("fred_GDP", 1, ttl_ms=1_000)
        assert await memory_cache.invalidate_pattern("census_") == 0
        assert await memory_cache.get("fred_GDP") == 1

    @pytest.mark.asyncio
    async def test_clear_all(
        self, hybrid_cache: HybridCacheService, durable_store: InMemoryDurableStore
    ) -> None:
        await hybrid_cache.set("a", 1, ttl_ms=1_000)
        await hybrid_cache.set("b", 2, ttl_ms=1_000)
        await hybrid_cache.clear_all()
        assert durable_store.records == {}
        assert hybrid_cache.get_stats().volatile_size == 0


# ======================================================================
# Diagnostics
# ======================================================================


class TestDiagnostics:
    @pytest.mark.asyncio
    async def test_sweep_expired(self, memory_cache: HybridCacheService, clock: FakeClock) -> None:
        await memory_cache.set("a", 1, ttl_ms=10)
        await memory_cache.set("b", 2, ttl_ms=10_000)
        clock.advance(100)
        assert memory_cache.sweep_expired() == 1

    @pytest.mark.asyncio
    async def test_hit_rate(self, memory_cache: HybridCacheService) -> None:
        await memory_cache.set("a", 1, ttl_ms=1_000)
        await memory_cache.get("a")
        await memory_cache.get("missing")
        stats = memory_cache.get_stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5

    @pytest.mark.asyncio
    async def test_health_healthy(self, hybrid_cache: HybridCacheService) -> None:
        health = await hybrid_cache.health_check()
        assert health["status"] == "healthy"
        assert health["durable_backend"] == "in_memory"
        assert health["durable_reachable"] is True

    @pytest.mark.asyncio
    async def test_health_degraded_when_durable_down(self, clock: FakeClock) -> None:
        cache = HybridCacheService(
            volatile=MemoryCacheStore(clock=clock),
            durable=InMemoryDurableStore(healthy=False),
            clock=clock,
        )
        assert (await cache.health_check())["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_health_unhealthy_when_only_tier_down(self) -> None:
        cache = HybridCacheService(durable=InMemoryDurableStore(healthy=False))
        assert (await cache.health_check())["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_health_memory_only(self, memory_cache: HybridCacheService) -> None:
        health = await memory_cache.health_check()
        assert health["status"] == "healthy"
        assert health["durable_backend"] is None

    @pytest.mark.asyncio
    async def test_close_flushes_and_closes_durable(
        self, hybrid_cache: HybridCacheService, durable_store: InMemoryDurableStore
    ) -> None:
        await hybrid_cache.set("k", "v", ttl_ms=1_000)
        await hybrid_cache.close()
        assert "k" in durable_store.records
        assert durable_store.closed
