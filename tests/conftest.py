"""Shared pytest fixtures for the market-intel test suite."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from typing import Any

import pytest

from market_intel.interfaces.cache_store import IDurableStore
from market_intel.interfaces.data_source_provider import IDataSourceProvider, ProviderDescriptor
from market_intel.models.cache import CacheEntry
from market_intel.models.market import MarketContext, ProviderId, RawResult
from market_intel.providers.cache.memory_store import MemoryCacheStore
from market_intel.services.cache_service import HybridCacheService
from market_intel.utils.logging import configure_logging

START_MS = 1_700_000_000_000


@pytest.fixture(autouse=True)
def _logging_outlives_capture(monkeypatch: pytest.MonkeyPatch):
    """Rebind logging to the real stderr after each test.

    A test that (re)configures logging binds it to pytest's per-test capture
    stream, which is closed once that test ends.
    """
    yield
    with monkeypatch.context() as patch:
        patch.setattr(sys, "stderr", sys.__stderr__)
        configure_logging("INFO", json_output=False)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Durable store double
# ---------------------------------------------------------------------------


class InMemoryDurableStore(IDurableStore):
    """Dict-backed durable store with optional artificial latency."""

    def __init__(
        self,
        save_delay: float = 0.0,
        load_delay: float = 0.0,
        healthy: bool = True,
        remove_delay: float = 0.0,
    ) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.save_delay = save_delay
        self.load_delay = load_delay
        self.remove_delay = remove_delay
        self.healthy = healthy
        self.save_calls = 0
        self.load_calls = 0
        self.closed = False

    async def save(self, key: str, entry: CacheEntry) -> None:
        self.save_calls += 1
        if self.save_delay:
            await asyncio.sleep(self.save_delay)
        self.records[key] = entry.to_record()

    async def load(self, key: str) -> CacheEntry | None:
        self.load_calls += 1
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        record = self.records.get(key)
        return CacheEntry.from_record(record) if record is not None else None

    async def remove(self, key: str) -> None:
        if self.remove_delay:
            await asyncio.sleep(self.remove_delay)
        self.records.pop(key, None)

    async def clear_all(self) -> None:
        self.records.clear()

    async def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self.records if k.startswith(prefix)]

    async def ping(self) -> bool:
        return self.healthy

    def get_provider_name(self) -> str:
        return "in_memory"

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def durable_store() -> InMemoryDurableStore:
    return InMemoryDurableStore()


# ---------------------------------------------------------------------------
# Cache services
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_cache(clock: FakeClock) -> HybridCacheService:
    """Volatile-only cache service on the fake clock."""
    return HybridCacheService(volatile=MemoryCacheStore(clock=clock), clock=clock)


@pytest.fixture
def hybrid_cache(clock: FakeClock, durable_store: InMemoryDurableStore) -> HybridCacheService:
    """Volatile + in-memory durable cache service on the fake clock."""
    return HybridCacheService(
        volatile=MemoryCacheStore(clock=clock),
        durable=durable_store,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Data source doubles
# ---------------------------------------------------------------------------

Script = RawResult | BaseException | Callable[[str, MarketContext], RawResult]


class FakeDataSource(IDataSourceProvider):
    """Scripted data source.

    *script* is returned (or raised) on every call; a callable is invoked
    with ``(identifier, context)``.  ``calls`` records every identifier.
    """

    def __init__(
        self,
        name: str,
        script: Script | None = None,
        available: bool = True,
        delay: float = 0.0,
    ) -> None:
        self._name = name
        self.script: Script = script if script is not None else RawResult()
        self.available = available
        self.delay = delay
        self.calls: list[str] = []

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self.available

    async def fetch_market_size(self, identifier: str, context: MarketContext) -> RawResult:
        self.calls.append(identifier)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.script, BaseException):
            raise self.script
        if callable(self.script):
            return self.script(identifier, context)
        return self.script


def make_descriptor(
    provider_id: ProviderId,
    adapter: IDataSourceProvider,
    priority: int,
    matcher: Callable[[str], bool] = lambda _identifier: True,
) -> ProviderDescriptor:
    return ProviderDescriptor(
        provider_id=provider_id, priority=priority, matcher=matcher, adapter=adapter
    )
