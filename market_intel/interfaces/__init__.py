"""Public interface definitions for every swappable component.

Concrete adapters live in ``market_intel/providers/`` and are injected at
startup by ``market_intel/main.py``, so unit tests can substitute fakes.

    Interface                  →  Concrete implementations
    ─────────────────────────────────────────────────────────────────
    IDataSourceProvider        →  AlphaVantageProvider, CensusProvider,
                                  FredProvider, WorldBankProvider
    IVolatileStore             →  MemoryCacheStore
    IDurableStore              →  FileDurableStore, SQLiteDurableStore,
                                  RedisDurableStore
    IInvalidationBroadcaster   →  LocalInvalidationBroadcaster,
                                  RedisInvalidationBroadcaster
"""

from market_intel.interfaces.cache_store import IDurableStore, IVolatileStore
from market_intel.interfaces.data_source_provider import IDataSourceProvider, ProviderDescriptor
from market_intel.interfaces.invalidation_broadcaster import (
    IInvalidationBroadcaster,
    InvalidationHandler,
)

__all__ = [
    "IDataSourceProvider",
    "IDurableStore",
    "IInvalidationBroadcaster",
    "IVolatileStore",
    "InvalidationHandler",
    "ProviderDescriptor",
]
