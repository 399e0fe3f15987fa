"""Cache tier implementations: one volatile store, three durable stores."""

from market_intel.providers.cache.file_store import FileDurableStore
from market_intel.providers.cache.memory_store import MemoryCacheStore
from market_intel.providers.cache.redis_store import RedisDurableStore
from market_intel.providers.cache.sqlite_store import SQLiteDurableStore

__all__ = [
    "FileDurableStore",
    "MemoryCacheStore",
    "RedisDurableStore",
    "SQLiteDurableStore",
]
