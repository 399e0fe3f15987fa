"""Abstract base classes for the two cache tiers.

The volatile tier is an in-process map and is therefore synchronous; the
durable tier may sit on a disk, a database or a network service, so every
operation is async.  Neither tier interprets TTLs for serving decisions:
the cache service compares ``stored_at + ttl_ms`` against its clock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from market_intel.models.cache import CacheEntry


class IVolatileStore(ABC):
    """Contract for the fast, ephemeral, in-memory tier."""

    @abstractmethod
    def set(self, key: str, entry: CacheEntry) -> None:
        """Store *entry* under *key*, replacing any previous entry."""

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        """Return the entry under *key*, or ``None`` if absent."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove *key*; a no-op if it is absent."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Return ``True`` if an entry is stored under *key*."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry at once."""

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """Return the stored keys starting with *prefix*."""

    @abstractmethod
    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""

    @abstractmethod
    def __len__(self) -> int: ...


class IDurableStore(ABC):
    """Contract for the persistent (disk, database or networked) tier.

    Implementations must never raise because of the backing medium: a
    failed read returns ``None``, a failed write or delete is logged and
    ignored.  A durable-tier outage removes the benefit of persistence but
    never breaks a caller.
    """

    @abstractmethod
    async def save(self, key: str, entry: CacheEntry) -> None:
        """Persist *entry* under *key* (last write wins)."""

    @abstractmethod
    async def load(self, key: str) -> CacheEntry | None:
        """Return the persisted entry for *key*, or ``None`` if absent/unreadable."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete the record for *key*; a no-op if absent."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Delete every record owned by this store."""

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """Return the raw keys of all records starting with *prefix*."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` if the backing medium is reachable."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short backend name (``"file"``, ``"sqlite"``, ``"redis"``)."""

    async def close(self) -> None:
        """Release connections / handles.  Default: nothing to release."""
