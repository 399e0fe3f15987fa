"""Cache entry models shared by every cache tier.

A :class:`CacheEntry` is the unit stored in both the volatile and the
durable tier.  It records *what* a provider answered (``value``), *how* the
call ended (``outcome``) and *how long* the answer may be trusted
(``stored_at`` + ``ttl_ms``).

An entry whose ``value`` is ``None`` and whose outcome is
:attr:`OutcomeKind.NO_DATA` is a real, cacheable fact: the provider
confirmed it has nothing for the query.  It is not the same thing as a
cache miss, which is the absence of any entry.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OutcomeKind(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """How a provider call ended.

    The outcome selects the TTL class of the cached entry: long for
    confirmed values, medium for confirmed absence, short for failures so
    they heal quickly.
    """

    SUCCESS = "Success"            # provider returned a usable value
    NO_DATA = "NoData"             # provider confirmed it has nothing
    RATE_LIMITED = "RateLimited"   # provider quota exhausted
    ERROR = "Error"                # transport / parse failure or crash


class CacheEntry(BaseModel):
    """One cached provider answer with its own expiry."""

    model_config = ConfigDict(frozen=True)

    # Raw cache key this entry is stored under; kept in the record so durable
    # backends can enumerate keys without a manifest.
    key: str
    # Cached payload.  ``None`` is legal (confirmed NoData).
    value: Any = None
    # Epoch milliseconds at which the entry was written.
    stored_at: int = Field(ge=0)
    # Lifetime in milliseconds, counted from ``stored_at``.
    ttl_ms: int = Field(ge=0)
    outcome: OutcomeKind = OutcomeKind.SUCCESS

    @property
    def expires_at(self) -> int:
        """Epoch milliseconds at which the entry stops being served."""
        return self.stored_at + self.ttl_ms

    def is_fresh(self, now_ms: int) -> bool:
        return now_ms < self.expires_at

    def remaining_ms(self, now_ms: int) -> int:
        return max(0, self.expires_at - now_ms)

    def to_record(self) -> dict[str, Any]:
        """Return a JSON-compatible dict suitable for a durable record."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CacheEntry:
        return cls.model_validate(record)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str | bytes) -> CacheEntry:
        return cls.model_validate_json(payload)


class CacheStats(BaseModel):
    """Counters reported by the cache service for health and diagnostics."""

    model_config = ConfigDict(frozen=True)

    backend: str
    hits: int = 0
    misses: int = 0
    volatile_hits: int = 0
    durable_hits: int = 0
    fallback_timeouts: int = 0
    durable_write_failures: int = 0
    volatile_size: int = 0
    durable_enabled: bool = False
    invalidation_enabled: bool = False
    # Epoch milliseconds of the last successful ``set``; ``None`` if never.
    last_refreshed: int | None = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0
