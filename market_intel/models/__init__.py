"""market-intel domain models - re-exports all public model classes.

    - cache.py   - CacheEntry, OutcomeKind, CacheStats
    - market.py  - queries, raw adapter results, resolved market sizes
"""

from __future__ import annotations

from market_intel.models.cache import CacheEntry, CacheStats, OutcomeKind
from market_intel.models.market import (
    MarketContext,
    MarketQuery,
    MockEstimate,
    ProviderAttempt,
    ProviderId,
    RawResult,
    ResolvedMarketSize,
)

__all__ = [
    "CacheEntry",
    "CacheStats",
    "MarketContext",
    "MarketQuery",
    "MockEstimate",
    "OutcomeKind",
    "ProviderAttempt",
    "ProviderId",
    "RawResult",
    "ResolvedMarketSize",
]
