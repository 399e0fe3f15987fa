"""Utility modules for market-intel.

- **errors** -- exception hierarchy rooted at MarketIntelError.
- **logging** -- structlog setup with console/JSON dual renderer.
- **cache_keys** -- deterministic, order-independent cache keys.
- **identifier_patterns** -- identifier shape matchers for provider routing.
- **clock** -- millisecond clock used for every TTL decision.
"""

# -- Domain exception hierarchy --------------------------------------------
from market_intel.utils.errors import (
    ConfigurationError,
    MarketIntelError,
    ProviderError,
    ProviderUnavailableError,
    QueryValidationError,
    RateLimitError,
    StorageError,
)

# -- Structured logging setup ----------------------------------------------
from market_intel.utils.logging import configure_logging, get_logger

# -- Cache keys and clock ---------------------------------------------------
from market_intel.utils.cache_keys import build_cache_key, namespace_prefix
from market_intel.utils.clock import now_ms

__all__ = [
    "ConfigurationError",
    "MarketIntelError",
    "ProviderError",
    "ProviderUnavailableError",
    "QueryValidationError",
    "RateLimitError",
    "StorageError",
    "build_cache_key",
    "configure_logging",
    "get_logger",
    "namespace_prefix",
    "now_ms",
]
