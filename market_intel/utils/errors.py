"""Custom exception hierarchy for market-intel.

All application exceptions inherit from :class:`MarketIntelError`, which
carries an optional ``provider_name`` so error handlers can identify which
data source (e.g. "alpha_vantage", "fred", "world_bank") or storage tier
caused the failure.

The hierarchy mirrors the propagation policy of the orchestration layer:

    MarketIntelError  (base -- catch-all for any market-intel error)
    +-- ProviderUnavailableError (credentials/config missing; provider skipped)
    +-- RateLimitError           (provider quota exhausted; short-TTL backoff)
    +-- ProviderError            (transport or parse failure; fall through)
    +-- StorageError             (durable tier I/O failure; degrade to miss)
    +-- ConfigurationError       (startup / invalid config)
    +-- QueryValidationError     (malformed query parameters)

Only ``QueryValidationError`` and ``ConfigurationError`` ever reach the
tool layer.  Provider and storage errors are absorbed by the orchestrator
and the cache service and turned into a fallthrough, a miss, or a
disclosed low-confidence answer.
"""


class MarketIntelError(Exception):
    """Base exception for all market-intel errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets
    for structured log output, e.g. ``[alpha_vantage] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Data source errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(MarketIntelError):
    """Raised when a data source is not configured (missing API key) or disabled.

    The orchestrator skips the provider for the current call without
    caching anything.
    """

    def __init__(
        self,
        message: str = "Data source is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(MarketIntelError):
    """Raised when a data source reports that its call quota is exhausted.

    Recorded with the short RateLimited TTL so the provider is retried
    automatically after the cooldown, never within the same call.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderError(MarketIntelError):
    """Raised when a data source call fails in transport or returns garbage."""

    def __init__(
        self,
        message: str = "Data source request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class StorageError(MarketIntelError):
    """Raised inside a durable store when the backing medium fails.

    Stores log it and degrade the operation to a miss or a no-op; it is
    never raised to callers of the cache service.
    """

    def __init__(
        self,
        message: str = "Durable storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration / caller errors
# ---------------------------------------------------------------------------

class ConfigurationError(MarketIntelError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QueryValidationError(MarketIntelError):
    """Raised when a caller supplies malformed query parameters."""

    def __init__(
        self,
        message: str = "Invalid market query",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
