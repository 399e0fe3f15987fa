"""Market-size orchestrator: priority waterfall across data sources.

How a resolve works:

  resolve("AAPL", region=US, currency=USD)
    1. market-level key  market_size:{...}   → cached Success? return it
    2. waterfall, strictly sequential:
         matching providers (priority order), then the non-matching ones
         for each available provider:
           provider-level key  <provider>:{...}
             cached Success       → winner
             cached NoData/Error/RateLimited → skip until its TTL lapses
             miss                 → fetch, classify, cache with the
                                    outcome's TTL (failures included)
    3. first Success is cached at market level and returned
    4. nothing succeeded → pre-defined estimate (source="mock"), or
       value=None/source="none" when no estimate exists; never cached
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from market_intel.interfaces.data_source_provider import ProviderDescriptor
from market_intel.models.cache import OutcomeKind
from market_intel.models.market import (
    MOCK_SOURCE,
    NO_SOURCE,
    MarketContext,
    MarketQuery,
    ProviderAttempt,
    RawResult,
    ResolvedMarketSize,
)
from market_intel.services.cache_service import HybridCacheService
from market_intel.services.mock_estimates import MockEstimateTable
from market_intel.services.outcome_classifier import OutcomeClassifier
from market_intel.utils.cache_keys import build_cache_key, namespace_prefix
from market_intel.utils.errors import ConfigurationError, ProviderUnavailableError
from market_intel.utils.logging import get_logger

MARKET_NAMESPACE = "market_size"


class MarketSizeOrchestrator:
    """Resolves a market identifier to a value through cached data sources.

    Parameters
    ----------
    cache:
        The cache service shared by every attempt.  Each orchestrator gets
        its cache explicitly; nothing is cached at module level.
    descriptors:
        The provider priority table.  Order is fixed at construction.
    classifier:
        Outcome classifier carrying the TTL policy.
    mock_estimates:
        Last-resort estimates.
    single_flight:
        When True, concurrent resolves for the same query share one
        in-flight waterfall instead of each calling the providers.
    """

    def __init__(
        self,
        cache: HybridCacheService,
        descriptors: Sequence[ProviderDescriptor],
        classifier: OutcomeClassifier | None = None,
        mock_estimates: MockEstimateTable | None = None,
        single_flight: bool = False,
    ) -> None:
        names = [d.name for d in descriptors]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(
                message=f"Duplicate provider registrations: {', '.join(duplicates)}"
            )
        self._cache = cache
        # sorted() is stable: equal priorities keep registration order.
        self._descriptors = sorted(descriptors, key=lambda d: d.priority)
        self._classifier = classifier or OutcomeClassifier()
        self._mock_estimates = mock_estimates or MockEstimateTable()
        self._single_flight = single_flight
        self._in_flight: dict[str, asyncio.Task[ResolvedMarketSize]] = {}
        self._logger = get_logger(__name__)

    @property
    def descriptors(self) -> list[ProviderDescriptor]:
        return list(self._descriptors)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def market_key(query: MarketQuery) -> str:
        return build_cache_key(MARKET_NAMESPACE, query.as_params())

    @staticmethod
    def provider_key(provider: str, query: MarketQuery) -> str:
        return build_cache_key(provider, query.as_params())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(
        self, identifier: str, context: MarketContext | None = None
    ) -> ResolvedMarketSize:
        """Return the market size for *identifier* in *context*.

        Always answers: provider and storage failures turn into a
        fallthrough or a disclosed estimate.

        Raises
        ------
        QueryValidationError
            If *identifier* is empty or too long.
        """
        context = context or MarketContext()
        query = MarketQuery.build(identifier, context.region, context.currency)

        if not self._single_flight:
            return await self._resolve(query)

        key = self.market_key(query)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._resolve(query))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t: self._in_flight.pop(key, None))
        else:
            self._logger.debug("resolve_joined_in_flight", key=key)
        # Shield so one cancelled caller does not cancel the shared waterfall.
        return await asyncio.shield(task)

    async def invalidate(self, identifier: str, context: MarketContext | None = None) -> None:
        """Drop the cached result and every provider attempt for one query."""
        context = context or MarketContext()
        query = MarketQuery.build(identifier, context.region, context.currency)
        await self._cache.invalidate(self.market_key(query))
        for descriptor in self._descriptors:
            await self._cache.invalidate(self.provider_key(descriptor.name, query))

    async def invalidate_provider(self, provider: str) -> int:
        """Drop every attempt cached for *provider* and all market-level results."""
        if provider not in {d.name for d in self._descriptors}:
            raise ConfigurationError(message=f"Unknown provider: {provider}")
        removed = await self._cache.invalidate_pattern(namespace_prefix(provider))
        removed += await self._cache.invalidate_pattern(namespace_prefix(MARKET_NAMESPACE))
        return removed

    def provider_status(self) -> list[dict[str, Any]]:
        return [
            {
                "name": d.name,
                "priority": d.priority,
                "available": d.is_available(),
            }
            for d in self._descriptors
        ]

    # ------------------------------------------------------------------
    # Waterfall
    # ------------------------------------------------------------------

    def _waterfall(self, identifier: str) -> list[ProviderDescriptor]:
        matching = [d for d in self._descriptors if d.matches(identifier)]
        others = [d for d in self._descriptors if not d.matches(identifier)]
        return matching + others

    async def _resolve(self, query: MarketQuery) -> ResolvedMarketSize:
        market_key = self.market_key(query)
        cached = await self._cache.get_entry(market_key)
        if (
            cached is not None
            and cached.outcome == OutcomeKind.SUCCESS
            and isinstance(cached.value, dict)
        ):
            self._logger.info("market_size_cache_hit", identifier=query.identifier)
            return self._build_result(
                query,
                value=cached.value.get("value"),
                source=cached.value.get("source", NO_SOURCE),
                outcome=OutcomeKind.SUCCESS,
                details=cached.value.get("details") or {},
                cached=True,
            )

        attempts: list[ProviderAttempt] = []
        for descriptor in self._waterfall(query.identifier):
            if not descriptor.is_available():
                self._logger.debug("provider_unavailable", provider=descriptor.name)
                continue

            won = await self._attempt(descriptor, query, attempts)
            if won is not None:
                value, details, ttl_ms = won
                await self._cache.set(
                    market_key,
                    {"value": value, "source": descriptor.name, "details": details},
                    ttl_ms,
                    OutcomeKind.SUCCESS,
                )
                self._logger.info(
                    "market_size_resolved",
                    identifier=query.identifier,
                    source=descriptor.name,
                    attempts=len(attempts),
                )
                return self._build_result(
                    query,
                    value=value,
                    source=descriptor.name,
                    outcome=OutcomeKind.SUCCESS,
                    details=details,
                    attempts=attempts,
                )

        return self._fallback(query, attempts)

    async def _attempt(
        self,
        descriptor: ProviderDescriptor,
        query: MarketQuery,
        attempts: list[ProviderAttempt],
    ) -> tuple[float, dict[str, Any], int] | None:
        """Run one step of the waterfall.

        Returns ``(value, details, ttl_ms)`` on Success, ``None`` otherwise.
        """
        name = descriptor.name
        key = self.provider_key(name, query)

        cached = await self._cache.get_entry(key)
        if cached is not None:
            attempts.append(ProviderAttempt(provider=name, outcome=cached.outcome, cached=True))
            if cached.outcome == OutcomeKind.SUCCESS and isinstance(cached.value, dict):
                self._logger.debug("provider_cache_hit", provider=name, outcome=cached.outcome.value)
                return (
                    cached.value["value"],
                    cached.value.get("details") or {},
                    cached.remaining_ms(self._cache.now()),
                )
            self._logger.debug("provider_backoff", provider=name, outcome=cached.outcome.value)
            return None

        self._logger.info("provider_attempt", provider=name, identifier=query.identifier)
        result: RawResult | BaseException
        try:
            result = await descriptor.adapter.fetch_market_size(query.identifier, query.context)
        except ProviderUnavailableError as exc:
            self._logger.info("provider_unavailable", provider=name, reason=exc.message)
            return None
        except Exception as exc:
            self._logger.warning("provider_failed", provider=name, error=str(exc))
            result = exc

        outcome, ttl_ms = self._classifier.classify_with_ttl(name, result)
        value: float | None = None
        details: dict[str, Any] = {}
        message: str | None = None
        if isinstance(result, BaseException):
            message = str(result)
        else:
            details = dict(result.details)
            message = result.message
            if outcome == OutcomeKind.SUCCESS:
                try:
                    value = float(result.value)
                except (TypeError, ValueError):
                    outcome = OutcomeKind.ERROR
                    ttl_ms = self._classifier.policy.ttl_for(name, outcome)
                    message = f"non-numeric value {result.value!r}"

        payload = {"value": value, "details": details} if outcome == OutcomeKind.SUCCESS else None
        await self._cache.set(key, payload, ttl_ms, outcome)
        attempts.append(ProviderAttempt(provider=name, outcome=outcome, message=message))
        self._logger.info(
            "provider_outcome", provider=name, outcome=outcome.value, ttl_ms=ttl_ms
        )
        if outcome == OutcomeKind.SUCCESS and value is not None:
            return value, details, ttl_ms
        return None

    def _fallback(
        self, query: MarketQuery, attempts: list[ProviderAttempt]
    ) -> ResolvedMarketSize:
        estimate = self._mock_estimates.lookup(query.identifier, query.context)
        if estimate is not None:
            self._logger.warning(
                "market_size_mock_fallback",
                identifier=query.identifier,
                region=query.context.region,
                attempts=len(attempts),
            )
            return self._build_result(
                query,
                value=estimate.value,
                source=MOCK_SOURCE,
                outcome=OutcomeKind.SUCCESS,
                details=estimate.model_dump(exclude_none=True),
                attempts=attempts,
            )

        outcomes = [a.outcome for a in attempts]
        if OutcomeKind.NO_DATA in outcomes:
            outcome = OutcomeKind.NO_DATA
        elif outcomes and all(o == OutcomeKind.RATE_LIMITED for o in outcomes):
            outcome = OutcomeKind.RATE_LIMITED
        else:
            outcome = OutcomeKind.ERROR
        self._logger.warning(
            "market_size_unresolved",
            identifier=query.identifier,
            outcome=outcome.value,
            attempts=len(attempts),
        )
        return self._build_result(
            query, value=None, source=NO_SOURCE, outcome=outcome, attempts=attempts
        )

    @staticmethod
    def _build_result(
        query: MarketQuery,
        *,
        value: float | None,
        source: str,
        outcome: OutcomeKind,
        details: dict[str, Any] | None = None,
        cached: bool = False,
        attempts: list[ProviderAttempt] | None = None,
    ) -> ResolvedMarketSize:
        return ResolvedMarketSize(
            identifier=query.identifier,
            region=query.context.region,
            currency=query.context.currency,
            value=value,
            source=source,
            outcome=outcome,
            details=details or {},
            cached=cached,
            attempts=attempts or [],
        )
