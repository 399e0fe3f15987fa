"""Abstract base class for market-size data sources.

Each concrete adapter turns a normalised identifier + context into one HTTP
call against a third-party statistical or financial API and hands back a
:class:`RawResult`.  The orchestrator depends only on this contract, never
on any provider's wire format.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from market_intel.models.market import MarketContext, ProviderId, RawResult


class IDataSourceProvider(ABC):
    """Contract for market-size data sources.

    Implementations are stateless apart from credentials and their HTTP
    client; they never cache on their own.
    """

    @abstractmethod
    async def fetch_market_size(
        self, identifier: str, context: MarketContext
    ) -> RawResult:
        """Fetch the market-size value for *identifier*.

        Parameters
        ----------
        identifier:
            Ticker, industry code, series id or indicator code, already
            stripped of surrounding whitespace.
        context:
            Region and currency the value is requested in.

        Returns
        -------
        RawResult
            ``value=None`` when the provider confirms it has no data;
            ``rate_limited=True`` when the provider reports quota exhaustion.

        Raises
        ------
        market_intel.utils.errors.RateLimitError
            If the provider rejected the call for quota reasons.
        market_intel.utils.errors.ProviderError
            If the request fails in transport or the payload cannot be parsed.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the provider's stable name, used as its cache namespace."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""


@dataclass(frozen=True)
class ProviderDescriptor:
    """One row of the orchestrator's priority table.

    Attributes
    ----------
    provider_id:
        Identity of the data source.
    priority:
        Lower values are tried first.  Static for the process lifetime.
    matcher:
        Predicate deciding whether an identifier is in this provider's
        natural domain (e.g. ticker symbols for a stock-data API).
    adapter:
        The adapter performing the actual fetch.
    """

    provider_id: ProviderId
    priority: int
    matcher: Callable[[str], bool]
    adapter: IDataSourceProvider

    @property
    def name(self) -> str:
        return self.provider_id.value

    def matches(self, identifier: str) -> bool:
        return bool(self.matcher(identifier))

    def is_available(self) -> bool:
        return self.adapter.is_available()
