"""Alpha Vantage company-overview provider.

Market size for a listed company is its market capitalisation, read from
the ``OVERVIEW`` function.  Alpha Vantage answers quota exhaustion with
HTTP 200 and a ``Note`` (or ``Information``) payload instead of a 429, so
the payload itself is checked for the rate-limit marker.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from market_intel.interfaces.data_source_provider import IDataSourceProvider
from market_intel.models.market import MarketContext, RawResult
from market_intel.providers.data_sources.http_json import (
    build_http_client,
    parse_number,
    request_json,
)
from market_intel.utils.errors import ProviderError

logger = structlog.get_logger(logger_name=__name__)

_BASE_URL = "https://www.alphavantage.co/query"
_RATE_LIMIT_MARKERS = ("call frequency", "rate limit", "api call volume", "premium")


class AlphaVantageProvider(IDataSourceProvider):
    """Company market capitalisation from Alpha Vantage (API key required)."""

    def __init__(
        self, api_key: str = "", http_client: httpx.AsyncClient | None = None
    ) -> None:
        self._api_key = api_key
        self._client = http_client or build_http_client()

    def get_provider_name(self) -> str:
        return "alpha_vantage"

    def is_available(self) -> bool:
        return bool(self._api_key)

    @staticmethod
    def _rate_limit_message(data: dict[str, Any]) -> str | None:
        for field in ("Note", "Information"):
            text = data.get(field)
            if isinstance(text, str) and any(m in text.lower() for m in _RATE_LIMIT_MARKERS):
                return text
        return None

    async def fetch_market_size(
        self, identifier: str, context: MarketContext
    ) -> RawResult:
        symbol = identifier.upper()
        status, data = await request_json(
            self._client,
            _BASE_URL,
            {"function": "OVERVIEW", "symbol": symbol, "apikey": self._api_key},
            self.get_provider_name(),
        )
        if status >= 400:
            raise ProviderError(
                message=f"HTTP {status} for OVERVIEW {symbol}",
                provider_name=self.get_provider_name(),
            )
        if not isinstance(data, dict):
            return RawResult(status_code=status, message="empty response")

        rate_limit_message = self._rate_limit_message(data)
        if rate_limit_message:
            logger.warning("alpha_vantage_rate_limited", symbol=symbol)
            return RawResult(status_code=status, rate_limited=True, message=rate_limit_message)

        if "Error Message" in data:
            return RawResult(status_code=status, message=str(data["Error Message"]))

        market_cap = parse_number(data.get("MarketCapitalization"))
        if market_cap is None:
            logger.info("alpha_vantage_no_market_cap", symbol=symbol)
            return RawResult(status_code=status, message=f"no market capitalization for {symbol}")

        return RawResult(
            value=market_cap,
            status_code=status,
            details={
                "symbol": data.get("Symbol", symbol),
                "name": data.get("Name"),
                "exchange": data.get("Exchange"),
                "currency": data.get("Currency"),
                "sector": data.get("Sector"),
                "industry": data.get("Industry"),
                "metric": "MarketCapitalization",
            },
        )
