"""FRED (Federal Reserve Economic Data) series provider.

Returns the latest observation of a series.  FRED marks a missing
observation with the value ``"."`` and rejects an unknown series with
HTTP 400; both are reported as "no data".
"""

from __future__ import annotations

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

_BASE_URL = "https://api.stlouisfed.org/fred/series/observations"


class FredProvider(IDataSourceProvider):
    """Latest observation of a FRED series (API key required)."""

    def __init__(
        self, api_key: str = "", http_client: httpx.AsyncClient | None = None
    ) -> None:
        self._api_key = api_key
        self._client = http_client or build_http_client()

    def get_provider_name(self) -> str:
        return "fred"

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def fetch_market_size(
        self, identifier: str, context: MarketContext
    ) -> RawResult:
        series_id = identifier.upper()
        status, data = await request_json(
            self._client,
            _BASE_URL,
            {
                "series_id": series_id,
                "api_key": self._api_key,
                "file_type": "json",
                "sort_order": "desc",
                "limit": 1,
            },
            self.get_provider_name(),
        )
        if status in (400, 404):
            message = data.get("error_message") if isinstance(data, dict) else None
            return RawResult(status_code=status, message=message or f"unknown series {series_id}")
        if status >= 400:
            raise ProviderError(
                message=f"HTTP {status} for series {series_id}",
                provider_name=self.get_provider_name(),
            )

        observations = data.get("observations") if isinstance(data, dict) else None
        if not observations:
            return RawResult(status_code=status, message=f"no observations for {series_id}")

        latest = observations[0]
        value = parse_number(latest.get("value"))
        if value is None:
            logger.info("fred_missing_observation", series_id=series_id, date=latest.get("date"))
            return RawResult(status_code=status, message=f"latest {series_id} observation missing")

        return RawResult(
            value=value,
            status_code=status,
            details={"series_id": series_id, "date": latest.get("date"), "units": data.get("units")},
        )
