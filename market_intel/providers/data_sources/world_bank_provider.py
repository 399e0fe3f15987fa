"""World Bank indicators provider.

Fetches the most recent value (``mrv=1``) of an indicator for the query's
region.  ``"global"`` maps to the World Bank aggregate ``WLD`` and the
bare identifier ``GDP`` to ``NY.GDP.MKTP.CD``.  Unknown indicators come back
as HTTP 200 with a ``message`` element instead of data.
"""

from __future__ import annotations

import httpx
import structlog

from market_intel.interfaces.data_source_provider import IDataSourceProvider
from market_intel.models.market import GLOBAL_REGION, MarketContext, RawResult
from market_intel.providers.data_sources.http_json import (
    build_http_client,
    parse_number,
    request_json,
)
from market_intel.utils.errors import ProviderError

logger = structlog.get_logger(logger_name=__name__)

_BASE_URL = "https://api.worldbank.org/v2/country/{country}/indicator/{indicator}"
DEFAULT_INDICATOR = "NY.GDP.MKTP.CD"
_WORLD_AGGREGATE = "WLD"


class WorldBankProvider(IDataSourceProvider):
    """Latest indicator value from the public World Bank API."""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._client = http_client or build_http_client()

    def get_provider_name(self) -> str:
        return "world_bank"

    def is_available(self) -> bool:
        return True

    async def fetch_market_size(
        self, identifier: str, context: MarketContext
    ) -> RawResult:
        indicator = DEFAULT_INDICATOR if identifier.upper() == "GDP" else identifier
        country = _WORLD_AGGREGATE if context.region == GLOBAL_REGION else context.region
        url = _BASE_URL.format(country=country, indicator=indicator)

        status, data = await request_json(
            self._client, url, {"format": "json", "mrv": 1}, self.get_provider_name()
        )
        if status in (400, 404):
            return RawResult(status_code=status, message=f"unknown indicator {indicator}")
        if status >= 400:
            raise ProviderError(
                message=f"HTTP {status} for indicator {indicator}",
                provider_name=self.get_provider_name(),
            )

        # Success shape: [metadata, [observation, ...]]; error shape: [{"message": [...]}]
        if not isinstance(data, list) or len(data) < 2 or not isinstance(data[1], list):
            message = None
            if isinstance(data, list) and data and isinstance(data[0], dict):
                errors = data[0].get("message") or []
                if errors and isinstance(errors[0], dict):
                    message = errors[0].get("value")
            return RawResult(status_code=status, message=message or f"no data for {indicator}")

        observation = next((o for o in data[1] if o.get("value") is not None), None)
        if observation is None:
            return RawResult(status_code=status, message=f"no recent value for {indicator} in {country}")

        value = parse_number(observation.get("value"))
        logger.debug("world_bank_value_found", indicator=indicator, country=country, date=observation.get("date"))
        return RawResult(
            value=value,
            status_code=status,
            details={
                "indicator": indicator,
                "indicator_name": (observation.get("indicator") or {}).get("value"),
                "country": (observation.get("country") or {}).get("value", country),
                "date": observation.get("date"),
            },
        )
