"""US Census County Business Patterns (CBP) provider.

Looks an industry up by NAICS 2017 code at national level and reports its
annual payroll as the market-size proxy.  ``PAYANN`` is published in
thousands of US dollars.  The Census API answers an empty result set with
HTTP 204 and an unknown code with HTTP 400; both mean "no data".
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

_BASE_URL = "https://api.census.gov/data/{year}/cbp"
_PAYROLL_UNIT = 1000
_US_REGIONS = {"US", "USA"}


class CensusProvider(IDataSourceProvider):
    """Industry annual payroll from the Census CBP dataset.

    The public API works without a key; a key only raises the quota.
    """

    def __init__(
        self,
        api_key: str = "",
        year: int = 2021,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._year = year
        self._client = http_client or build_http_client()

    def get_provider_name(self) -> str:
        return "census"

    def is_available(self) -> bool:
        return True

    async def fetch_market_size(
        self, identifier: str, context: MarketContext
    ) -> RawResult:
        if context.region not in _US_REGIONS:
            return RawResult(message=f"Census CBP covers the US only, not {context.region}")

        params = {
            "get": "NAME,NAICS2017_LABEL,PAYANN,EMP,ESTAB",
            "for": "us:*",
            "NAICS2017": identifier,
        }
        if self._api_key:
            params["key"] = self._api_key

        url = _BASE_URL.format(year=self._year)
        status, rows = await request_json(self._client, url, params, self.get_provider_name())
        if status in (400, 404):
            return RawResult(status_code=status, message=f"unknown NAICS code {identifier}")
        if status >= 400:
            raise ProviderError(
                message=f"HTTP {status} for NAICS {identifier}",
                provider_name=self.get_provider_name(),
            )
        if not isinstance(rows, list) or len(rows) < 2:
            return RawResult(status_code=status, message=f"no CBP rows for {identifier}")

        header, first = rows[0], rows[1]
        try:
            record = dict(zip(header, first, strict=True))
        except (TypeError, ValueError) as exc:
            raise ProviderError(
                message=f"Malformed CBP response for {identifier}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        payroll = parse_number(record.get("PAYANN"))
        if payroll is None:
            return RawResult(status_code=status, message=f"no payroll figure for {identifier}")

        logger.debug("census_payroll_found", naics=identifier, payroll_thousands=payroll)
        return RawResult(
            value=payroll * _PAYROLL_UNIT,
            status_code=status,
            details={
                "naics": identifier,
                "label": record.get("NAICS2017_LABEL"),
                "year": self._year,
                "employees": parse_number(record.get("EMP")),
                "establishments": parse_number(record.get("ESTAB")),
                "metric": "PAYANN",
            },
        )
