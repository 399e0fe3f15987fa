"""Identifier shape matchers used to route a query to the right data source.

Each matcher answers one question about a raw identifier string, e.g. "does
this look like a stock ticker?".  The orchestrator tries data sources whose
matcher accepts the identifier first, then falls through to the rest.
"""

from __future__ import annotations

import re

# Exchange ticker: AAPL, MSFT, IBM
_TICKER_RE = re.compile(r"^[A-Z]{2,5}$")
# NAICS industry code: 2-digit sector down to 6-digit national industry
_INDUSTRY_CODE_RE = re.compile(r"^\d{2,6}$")
# FRED series id: GDP, UNRATE, PAYEMS, CPIAUCSL
_FRED_SERIES_RE = re.compile(r"^[A-Z][A-Z0-9_]{1,29}$")
# World Bank indicator: NY.GDP.MKTP.CD, SP.POP.TOTL
_WORLD_BANK_INDICATOR_RE = re.compile(r"^[A-Z]{2}(\.[A-Z0-9]+)+$")


def is_ticker_symbol(identifier: str) -> bool:
    return bool(_TICKER_RE.match(identifier))


def is_industry_code(identifier: str) -> bool:
    return bool(_INDUSTRY_CODE_RE.match(identifier))


def is_fred_series_id(identifier: str) -> bool:
    return bool(_FRED_SERIES_RE.match(identifier))


def is_world_bank_indicator(identifier: str) -> bool:
    return bool(_WORLD_BANK_INDICATOR_RE.match(identifier))
