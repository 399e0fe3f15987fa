"""Market-size data source adapters."""

from market_intel.providers.data_sources.alpha_vantage_provider import AlphaVantageProvider
from market_intel.providers.data_sources.census_provider import CensusProvider
from market_intel.providers.data_sources.fred_provider import FredProvider
from market_intel.providers.data_sources.world_bank_provider import WorldBankProvider

__all__ = [
    "AlphaVantageProvider",
    "CensusProvider",
    "FredProvider",
    "WorldBankProvider",
]
