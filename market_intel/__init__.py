"""market-intel: market-size lookups behind an outcome-aware two-tier cache."""

__version__ = "0.1.0"
