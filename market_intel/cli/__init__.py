"""CLI tools for market-intel.

- ``python -m market_intel.cli resolve IDENTIFIER`` - resolve a market size
- ``python -m market_intel.cli invalidate PREFIX`` - drop cached entries
- ``python -m market_intel.cli stats`` - cache counters and tier health
- ``python -m market_intel.cli providers`` - data sources and availability
"""
