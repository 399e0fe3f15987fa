"""Concrete adapters for the interfaces in ``market_intel.interfaces``."""
