"""Configuration: environment settings and the YAML loader."""

from market_intel.config.loader import load_config
from market_intel.config.settings import Settings

__all__ = ["Settings", "load_config"]
