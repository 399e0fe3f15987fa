"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources, in priority
# order:
#
#   1. Environment variables  e.g. FRED_API_KEY=abc123   (always wins)
#   2. .env file              key=value lines in the project root
#
# Field ``fred_api_key`` maps to env var ``FRED_API_KEY`` automatically.
# An empty API key means "not configured": that data source reports
# itself unavailable and the orchestrator skips it.
# ──────────────────────────────────────────────────────────────────────
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from market_intel.models.cache import OutcomeKind


class Settings(BaseSettings):
    """market-intel settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Data Sources ===
    alpha_vantage_api_key: str = ""
    fred_api_key: str = ""
    census_api_key: str = ""  # optional; CBP works without a key
    census_year: int = 2021
    http_timeout_seconds: float = 15.0

    # === Cache ===
    # memory = volatile only, durable = durable only, hybrid = both tiers
    cache_backend: Literal["memory", "durable", "hybrid"] = "hybrid"
    durable_backend: Literal["file", "sqlite", "redis"] = "file"
    cache_dir: str = "data/cache"
    cache_db_path: str = "data/cache.db"
    cache_fallback_timeout_ms: int = Field(default=1000, gt=0)
    volatile_max_entries: int = Field(default=10_000, gt=0)

    # Default TTLs per outcome; per-provider overrides live in config.yaml.
    cache_ttl_success_ms: int = Field(default=3_600_000, ge=0)
    cache_ttl_nodata_ms: int = Field(default=300_000, ge=0)
    cache_ttl_ratelimited_ms: int = Field(default=300_000, ge=0)
    cache_ttl_error_ms: int = Field(default=60_000, ge=0)

    # === Redis (durable tier and/or invalidation pub/sub) ===
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "tam_cache:"

    # === Distributed invalidation ===
    invalidation_enabled: bool = False
    invalidation_channel: str = "cache_invalidation"

    # === Orchestration ===
    single_flight: bool = False

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def default_ttls(self) -> dict[OutcomeKind, int]:
        """Return the environment-level TTL defaults keyed by outcome."""
        return {
            OutcomeKind.SUCCESS: self.cache_ttl_success_ms,
            OutcomeKind.NO_DATA: self.cache_ttl_nodata_ms,
            OutcomeKind.RATE_LIMITED: self.cache_ttl_ratelimited_ms,
            OutcomeKind.ERROR: self.cache_ttl_error_ms,
        }

    def get_configured_data_sources(self) -> list[str]:
        """Return the names of data sources that have their credentials."""
        sources: list[str] = []
        if self.alpha_vantage_api_key:
            sources.append("alpha_vantage")
        sources.append("census")
        if self.fred_api_key:
            sources.append("fred")
        sources.append("world_bank")
        return sources
