"""market-intel FastAPI application entry point.

Wires together cache tiers, data source adapters and the orchestrator via
dependency injection.  Loads configuration from ``.env`` and
``config/config.yaml`` and configures structured logging.

The ``build_components`` / ``close_components`` helpers are shared with
the CLI so both surfaces run the exact same wiring.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI

from market_intel.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from market_intel.api.routes import APP_VERSION
from market_intel.api.routes import router as api_router
from market_intel.config.loader import load_config
from market_intel.config.settings import Settings
from market_intel.interfaces.cache_store import IDurableStore
from market_intel.interfaces.data_source_provider import ProviderDescriptor
from market_intel.interfaces.invalidation_broadcaster import IInvalidationBroadcaster
from market_intel.models.market import ProviderId
from market_intel.providers.cache.file_store import FileDurableStore
from market_intel.providers.cache.memory_store import MemoryCacheStore
from market_intel.providers.cache.redis_store import RedisDurableStore
from market_intel.providers.cache.sqlite_store import SQLiteDurableStore
from market_intel.providers.data_sources.alpha_vantage_provider import AlphaVantageProvider
from market_intel.providers.data_sources.census_provider import CensusProvider
from market_intel.providers.data_sources.fred_provider import FredProvider
from market_intel.providers.data_sources.http_json import build_http_client
from market_intel.providers.data_sources.world_bank_provider import WorldBankProvider
from market_intel.providers.invalidation.redis_broadcaster import RedisInvalidationBroadcaster
from market_intel.services.cache_service import HybridCacheService
from market_intel.services.market_size_orchestrator import MarketSizeOrchestrator
from market_intel.services.mock_estimates import MockEstimateTable
from market_intel.services.outcome_classifier import OutcomeClassifier, TTLPolicy
from market_intel.utils.clock import Clock, now_ms
from market_intel.utils.errors import ConfigurationError
from market_intel.utils.identifier_patterns import (
    is_fred_series_id,
    is_industry_code,
    is_ticker_symbol,
    is_world_bank_indicator,
)
from market_intel.utils.logging import configure_logging, get_logger

DEFAULT_CONFIG_PATH = "config/config.yaml"

# Static priority table; config.yaml ``providers.<name>.priority`` may override.
_DEFAULT_PRIORITIES: dict[ProviderId, int] = {
    ProviderId.ALPHA_VANTAGE: 10,
    ProviderId.CENSUS: 20,
    ProviderId.FRED: 30,
    ProviderId.WORLD_BANK: 40,
}

settings = Settings()
configure_logging(log_level=settings.log_level)
_logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def build_durable_store(app_settings: Settings) -> IDurableStore:
    """Create the durable tier selected by ``DURABLE_BACKEND``."""
    if app_settings.durable_backend == "file":
        return FileDurableStore(cache_dir=app_settings.cache_dir)
    if app_settings.durable_backend == "sqlite":
        return SQLiteDurableStore(db_path=app_settings.cache_db_path)
    if app_settings.durable_backend == "redis":
        return RedisDurableStore(
            redis_url=app_settings.redis_url, key_prefix=app_settings.redis_key_prefix
        )
    raise ConfigurationError(message=f"Unknown durable backend: {app_settings.durable_backend}")


def build_broadcaster(app_settings: Settings) -> IInvalidationBroadcaster | None:
    if not app_settings.invalidation_enabled:
        return None
    return RedisInvalidationBroadcaster(
        redis_url=app_settings.redis_url, channel=app_settings.invalidation_channel
    )


def build_cache_service(
    app_settings: Settings,
    clock: Clock | None = None,
    durable: IDurableStore | None = None,
    broadcaster: IInvalidationBroadcaster | None = None,
) -> HybridCacheService:
    """Assemble the cache service for the configured ``CACHE_BACKEND``.

    *durable* and *broadcaster* override the settings-derived instances.
    """
    clock = clock or now_ms
    backend = app_settings.cache_backend

    volatile = None
    if backend in ("memory", "hybrid"):
        volatile = MemoryCacheStore(max_entries=app_settings.volatile_max_entries, clock=clock)

    if backend in ("durable", "hybrid"):
        durable = durable or build_durable_store(app_settings)
    else:
        durable = None

    if broadcaster is None:
        broadcaster = build_broadcaster(app_settings)

    return HybridCacheService(
        volatile=volatile,
        durable=durable,
        broadcaster=broadcaster,
        fallback_timeout_ms=app_settings.cache_fallback_timeout_ms,
        clock=clock,
    )


def build_classifier(app_settings: Settings, config: dict[str, Any]) -> OutcomeClassifier:
    policy = TTLPolicy.from_config(config.get("ttl_policy"), defaults=app_settings.default_ttls())
    return OutcomeClassifier(policy)


def build_data_sources(
    app_settings: Settings,
    config: dict[str, Any],
    http_client: httpx.AsyncClient,
) -> list[ProviderDescriptor]:
    """Build the provider priority table (registered once at startup)."""
    provider_config = config.get("providers") or {}

    def _priority(provider_id: ProviderId) -> int:
        section = provider_config.get(provider_id.value) or {}
        return int(section.get("priority", _DEFAULT_PRIORITIES[provider_id]))

    return [
        ProviderDescriptor(
            provider_id=ProviderId.ALPHA_VANTAGE,
            priority=_priority(ProviderId.ALPHA_VANTAGE),
            matcher=is_ticker_symbol,
            adapter=AlphaVantageProvider(
                api_key=app_settings.alpha_vantage_api_key, http_client=http_client
            ),
        ),
        ProviderDescriptor(
            provider_id=ProviderId.CENSUS,
            priority=_priority(ProviderId.CENSUS),
            matcher=is_industry_code,
            adapter=CensusProvider(
                api_key=app_settings.census_api_key,
                year=app_settings.census_year,
                http_client=http_client,
            ),
        ),
        ProviderDescriptor(
            provider_id=ProviderId.FRED,
            priority=_priority(ProviderId.FRED),
            matcher=is_fred_series_id,
            adapter=FredProvider(api_key=app_settings.fred_api_key, http_client=http_client),
        ),
        ProviderDescriptor(
            provider_id=ProviderId.WORLD_BANK,
            priority=_priority(ProviderId.WORLD_BANK),
            matcher=is_world_bank_indicator,
            adapter=WorldBankProvider(http_client=http_client),
        ),
    ]


def build_components(
    app_settings: Settings | None = None,
    config_path: str = DEFAULT_CONFIG_PATH,
) -> dict[str, Any]:
    """Construct every component; returns a flat dict stored on ``app.state``."""
    app_settings = app_settings or settings
    config = load_config(config_path, settings=app_settings)

    http_client = build_http_client(timeout=app_settings.http_timeout_seconds)
    cache_service = build_cache_service(app_settings)
    descriptors = build_data_sources(app_settings, config, http_client)
    orchestrator = MarketSizeOrchestrator(
        cache=cache_service,
        descriptors=descriptors,
        classifier=build_classifier(app_settings, config),
        mock_estimates=MockEstimateTable.from_config(config.get("mock_estimates")),
        single_flight=app_settings.single_flight,
    )
    return {
        "settings": app_settings,
        "config": config,
        "http_client": http_client,
        "cache_service": cache_service,
        "orchestrator": orchestrator,
    }


async def close_components(components: dict[str, Any]) -> None:
    await components["cache_service"].close()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build components on startup, flush and close them on shutdown."""
    components = build_components(settings)
    for key, value in components.items():
        setattr(application.state, key, value)
    await components["cache_service"].start()

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        cache_backend=components["cache_service"].backend,
        data_sources=components["config"]["data_sources"]["configured"],
    )

    yield

    await close_components(components)
    _logger.info("app_shutdown", message="cache flushed, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="market-intel API",
        version=APP_VERSION,
        description=(
            "Market-size lookups across Alpha Vantage, Census, FRED and the "
            "World Bank behind a two-tier, outcome-aware cache."
        ),
        lifespan=_lifespan,
    )

    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "market_intel.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
