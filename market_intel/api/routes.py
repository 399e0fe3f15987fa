"""FastAPI routes for market-size lookups and cache administration.

Service dependencies are resolved from ``app.state`` via ``Depends`` using
the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                          Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/market-size/{identifier}  GET     Resolve a market size
# /api/v1/cache/invalidate          POST    Drop one key or a key prefix
# /api/v1/cache/stats               GET     Cache counters
# /api/v1/providers                 GET     Data sources + availability
# /api/v1/health                    GET     Cache tier health + providers
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from market_intel.api.schemas import (
    CacheStatsResponse,
    HealthResponse,
    InvalidateRequest,
    InvalidateResponse,
    MarketSizeResponse,
    ProvidersResponse,
    ProviderStatus,
)
from market_intel.models.market import MarketContext
from market_intel.services.cache_service import HybridCacheService
from market_intel.services.market_size_orchestrator import MarketSizeOrchestrator
from market_intel.utils.errors import QueryValidationError
from market_intel.utils.logging import get_logger

_logger = get_logger(__name__)

APP_VERSION = "0.1.0"

router = APIRouter(prefix="/api/v1", tags=["market-intel"])


def _get_orchestrator(request: Request) -> MarketSizeOrchestrator:
    return request.app.state.orchestrator


def _get_cache_service(request: Request) -> HybridCacheService:
    return request.app.state.cache_service


OrchestratorDep = Annotated[MarketSizeOrchestrator, Depends(_get_orchestrator)]
CacheDep = Annotated[HybridCacheService, Depends(_get_cache_service)]


@router.get("/market-size/{identifier}", response_model=MarketSizeResponse)
async def get_market_size(
    identifier: str,
    orchestrator: OrchestratorDep,
    region: Annotated[str, Query(max_length=16)] = "US",
    currency: Annotated[str, Query(max_length=8)] = "USD",
) -> MarketSizeResponse:
    """Resolve *identifier* through the provider waterfall."""
    try:
        context = MarketContext(region=region, currency=currency)
    except ValueError as exc:
        raise QueryValidationError(message=str(exc)) from exc

    result = await orchestrator.resolve(identifier, context)
    return MarketSizeResponse(
        **result.model_dump(exclude={"attempts"}),
        attempts=result.attempts,
        is_estimate=result.is_estimate,
    )


@router.post("/cache/invalidate", response_model=InvalidateResponse)
async def invalidate_cache(
    body: InvalidateRequest,
    cache_service: CacheDep,
) -> InvalidateResponse:
    target, exact = body.target
    if exact:
        await cache_service.invalidate(target)
        return InvalidateResponse(target=target, exact=True)

    removed = await cache_service.invalidate_pattern(target)
    return InvalidateResponse(target=target, exact=False, removed=removed)


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(cache_service: CacheDep) -> CacheStatsResponse:
    stats = cache_service.get_stats()
    return CacheStatsResponse(**stats.model_dump(), hit_rate=stats.hit_rate)


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(orchestrator: OrchestratorDep) -> ProvidersResponse:
    return ProvidersResponse(
        providers=[ProviderStatus(**status) for status in orchestrator.provider_status()]
    )


@router.get("/health", response_model=HealthResponse)
async def health(
    orchestrator: OrchestratorDep,
    cache_service: CacheDep,
) -> HealthResponse:
    cache_health = await cache_service.health_check()
    return HealthResponse(
        status=cache_health["status"],
        version=APP_VERSION,
        cache=cache_health,
        providers={s["name"]: s["available"] for s in orchestrator.provider_status()},
    )
