"""Pydantic request/response schemas for the market-intel API.

Convention: request schemas end with "Request", response schemas end with
"Response".  ``Field(...)`` adds constraints and descriptions that show up
in the generated OpenAPI docs at ``/docs``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from market_intel.models.cache import OutcomeKind
from market_intel.models.market import ProviderAttempt


class MarketSizeResponse(BaseModel):
    """One resolved market size with its provenance."""

    identifier: str
    region: str
    currency: str
    value: float | None = None
    source: str = Field(description='Provider name, "mock" for an estimate, "none" if unresolved')
    outcome: OutcomeKind
    is_estimate: bool = False
    cached: bool = False
    details: dict[str, Any] = Field(default_factory=dict)
    attempts: list[ProviderAttempt] = Field(default_factory=list)


class InvalidateRequest(BaseModel):
    """Invalidate one exact key or every key under a prefix (exactly one of them)."""

    key: str | None = Field(default=None, min_length=1)
    prefix: str | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _exactly_one_target(self) -> InvalidateRequest:
        if (self.key is None) == (self.prefix is None):
            raise ValueError("provide exactly one of 'key' or 'prefix'")
        return self

    @property
    def target(self) -> tuple[str, bool]:
        """The key or prefix to drop, and whether it is an exact key."""
        if self.key is not None:
            return self.key, True
        return self.prefix or "", False


class InvalidateResponse(BaseModel):
    target: str
    exact: bool
    removed: int | None = None


class CacheStatsResponse(BaseModel):
    backend: str
    hits: int
    misses: int
    hit_rate: float
    volatile_hits: int
    durable_hits: int
    fallback_timeouts: int
    durable_write_failures: int
    volatile_size: int
    durable_enabled: bool
    invalidation_enabled: bool
    last_refreshed: int | None = None


class ProviderStatus(BaseModel):
    name: str
    priority: int
    available: bool


class ProvidersResponse(BaseModel):
    providers: list[ProviderStatus] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    version: str
    cache: dict[str, Any] = Field(default_factory=dict)
    providers: dict[str, bool] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
