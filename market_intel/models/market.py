"""Market-size query and result models.

Pydantic v2 models describing what a caller asks for (``MarketQuery``), what
a data source adapter hands back (``RawResult``) and what the orchestrator
finally returns (``ResolvedMarketSize``).  All models are frozen.

Flow:
    MarketQuery ──► orchestrator ──► adapter.fetch_market_size() ──► RawResult
                                     (classified into an OutcomeKind)
                         │
                         ▼
               ResolvedMarketSize {value, source, outcome, attempts}
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from market_intel.models.cache import OutcomeKind
from market_intel.utils.errors import QueryValidationError

MAX_IDENTIFIER_LENGTH = 128
GLOBAL_REGION = "global"
MOCK_SOURCE = "mock"
NO_SOURCE = "none"

_REGION_RE = re.compile(r"^[A-Z]{2,3}$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class ProviderId(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Identities of the data sources the orchestrator knows about."""

    ALPHA_VANTAGE = "alpha_vantage"
    CENSUS = "census"
    FRED = "fred"
    WORLD_BANK = "world_bank"


# ---------------------------------------------------------------------------
# Query side
# ---------------------------------------------------------------------------

class MarketContext(BaseModel):
    """Region/currency context a market-size value is requested in."""

    model_config = ConfigDict(frozen=True)

    # ISO country code (2 or 3 letters) or the literal "global".
    region: str = "US"
    # ISO 4217 currency code.
    currency: str = "USD"

    @field_validator("region", mode="before")
    @classmethod
    def _normalise_region(cls, value: Any) -> str:
        text = str(value).strip()
        if text.lower() == GLOBAL_REGION:
            return GLOBAL_REGION
        text = text.upper()
        if not _REGION_RE.match(text):
            raise ValueError(f"region must be a 2-3 letter code or 'global', got {value!r}")
        return text

    @field_validator("currency", mode="before")
    @classmethod
    def _normalise_currency(cls, value: Any) -> str:
        text = str(value).strip().upper()
        if not _CURRENCY_RE.match(text):
            raise ValueError(f"currency must be a 3 letter code, got {value!r}")
        return text

    def as_params(self) -> dict[str, str]:
        return {"region": self.region, "currency": self.currency}


class MarketQuery(BaseModel):
    """A validated request for the market size of one identifier."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    context: MarketContext = Field(default_factory=MarketContext)

    @field_validator("identifier", mode="before")
    @classmethod
    def _normalise_identifier(cls, value: Any) -> str:
        if value is None:
            raise ValueError("identifier is required")
        text = str(value).strip()
        if not text:
            raise ValueError("identifier must not be empty")
        if len(text) > MAX_IDENTIFIER_LENGTH:
            raise ValueError(
                f"identifier must be at most {MAX_IDENTIFIER_LENGTH} characters"
            )
        return text

    @classmethod
    def build(
        cls,
        identifier: Any,
        region: str | None = None,
        currency: str | None = None,
    ) -> MarketQuery:
        """Validate raw caller input into a query.

        Raises
        ------
        QueryValidationError
            If the identifier, region or currency is malformed.
        """
        context_args: dict[str, Any] = {}
        if region is not None:
            context_args["region"] = region
        if currency is not None:
            context_args["currency"] = currency
        try:
            return cls(identifier=identifier, context=MarketContext(**context_args))
        except ValidationError as exc:
            messages = "; ".join(err["msg"] for err in exc.errors())
            raise QueryValidationError(message=messages) from exc

    def as_params(self) -> dict[str, str]:
        return {"identifier": self.identifier, **self.context.as_params()}


# ---------------------------------------------------------------------------
# Adapter side
# ---------------------------------------------------------------------------

class RawResult(BaseModel):
    """What a data source adapter returns for one call, before classification."""

    model_config = ConfigDict(frozen=True)

    # The numeric market-size value, or None when the provider has nothing.
    value: Any = None
    # Provider-specific extras (series id, observation date, year, ...).
    details: dict[str, Any] = Field(default_factory=dict)
    # HTTP status of the underlying call when known.
    status_code: int | None = None
    # True when the provider signalled quota exhaustion in its payload.
    rate_limited: bool = False
    message: str | None = None


class MockEstimate(BaseModel):
    """A pre-defined, disclosed estimate used when no provider can answer."""

    model_config = ConfigDict(frozen=True)

    value: float
    name: str | None = None
    year: int | None = None
    # Region the estimate applies to; None means any region.
    region: str | None = None

    def applies_to(self, context: MarketContext) -> bool:
        return self.region is None or self.region.upper() == context.region.upper()


# ---------------------------------------------------------------------------
# Result side
# ---------------------------------------------------------------------------

class ProviderAttempt(BaseModel):
    """One step of the waterfall, in the order it was taken."""

    model_config = ConfigDict(frozen=True)

    provider: str
    outcome: OutcomeKind
    # True when the outcome came from the provider's cache entry, not a call.
    cached: bool = False
    message: str | None = None


class ResolvedMarketSize(BaseModel):
    """The answer handed back to consuming tools.

    ``source`` names the provider that produced ``value``; ``"mock"`` marks
    a pre-defined estimate and ``"none"`` means nothing could be supplied.
    Callers must surface a ``"mock"`` source as lower-confidence data.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str
    region: str
    currency: str
    value: float | None = None
    source: str
    outcome: OutcomeKind
    details: dict[str, Any] = Field(default_factory=dict)
    # True when the whole result was served from the market-level cache.
    cached: bool = False
    attempts: list[ProviderAttempt] = Field(default_factory=list)

    @property
    def is_estimate(self) -> bool:
        return self.source == MOCK_SOURCE
