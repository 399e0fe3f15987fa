"""Last-resort market-size estimates.

Built-in defaults are merged with the ``mock_estimates`` table from
``config/config.yaml``; YAML entries win on identifier collisions.
Identifiers are matched case-insensitively.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from market_intel.models.market import MarketContext, MockEstimate
from market_intel.utils.errors import ConfigurationError

DEFAULT_MOCK_ESTIMATES: dict[str, MockEstimate] = {
    "tech-software": MockEstimate(
        value=659e9, name="Software Technology", year=2023, region="US"
    ),
    "tech-ai": MockEstimate(value=328e9, name="AI Technology", year=2023, region="US"),
}


class MockEstimateTable:
    """Case-insensitive lookup of :class:`MockEstimate` by identifier."""

    def __init__(self, estimates: Mapping[str, MockEstimate] | None = None) -> None:
        source = DEFAULT_MOCK_ESTIMATES if estimates is None else estimates
        self._estimates = {key.lower(): estimate for key, estimate in source.items()}

    @classmethod
    def from_config(cls, raw: Mapping[str, Any] | None) -> MockEstimateTable:
        """Merge the YAML ``mock_estimates`` section over the built-in defaults.

        Each YAML value is either a bare number or a mapping with ``value``
        and optional ``name``, ``year`` and ``region``.
        """
        merged: dict[str, MockEstimate] = dict(DEFAULT_MOCK_ESTIMATES)
        for identifier, item in (raw or {}).items():
            payload = item if isinstance(item, Mapping) else {"value": item}
            try:
                merged[str(identifier)] = MockEstimate.model_validate(dict(payload))
            except ValidationError as exc:
                raise ConfigurationError(
                    message=f"Invalid mock estimate for {identifier!r}: {exc.errors()[0]['msg']}"
                ) from exc
        return cls(merged)

    def lookup(self, identifier: str, context: MarketContext) -> MockEstimate | None:
        estimate = self._estimates.get(identifier.lower())
        if estimate is None or not estimate.applies_to(context):
            return None
        return estimate

    def __len__(self) -> int:
        return len(self._estimates)
