"""Response-outcome classification and TTL policy.

Every provider call ends in exactly one :class:`OutcomeKind`, and the
outcome decides how long the cached answer is trusted:

    Success      long   (a confirmed value)
    NoData       medium (a confirmed absence)
    RateLimited  short  (retry after the provider's cooldown)
    Error        short  (transport / parse failures heal quickly)

The policy table maps ``(provider, outcome)`` to a TTL in milliseconds.
Per-provider overrides come from ``config.yaml`` under
``ttl_policy.providers.<name>``; defaults come from the environment.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from market_intel.models.cache import OutcomeKind
from market_intel.models.market import RawResult
from market_intel.utils.errors import ConfigurationError, RateLimitError
from market_intel.utils.logging import get_logger

_HTTP_TOO_MANY_REQUESTS = 429
_HTTP_SERVER_ERROR = 500

DEFAULT_TTLS_MS: dict[OutcomeKind, int] = {
    OutcomeKind.SUCCESS: 3_600_000,
    OutcomeKind.NO_DATA: 300_000,
    OutcomeKind.RATE_LIMITED: 300_000,
    OutcomeKind.ERROR: 60_000,
}

# Accepted spellings in YAML: "Success", "success", "no_data", "NoData", ...
_OUTCOME_ALIASES: dict[str, OutcomeKind] = {
    "success": OutcomeKind.SUCCESS,
    "nodata": OutcomeKind.NO_DATA,
    "ratelimited": OutcomeKind.RATE_LIMITED,
    "error": OutcomeKind.ERROR,
}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def classify(result: RawResult | BaseException) -> OutcomeKind:
    """Map a provider call's result (or the exception it raised) to an outcome.

    Deterministic and side-effect free.
    """
    if isinstance(result, RateLimitError):
        return OutcomeKind.RATE_LIMITED
    if isinstance(result, BaseException):
        return OutcomeKind.ERROR
    if result.rate_limited or result.status_code == _HTTP_TOO_MANY_REQUESTS:
        return OutcomeKind.RATE_LIMITED
    if result.status_code is not None and result.status_code >= _HTTP_SERVER_ERROR:
        return OutcomeKind.ERROR
    if _is_empty(result.value):
        return OutcomeKind.NO_DATA
    return OutcomeKind.SUCCESS


def parse_outcome(name: str) -> OutcomeKind:
    """Parse a config spelling of an outcome name.

    Raises
    ------
    ConfigurationError
        If *name* is not a known outcome.
    """
    normalised = str(name).replace("_", "").replace("-", "").lower()
    try:
        return _OUTCOME_ALIASES[normalised]
    except KeyError:
        raise ConfigurationError(message=f"Unknown outcome kind in TTL policy: {name!r}") from None


def _parse_ttl_table(raw: Mapping[str, Any] | None, where: str) -> dict[OutcomeKind, int]:
    table: dict[OutcomeKind, int] = {}
    for name, value in (raw or {}).items():
        outcome = parse_outcome(name)
        try:
            ttl = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(
                message=f"TTL for {where}.{name} must be an integer, got {value!r}"
            ) from None
        if ttl < 0:
            raise ConfigurationError(message=f"TTL for {where}.{name} must not be negative")
        table[outcome] = ttl
    return table


class TTLPolicy:
    """Static ``(provider, outcome) -> ttl_ms`` table.

    Raises :class:`ConfigurationError` at construction if, for any
    provider, the NoData or RateLimited TTL exceeds the Success TTL.
    """

    def __init__(
        self,
        defaults: Mapping[OutcomeKind, int] | None = None,
        overrides: Mapping[str, Mapping[OutcomeKind, int]] | None = None,
    ) -> None:
        self._defaults: dict[OutcomeKind, int] = {**DEFAULT_TTLS_MS, **(defaults or {})}
        self._overrides: dict[str, dict[OutcomeKind, int]] = {
            provider: dict(table) for provider, table in (overrides or {}).items()
        }
        self._validate()

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any] | None,
        defaults: Mapping[OutcomeKind, int] | None = None,
    ) -> TTLPolicy:
        """Build a policy from the ``ttl_policy`` section of the loaded config.

        *defaults* (from environment settings) take precedence over
        ``ttl_policy.defaults`` in the YAML file.
        """
        section = dict(config or {})
        yaml_defaults = _parse_ttl_table(section.get("defaults"), "defaults")
        overrides = {
            str(provider): _parse_ttl_table(table, f"providers.{provider}")
            for provider, table in (section.get("providers") or {}).items()
        }
        return cls(defaults={**yaml_defaults, **(defaults or {})}, overrides=overrides)

    def _validate(self) -> None:
        for provider in [None, *self._overrides]:
            success = self.ttl_for(provider, OutcomeKind.SUCCESS)
            for outcome in (OutcomeKind.NO_DATA, OutcomeKind.RATE_LIMITED):
                ttl = self.ttl_for(provider, outcome)
                if ttl > success:
                    raise ConfigurationError(
                        message=(
                            f"{outcome.value} TTL ({ttl} ms) exceeds Success TTL "
                            f"({success} ms)"
                        ),
                        provider_name=provider,
                    )

    def ttl_for(self, provider: str | None, outcome: OutcomeKind) -> int:
        if provider is not None:
            override = self._overrides.get(provider, {}).get(outcome)
            if override is not None:
                return override
        return self._defaults[outcome]

    def as_table(self) -> dict[str, dict[str, int]]:
        """Return the effective table, for diagnostics."""
        table = {"default": {o.value: ttl for o, ttl in self._defaults.items()}}
        for provider in self._overrides:
            table[provider] = {o.value: self.ttl_for(provider, o) for o in OutcomeKind}
        return table


class OutcomeClassifier:
    """Classifies provider results and picks their TTL from a :class:`TTLPolicy`."""

    def __init__(self, policy: TTLPolicy | None = None) -> None:
        self._policy = policy or TTLPolicy()
        self._logger = get_logger(__name__)

    @property
    def policy(self) -> TTLPolicy:
        return self._policy

    def classify(self, result: RawResult | BaseException) -> OutcomeKind:
        return classify(result)

    def classify_with_ttl(
        self, provider: str, result: RawResult | BaseException
    ) -> tuple[OutcomeKind, int]:
        outcome = classify(result)
        ttl_ms = self._policy.ttl_for(provider, outcome)
        self._logger.debug(
            "outcome_classified", provider=provider, outcome=outcome.value, ttl_ms=ttl_ms
        )
        return outcome, ttl_ms
