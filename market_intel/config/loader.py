"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION LAYERS ─────────────────────────────────────────────
#
#   1. config/config.yaml  defaults checked into the repo: per-outcome
#                          TTLs, provider priorities, the mock estimate
#                          table
#   2. .env file           local developer overrides (not committed)
#   3. Environment vars    set at deploy time
#
# Layers 2 and 3 arrive together through Settings and win wherever a
# key exists in both.  Sections that only YAML knows about (ttl,
# mock_estimates, provider priorities) pass through untouched.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from market_intel.config.settings import Settings
from market_intel.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Return the YAML file at *path* with environment settings merged on top.

    A missing file yields the environment-derived sections alone.

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping.
    """
    merged = _read_yaml(Path(path))
    _deep_merge(merged, _settings_sections(settings or Settings()))
    return merged


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.is_file():
        return {}
    try:
        document = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(message=f"Invalid YAML in {config_path}: {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(message=f"{config_path} must contain a mapping at top level")
    return document


def _settings_sections(settings: Settings) -> dict[str, dict[str, Any]]:
    return {
        "app": {"host": settings.app_host, "port": settings.app_port, "env": settings.app_env},
        "cache": {
            "backend": settings.cache_backend,
            "durable_backend": settings.durable_backend,
            "dir": settings.cache_dir,
            "db_path": settings.cache_db_path,
            "fallback_timeout_ms": settings.cache_fallback_timeout_ms,
            "volatile_max_entries": settings.volatile_max_entries,
        },
        "redis": {"url": settings.redis_url, "key_prefix": settings.redis_key_prefix},
        "invalidation": {
            "enabled": settings.invalidation_enabled,
            "channel": settings.invalidation_channel,
        },
        "data_sources": {
            "configured": settings.get_configured_data_sources(),
            "census_year": settings.census_year,
            "http_timeout_seconds": settings.http_timeout_seconds,
        },
        "orchestrator": {"single_flight": settings.single_flight},
        "logging": {"level": settings.log_level},
    }


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge *overrides* into *base* in place."""
    for key, value in overrides.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _deep_merge(current, value)
        else:
            base[key] = value
