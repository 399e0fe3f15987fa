# =============================================================================
# market_intel/cli/market.py - market-intel command line
# =============================================================================
#
# One-shot commands against the same wiring the API uses:
#
#   python -m market_intel.cli resolve AAPL
#   python -m market_intel.cli resolve 5112 --region US --json
#   python -m market_intel.cli invalidate alpha_vantage:
#   python -m market_intel.cli invalidate 'market_size:{...}' --exact
#   python -m market_intel.cli stats
#   python -m market_intel.cli providers
#
# Command output goes to stdout; structlog output goes to stderr, and
# --json lowers logging to WARNING so stdout stays machine readable.
# =============================================================================

"""Command line interface for market-size lookups and cache administration."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from market_intel.models.market import MarketContext, ResolvedMarketSize
from market_intel.utils.errors import ConfigurationError, QueryValidationError
from market_intel.utils.logging import configure_logging

_DEFAULT_CONFIG_PATH = "config/config.yaml"


# ---------------------------------------------------------------------------
# Wiring (deferred imports keep --help fast)
# ---------------------------------------------------------------------------


def _load_components(config_path: str) -> dict[str, Any]:
    from market_intel.main import build_components

    return build_components(config_path=config_path)


async def _close_components(components: dict[str, Any]) -> None:
    from market_intel.main import close_components

    await close_components(components)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _format_value(value: float | None, currency: str) -> str:
    if value is None:
        return "n/a"
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M")):
        if abs(value) >= threshold:
            return f"{value / threshold:,.2f}{suffix} {currency}"
    return f"{value:,.2f} {currency}"


def format_result(result: ResolvedMarketSize) -> str:
    """Render a resolved market size as a short human-readable report."""
    lines = [
        f"{result.identifier} ({result.region}, {result.currency})",
        f"  value:   {_format_value(result.value, result.currency)}",
        f"  source:  {result.source}" + ("  [ESTIMATE]" if result.is_estimate else ""),
        f"  outcome: {result.outcome.value}" + ("  (cached)" if result.cached else ""),
    ]
    for attempt in result.attempts:
        note = " cached" if attempt.cached else ""
        message = f" - {attempt.message}" if attempt.message else ""
        lines.append(f"    {attempt.provider}: {attempt.outcome.value}{note}{message}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_resolve(args: argparse.Namespace, components: dict[str, Any]) -> int:
    orchestrator = components["orchestrator"]
    try:
        context = MarketContext(region=args.region, currency=args.currency)
        result = await orchestrator.resolve(args.identifier, context)
    except (QueryValidationError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    if args.json:
        payload = result.model_dump(mode="json")
        payload["is_estimate"] = result.is_estimate
        print(json.dumps(payload, indent=2))
    else:
        print(format_result(result))
    return 0 if result.value is not None else 1


async def _handle_invalidate(args: argparse.Namespace, components: dict[str, Any]) -> int:
    cache_service = components["cache_service"]
    if args.exact:
        await cache_service.invalidate(args.target)
        print(f"Invalidated key {args.target}")
    else:
        removed = await cache_service.invalidate_pattern(args.target)
        print(f"Invalidated {removed} entries with prefix {args.target!r}")
    return 0


async def _handle_stats(args: argparse.Namespace, components: dict[str, Any]) -> int:
    cache_service = components["cache_service"]
    stats = cache_service.get_stats()
    health = await cache_service.health_check()
    payload = {**stats.model_dump(), "hit_rate": stats.hit_rate, "health": health}
    print(json.dumps(payload, indent=2))
    return 0 if health["status"] != "unhealthy" else 1


async def _handle_providers(args: argparse.Namespace, components: dict[str, Any]) -> int:
    for status in components["orchestrator"].provider_status():
        flag = "available" if status["available"] else "unavailable"
        print(f"{status['priority']:>4}  {status['name']:<14} {flag}")
    return 0


_HANDLERS = {
    "resolve": _handle_resolve,
    "invalidate": _handle_invalidate,
    "stats": _handle_stats,
    "providers": _handle_providers,
}


async def _run(args: argparse.Namespace) -> int:
    components = _load_components(args.config)
    # Importing the app module configures logging from LOG_LEVEL; re-apply ours.
    configure_logging(log_level=args.effective_log_level)
    try:
        return await _HANDLERS[args.command](args, components)
    finally:
        await _close_components(components)


# ---------------------------------------------------------------------------
# Parser / entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m market_intel.cli",
        description="Resolve market sizes and manage the market-intel cache.",
    )
    parser.add_argument(
        "--config", default=_DEFAULT_CONFIG_PATH, help="Path to config.yaml"
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a market size")
    resolve_parser.add_argument("identifier", help="Ticker, NAICS code, FRED series or indicator")
    resolve_parser.add_argument("--region", default="US", help="Region code or 'global'")
    resolve_parser.add_argument("--currency", default="USD", help="Currency code")
    resolve_parser.add_argument("--json", action="store_true", help="Print JSON")

    invalidate_parser = subparsers.add_parser("invalidate", help="Invalidate cached entries")
    invalidate_parser.add_argument("target", help="Key prefix (or exact key with --exact)")
    invalidate_parser.add_argument(
        "--exact", action="store_true", help="Treat TARGET as one exact key"
    )

    subparsers.add_parser("stats", help="Show cache statistics and health")
    subparsers.add_parser("providers", help="List data sources and availability")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command, and return the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    quiet = getattr(args, "json", False)
    args.effective_log_level = args.log_level or ("WARNING" if quiet else "INFO")
    try:
        configure_logging(log_level=args.effective_log_level)
        return asyncio.run(_run(args))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    sys.exit(main())
