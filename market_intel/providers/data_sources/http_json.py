"""Shared HTTP/JSON plumbing for the data source adapters.

Maps transport-level failures onto the error hierarchy so every adapter
reports them the same way:

    timeout / connection error / bad JSON  →  ProviderError
    HTTP 429                               →  RateLimitError
    HTTP 5xx                               →  ProviderError
    HTTP 204                               →  (204, None)
    anything else                          →  (status, parsed JSON)

4xx statuses other than 429 are handed back to the adapter, which knows
whether the provider uses them for "no such series" or for a real failure.
"""

from __future__ import annotations

from typing import Any

import httpx

from market_intel.utils.errors import ProviderError, RateLimitError

DEFAULT_TIMEOUT_SECONDS = 15.0
USER_AGENT = "market-intel/0.1.0"


def build_http_client(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    """Create the shared ``httpx.AsyncClient`` used by every adapter."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        follow_redirects=True,
    )


async def request_json(
    client: httpx.AsyncClient,
    url: str,
    params: dict[str, Any],
    provider_name: str,
) -> tuple[int, Any]:
    """GET *url* and return ``(status_code, parsed_json)``.

    Raises
    ------
    RateLimitError
        On HTTP 429.
    ProviderError
        On timeouts, connection failures, 5xx responses and unparseable bodies.
    """
    try:
        response = await client.get(url, params=params)
    except httpx.TimeoutException as exc:
        raise ProviderError(
            message=f"Timeout calling {url}: {exc}", provider_name=provider_name
        ) from exc
    except httpx.HTTPError as exc:
        raise ProviderError(
            message=f"HTTP error calling {url}: {exc}", provider_name=provider_name
        ) from exc

    status = response.status_code
    if status == 429:
        raise RateLimitError(
            message=f"HTTP 429 from {url}", provider_name=provider_name
        )
    if status >= 500:
        raise ProviderError(
            message=f"HTTP {status} from {url}", provider_name=provider_name
        )
    if status == 204 or not response.content:
        return status, None

    try:
        return status, response.json()
    except ValueError as exc:
        raise ProviderError(
            message=f"Unparseable JSON from {url}: {exc}", provider_name=provider_name
        ) from exc


def parse_number(raw: Any) -> float | None:
    """Parse a provider's numeric field; placeholders like ``"."`` or ``"None"`` give ``None``."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    text = str(raw).strip().replace(",", "")
    if text in {"", ".", "None", "null", "N/A", "-"}:
        return None
    try:
        return float(text)
    except ValueError:
        return None
