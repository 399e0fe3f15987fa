"""Deterministic cache-key construction.

A key is ``"<namespace>:<canonical params>"`` where the parameters are
serialised as compact JSON with sorted keys.  Two parameter mappings that
hold the same key/value pairs always produce the same key, whatever their
insertion order, and the JSON encoding keeps ``1`` and ``"1"`` distinct.

The namespace stays in clear text at the front of the key so a whole
namespace (one provider, or the ``market_size`` results) can be dropped with
a single prefix invalidation.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

NAMESPACE_SEPARATOR = ":"


def build_cache_key(namespace: str, params: Mapping[str, Any] | None = None) -> str:
    """Return the cache key for *namespace* and *params*.

    Parameters
    ----------
    namespace:
        Logical namespace, e.g. a provider name or ``"market_size"``.
    params:
        Mapping of string keys to primitive values.  ``None`` and an empty
        mapping are both legal and produce the same key.
    """
    canonical = json.dumps(
        dict(params or {}),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return f"{namespace}{NAMESPACE_SEPARATOR}{canonical}"


def namespace_prefix(namespace: str) -> str:
    """Return the key prefix shared by every key built for *namespace*."""
    return f"{namespace}{NAMESPACE_SEPARATOR}"
