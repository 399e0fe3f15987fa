"""Millisecond wall clock shared by the cache tiers.

Every TTL comparison in the project goes through a ``Clock`` callable so
tests can substitute a controllable clock and advance time explicitly.
"""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Return the current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)
