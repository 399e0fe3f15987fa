"""Invalidation broadcasters: in-process hub and Redis pub/sub."""

from market_intel.providers.invalidation.local_broadcaster import (
    LocalInvalidationBroadcaster,
    LocalInvalidationHub,
)
from market_intel.providers.invalidation.redis_broadcaster import RedisInvalidationBroadcaster

__all__ = [
    "LocalInvalidationBroadcaster",
    "LocalInvalidationHub",
    "RedisInvalidationBroadcaster",
]
