"""Abstract base class for cross-instance cache invalidation.

Several cache service instances may share one durable tier while each
keeps its own volatile tier.  When one instance invalidates a key or a key
prefix it publishes the target so its siblings can purge their volatile
copies.  Delivery is best-effort and at-most-once: every entry still
carries its own TTL as the upper bound on staleness.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

# handler(target, exact): ``exact`` is True for a single key, False for a prefix.
InvalidationHandler = Callable[[str, bool], Awaitable[None]]


class IInvalidationBroadcaster(ABC):
    """Contract for invalidation pub/sub transports."""

    @abstractmethod
    async def publish(self, target: str, exact: bool = False) -> None:
        """Announce that *target* (a key, or a key prefix) was invalidated.

        Failures are logged and swallowed; they never fail the local
        invalidation that triggered the broadcast.
        """

    @abstractmethod
    async def subscribe(self, handler: InvalidationHandler) -> None:
        """Register *handler* for invalidations published by other instances."""

    @abstractmethod
    async def close(self) -> None:
        """Stop listening and release the transport."""
