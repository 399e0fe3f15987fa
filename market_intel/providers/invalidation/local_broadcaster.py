"""In-process invalidation bus.

Lets several cache services inside one process (several orchestrators,
or tests simulating a multi-instance deployment) share invalidations
without a network transport.  A message is never delivered back to the
broadcaster that published it.
"""

from __future__ import annotations

import structlog

from market_intel.interfaces.invalidation_broadcaster import (
    IInvalidationBroadcaster,
    InvalidationHandler,
)

logger = structlog.get_logger(logger_name=__name__)


class LocalInvalidationHub:
    """Shared registry that the local broadcasters publish through."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[int, InvalidationHandler]] = []

    def register(self, origin: int, handler: InvalidationHandler) -> None:
        self._subscribers.append((origin, handler))

    def unregister(self, origin: int) -> None:
        self._subscribers = [(o, h) for o, h in self._subscribers if o != origin]

    async def dispatch(self, origin: int, target: str, exact: bool) -> int:
        delivered = 0
        for subscriber_origin, handler in list(self._subscribers):
            if subscriber_origin == origin:
                continue
            try:
                await handler(target, exact)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "invalidation_handler_failed", target=target, error=str(exc)
                )
        return delivered


class LocalInvalidationBroadcaster(IInvalidationBroadcaster):
    """Broadcaster bound to a :class:`LocalInvalidationHub`."""

    def __init__(self, hub: LocalInvalidationHub) -> None:
        self._hub = hub
        self._origin = id(self)

    async def publish(self, target: str, exact: bool = False) -> None:
        delivered = await self._hub.dispatch(self._origin, target, exact)
        logger.debug("invalidation_published", target=target, exact=exact, delivered=delivered)

    async def subscribe(self, handler: InvalidationHandler) -> None:
        self._hub.register(self._origin, handler)

    async def close(self) -> None:
        self._hub.unregister(self._origin)
