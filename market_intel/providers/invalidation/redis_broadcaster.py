"""Redis pub/sub invalidation broadcaster.

Messages are JSON objects published on one channel (``cache_invalidation``
by default)::

    {"target": "alpha_vantage:", "exact": false,
     "origin": "<instance id>", "timestamp": 1718000000000}

Each instance ignores its own messages.  Delivery is Redis pub/sub's
at-most-once: an instance that is disconnected when a message is sent
never sees it and relies on the entry TTL instead.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from market_intel.interfaces.invalidation_broadcaster import (
    IInvalidationBroadcaster,
    InvalidationHandler,
)
from market_intel.utils.clock import now_ms

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHANNEL = "cache_invalidation"


class RedisInvalidationBroadcaster(IInvalidationBroadcaster):
    """Publishes and listens for invalidations on a Redis channel."""

    def __init__(
        self,
        client: redis.Redis | None = None,
        redis_url: str = "redis://localhost:6379/0",
        channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self._owns_client = client is None
        self._redis = client or redis.from_url(
            redis_url, encoding="utf-8", decode_responses=True
        )
        self._channel = channel
        self._origin = uuid.uuid4().hex
        self._handlers: list[InvalidationHandler] = []
        self._pubsub: Any = None
        self._listener: asyncio.Task[None] | None = None

    @property
    def origin(self) -> str:
        return self._origin

    async def publish(self, target: str, exact: bool = False) -> None:
        message = json.dumps(
            {
                "target": target,
                "exact": exact,
                "origin": self._origin,
                "timestamp": now_ms(),
            }
        )
        try:
            receivers = await self._redis.publish(self._channel, message)
        except (RedisError, OSError) as exc:
            logger.warning("invalidation_publish_failed", target=target, error=str(exc))
            return
        logger.debug("invalidation_published", target=target, exact=exact, receivers=receivers)

    async def subscribe(self, handler: InvalidationHandler) -> None:
        self._handlers.append(handler)
        if self._listener is None:
            self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
            await self._pubsub.subscribe(self._channel)
            self._listener = asyncio.create_task(self._listen())
            logger.info("invalidation_listener_started", channel=self._channel)

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self.handle_message(message.get("data"))
        except asyncio.CancelledError:
            raise
        except (RedisError, OSError) as exc:
            logger.warning("invalidation_listener_stopped", channel=self._channel, error=str(exc))

    async def handle_message(self, data: Any) -> None:
        """Decode one raw pub/sub payload and dispatch it to the handlers."""
        try:
            payload = json.loads(data)
            target = payload["target"]
            exact = bool(payload.get("exact", False))
            origin = payload.get("origin")
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("invalidation_message_malformed", data=str(data)[:200], error=str(exc))
            return
        if not isinstance(target, str):
            logger.warning("invalidation_message_malformed", data=str(data)[:200])
            return
        if origin == self._origin:
            return

        for handler in list(self._handlers):
            try:
                await handler(target, exact)
            except Exception as exc:
                logger.warning("invalidation_handler_failed", target=target, error=str(exc))

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self._channel)
                await self._pubsub.aclose()
            except (RedisError, OSError) as exc:
                logger.warning("invalidation_close_failed", error=str(exc))
            self._pubsub = None
        self._handlers.clear()
        if self._owns_client:
            await self._redis.aclose()
