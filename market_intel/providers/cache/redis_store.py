"""Redis-backed durable cache tier using ``redis.asyncio``.

Each cache key is stored as one JSON string under ``<key_prefix><key>``.
Records also get a native Redis expiry (``PX``) equal to the entry TTL so
abandoned keys do not pile up; freshness is still decided by the cache
service from the record's own ``stored_at``/``ttl_ms``.
"""

from __future__ import annotations

import re

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from market_intel.interfaces.cache_store import IDurableStore
from market_intel.models.cache import CacheEntry
from market_intel.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_KEY_PREFIX = "tam_cache:"
_GLOB_SPECIAL_RE = re.compile(r"([*?\[\]\\])")
_SCAN_BATCH = 500


def _escape_glob(text: str) -> str:
    return _GLOB_SPECIAL_RE.sub(r"\\\1", text)


class RedisDurableStore(IDurableStore):
    """Durable tier shared by every instance pointed at the same Redis.

    Parameters
    ----------
    client:
        An existing ``redis.asyncio.Redis`` client created with
        ``decode_responses=True``.  Mutually exclusive with *redis_url*.
    redis_url:
        URL to build a client from when *client* is not supplied.
    key_prefix:
        Namespace for this application's keys inside Redis.
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._redis = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        self._key_prefix = key_prefix

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def _scan(self, prefix: str) -> list[str]:
        pattern = _escape_glob(self._redis_key(prefix)) + "*"
        return [k async for k in self._redis.scan_iter(match=pattern, count=_SCAN_BATCH)]

    # ------------------------------------------------------------------
    # IDurableStore implementation
    # ------------------------------------------------------------------

    async def save(self, key: str, entry: CacheEntry) -> None:
        try:
            await self._redis.set(
                self._redis_key(key), entry.to_json(), px=max(entry.ttl_ms, 1)
            )
        except (RedisError, OSError) as exc:
            self._log_failure("save", key, exc)

    async def load(self, key: str) -> CacheEntry | None:
        try:
            payload = await self._redis.get(self._redis_key(key))
            if payload is None:
                return None
            return CacheEntry.from_json(payload)
        # UnicodeDecodeError (non-UTF-8 bytes) and ValidationError are both ValueErrors.
        except (RedisError, OSError, ValueError) as exc:
            self._log_failure("load", key, exc)
            return None

    async def remove(self, key: str) -> None:
        try:
            await self._redis.delete(self._redis_key(key))
        except (RedisError, OSError) as exc:
            self._log_failure("remove", key, exc)

    async def clear_all(self) -> None:
        try:
            redis_keys = await self._scan("")
            if redis_keys:
                await self._redis.delete(*redis_keys)
        except (RedisError, OSError) as exc:
            self._log_failure("clear_all", None, exc)
            return
        logger.info("durable_cleared", backend="redis", removed=len(redis_keys))

    async def keys(self, prefix: str = "") -> list[str]:
        try:
            redis_keys = await self._scan(prefix)
        except (RedisError, OSError) as exc:
            self._log_failure("keys", prefix, exc)
            return []
        offset = len(self._key_prefix)
        return [k[offset:] for k in redis_keys]

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError):
            return False

    def get_provider_name(self) -> str:
        return "redis"

    async def close(self) -> None:
        await self._redis.aclose()

    @staticmethod
    def _log_failure(operation: str, key: str | None, exc: Exception) -> None:
        error = StorageError(message=f"{operation} failed: {exc}", provider_name="redis")
        logger.warning("durable_operation_failed", operation=operation, key=key, error=str(error))
