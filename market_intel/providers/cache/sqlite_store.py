"""SQLite-backed durable cache tier.

Persists one row per cache key to a local SQLite database at
``data/cache.db``.  Uses ``aiosqlite`` for async I/O.  Rows are never
expired here; the cache service decides freshness and removes stale rows
lazily.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import aiosqlite
import structlog
from pydantic import ValidationError

from market_intel.interfaces.cache_store import IDurableStore
from market_intel.models.cache import CacheEntry
from market_intel.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/cache.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS cache_entries (
    cache_key   TEXT    PRIMARY KEY,
    payload     TEXT    NOT NULL,
    outcome     TEXT    NOT NULL,
    stored_at   INTEGER NOT NULL,
    ttl_ms      INTEGER NOT NULL
);
"""

_UPSERT_SQL = """\
INSERT INTO cache_entries (cache_key, payload, outcome, stored_at, ttl_ms)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(cache_key)
DO UPDATE SET payload   = excluded.payload,
              outcome   = excluded.outcome,
              stored_at = excluded.stored_at,
              ttl_ms    = excluded.ttl_ms;
"""


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteDurableStore(IDurableStore):
    """Durable tier storing cache entries in a single SQLite table."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)
        self._initialized = False

    async def initialize(self) -> None:
        """Create the cache table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.commit()
        self._initialized = True
        logger.info("cache_db_initialized", path=str(self._db_path))

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    # ------------------------------------------------------------------
    # IDurableStore implementation
    # ------------------------------------------------------------------

    async def save(self, key: str, entry: CacheEntry) -> None:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _UPSERT_SQL,
                    (key, entry.to_json(), entry.outcome.value, entry.stored_at, entry.ttl_ms),
                )
                await db.commit()
        except (sqlite3.Error, OSError) as exc:
            self._log_failure("save", key, exc)

    async def load(self, key: str) -> CacheEntry | None:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "SELECT payload FROM cache_entries WHERE cache_key = ?", (key,)
                )
                row = await cursor.fetchone()
            if row is None:
                return None
            return CacheEntry.from_json(row[0])
        except (sqlite3.Error, OSError, ValidationError) as exc:
            self._log_failure("load", key, exc)
            return None

    async def remove(self, key: str) -> None:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute("DELETE FROM cache_entries WHERE cache_key = ?", (key,))
                await db.commit()
        except (sqlite3.Error, OSError) as exc:
            self._log_failure("remove", key, exc)

    async def clear_all(self) -> None:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute("DELETE FROM cache_entries")
                await db.commit()
                removed = cursor.rowcount
        except (sqlite3.Error, OSError) as exc:
            self._log_failure("clear_all", None, exc)
            return
        logger.info("durable_cleared", backend="sqlite", removed=removed)

    async def keys(self, prefix: str = "") -> list[str]:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "SELECT cache_key FROM cache_entries WHERE cache_key LIKE ? ESCAPE '\\'",
                    (_escape_like(prefix) + "%",),
                )
                rows = await cursor.fetchall()
        except (sqlite3.Error, OSError) as exc:
            self._log_failure("keys", prefix, exc)
            return []
        # LIKE is case-insensitive for ASCII; keep prefix matching exact.
        return [row[0] for row in rows if row[0].startswith(prefix)]

    async def ping(self) -> bool:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute("SELECT 1")
        except (sqlite3.Error, OSError):
            return False
        return True

    def get_provider_name(self) -> str:
        return "sqlite"

    @staticmethod
    def _log_failure(operation: str, key: str | None, exc: Exception) -> None:
        error = StorageError(message=f"{operation} failed: {exc}", provider_name="sqlite")
        logger.warning("durable_operation_failed", operation=operation, key=key, error=str(error))
