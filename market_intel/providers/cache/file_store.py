"""File-backed durable cache tier: one JSON record per key.

File names are derived from the key: characters outside ``[A-Za-z0-9_-]``
become ``_``, the result is truncated, and a SHA-256 digest of the raw key
is appended.  Two keys that sanitise to the same text (``a/b`` and ``a:b``)
therefore still land in different files.  Each record carries its raw key,
so enumeration needs no manifest.

Blocking file I/O runs in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
import re
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError

from market_intel.interfaces.cache_store import IDurableStore
from market_intel.models.cache import CacheEntry
from market_intel.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_CACHE_DIR = Path("data/cache")
_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9_-]")
_MAX_STEM_LENGTH = 80
_DIGEST_LENGTH = 16
_SUFFIX = ".json"


def storage_filename(key: str) -> str:
    """Map a raw cache key to a collision-free, filesystem-safe file name."""
    stem = _UNSAFE_CHARS_RE.sub("_", key)[:_MAX_STEM_LENGTH]
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return f"{stem}.{digest}{_SUFFIX}"


class FileDurableStore(IDurableStore):
    """Durable tier writing one JSON file per cache key into *cache_dir*."""

    def __init__(self, cache_dir: str | Path = _DEFAULT_CACHE_DIR) -> None:
        self._dir = Path(cache_dir)

    def _path_for(self, key: str) -> Path:
        return self._dir / storage_filename(key)

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _write(self, key: str, entry: CacheEntry) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        # Per-write temp name; concurrent writers of one key resolve last-write-wins.
        with tempfile.NamedTemporaryFile(
            "w", dir=self._dir, suffix=".tmp", delete=False, encoding="utf-8"
        ) as handle:
            handle.write(entry.to_json())
        try:
            os.replace(handle.name, path)
        except OSError:
            Path(handle.name).unlink(missing_ok=True)
            raise

    def _read(self, key: str) -> CacheEntry | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        return CacheEntry.from_json(path.read_text(encoding="utf-8"))

    def _delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def _delete_all(self) -> int:
        if not self._dir.exists():
            return 0
        removed = 0
        for path in self._dir.glob(f"*{_SUFFIX}"):
            path.unlink(missing_ok=True)
            removed += 1
        return removed

    def _list_keys(self, prefix: str) -> list[str]:
        if not self._dir.exists():
            return []
        found: list[str] = []
        for path in self._dir.glob(f"*{_SUFFIX}"):
            try:
                record = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("durable_record_unreadable", path=str(path), error=str(exc))
                continue
            key = record.get("key") if isinstance(record, dict) else None
            if isinstance(key, str) and key.startswith(prefix):
                found.append(key)
        return found

    # ------------------------------------------------------------------
    # IDurableStore implementation
    # ------------------------------------------------------------------

    async def save(self, key: str, entry: CacheEntry) -> None:
        try:
            await asyncio.to_thread(self._write, key, entry)
        except OSError as exc:
            self._log_failure("save", key, exc)

    async def load(self, key: str) -> CacheEntry | None:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValidationError, ValueError) as exc:
            self._log_failure("load", key, exc)
            return None

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except OSError as exc:
            self._log_failure("remove", key, exc)

    async def clear_all(self) -> None:
        try:
            removed = await asyncio.to_thread(self._delete_all)
        except OSError as exc:
            self._log_failure("clear_all", None, exc)
            return
        logger.info("durable_cleared", backend="file", removed=removed)

    async def keys(self, prefix: str = "") -> list[str]:
        try:
            return await asyncio.to_thread(self._list_keys, prefix)
        except OSError as exc:
            self._log_failure("keys", prefix, exc)
            return []

    async def ping(self) -> bool:
        def _check() -> bool:
            self._dir.mkdir(parents=True, exist_ok=True)
            return os.access(self._dir, os.W_OK)

        try:
            return await asyncio.to_thread(_check)
        except OSError:
            return False

    def get_provider_name(self) -> str:
        return "file"

    @staticmethod
    def _log_failure(operation: str, key: str | None, exc: Exception) -> None:
        error = StorageError(message=f"{operation} failed: {exc}", provider_name="file")
        logger.warning("durable_operation_failed", operation=operation, key=key, error=str(error))
