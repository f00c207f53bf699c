"""
Storage Module - Durable key/value media for the cart cache

Provides:
- FileStore: JSON files on local disk (default, survives process restarts)
- Upstash Redis sync client for carts shared across devices/processes

Both expose the subset of the Redis API the cache needs:
get(key), set(key, value, ex=seconds), delete(key).
"""

import json
import os
import re
import time
from pathlib import Path
from typing import Optional, Protocol

from upstash_redis import Redis

from cartsync import config
from cartsync.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Minimal synchronous key/value API used by CartCache."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ex: Optional[int] = None) -> object: ...

    def delete(self, *keys: str) -> object: ...


class FileStore:
    """
    Key/value store backed by one JSON file per key.

    Writes go to a temp file first and are moved into place, so a reader
    never sees a half-written entry.
    """

    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory: str | os.PathLike | None = None):
        self.directory = Path(directory or config.CART_CACHE_DIR)

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            entry = json.loads(raw)
            expires_at = entry.get("expires_at")
            value = entry["value"]
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError):
            # Not ours to interpret; let the caller decide what garbage means
            return raw

        if expires_at is not None and time.time() >= float(expires_at):
            self.delete(key)
            return None
        return value

    def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        entry = {"value": value, "expires_at": time.time() + ex if ex else None}
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(entry), encoding="utf-8")
        os.replace(tmp, path)
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            try:
                self._path(key).unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed


_sync_redis_client: Optional[Redis] = None


def get_redis_sync() -> Redis:
    """
    Get sync Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    global _sync_redis_client

    if _sync_redis_client is None:
        if not config.UPSTASH_REDIS_REST_URL or not config.UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _sync_redis_client = Redis(url=config.UPSTASH_REDIS_REST_URL, token=config.UPSTASH_REDIS_REST_TOKEN)

    return _sync_redis_client


def get_cache_store(backend: Optional[str] = None) -> KeyValueStore:
    """Build the store selected by CART_CACHE_BACKEND (file | upstash)."""
    backend = (backend or config.CART_CACHE_BACKEND).lower()
    if backend == "upstash":
        return get_redis_sync()
    if backend != "file":
        logger.warning("Unknown cart cache backend %r, using file store", backend)
    return FileStore()


class RedisKeys:
    """Key prefixes for cart data."""

    CART = "cart:"  # cart:{user_id}

    @staticmethod
    def cart_key(user_id: str) -> str:
        return f"{RedisKeys.CART}{user_id}"


class TTL:
    """Time-to-live constants (seconds)."""

    CART = config.CART_CACHE_TTL_SECONDS
