"""Short-lived JSON cache over the backing store.

The cache is never an authority: failures degrade to misses and are logged.

Usage::

    cache = ReadCache(get_store())
    status = await cache.remember("wallet:metadata:0xabc...", load_status, ttl_seconds=300)
    await cache.delete("wallet:metadata:0xabc...")
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from wallet_gateway.core.errors import StoreUnavailable
from wallet_gateway.stores import BackingStore, get_store

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"
_DEFAULT_TTL_SECONDS = 300


class ReadCache:
    """TTL cache storing JSON payloads under ``cache:`` keys."""

    def __init__(self, store: BackingStore, *, default_ttl_seconds: int = _DEFAULT_TTL_SECONDS):
        self._store = store
        self._default_ttl = default_ttl_seconds

    @staticmethod
    def _key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    async def get(self, key: str) -> Any | None:
        try:
            record = await self._store.fetch(self._key(key))
        except StoreUnavailable as err:
            logger.warning("Cache get failed for %s: %s", key, err)
            return None
        if record is None:
            return None
        try:
            return json.loads(record["payload"])
        except (KeyError, ValueError) as err:
            logger.warning("Discarding unreadable cache entry %s: %s", key, err)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        try:
            await self._store.put(
                self._key(key),
                {"payload": json.dumps(value)},
                int(ttl * 1000),
            )
        except StoreUnavailable as err:
            logger.warning("Cache set failed for %s: %s", key, err)

    async def delete(self, *keys: str) -> None:
        try:
            await self._store.delete(*(self._key(key) for key in keys))
        except StoreUnavailable as err:
            logger.warning("Cache delete failed for %s: %s", ", ".join(keys), err)

    async def remember(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any | None]],
        ttl_seconds: int | None = None,
        *,
        cache_if: Callable[[Any], bool] | None = None,
    ) -> Any | None:
        """Return the cached value for ``key`` or load, cache and return it.

        ``None`` results from the loader are not cached, nor are values
        rejected by ``cache_if``.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None and (cache_if is None or cache_if(value)):
            await self.set(key, value, ttl_seconds)
        return value


def get_read_cache() -> ReadCache:
    """Return a cache bound to the process-wide backing store."""
    return ReadCache(get_store())
