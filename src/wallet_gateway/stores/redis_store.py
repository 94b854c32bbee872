"""Redis-backed store for multi-instance deployments.

Compound operations run as Lua scripts so each one is a single atomic unit
on the server, and every round trip is bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Mapping
from typing import Any, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from wallet_gateway.core.errors import StoreUnavailable
from wallet_gateway.stores.base import BackingStore, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PATCH_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 0
end
redis.call('HSET', KEYS[1], unpack(ARGV))
return 1
"""

_CLAIM_LUA = """
local flag = redis.call('HGET', KEYS[1], ARGV[1])
if not flag or flag == '1' then
  return false
end
redis.call('HSET', KEYS[1], ARGV[1], '1')
if #ARGV > 1 then
  redis.call('HSET', KEYS[1], unpack(ARGV, 2))
end
return redis.call('HGETALL', KEYS[1])
"""

_HIT_LUA = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
  redis.call('PEXPIRE', KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


def _flatten(fields: Mapping[str, str]) -> list[str]:
    flat: list[str] = []
    for name, value in fields.items():
        flat.extend((name, value))
    return flat


def _pairs(values: list[Any]) -> Record:
    return {str(values[i]): str(values[i + 1]) for i in range(0, len(values), 2)}


class RedisStore(BackingStore):
    """Backing store speaking to Redis through ``redis.asyncio``."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 0.5,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._redis = client or aioredis.from_url(url, decode_responses=True)
        self._timeout = timeout_seconds
        self._patch = self._redis.register_script(_PATCH_LUA)
        self._claim = self._redis.register_script(_CLAIM_LUA)
        self._hit = self._redis.register_script(_HIT_LUA)

    async def _call(self, operation: str, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as err:
            logger.debug("Redis %s failed for %s: %s", operation, key, err)
            raise StoreUnavailable(f"redis {operation} failed") from err

    async def put(self, key: str, mapping: Mapping[str, str], ttl_ms: int) -> None:
        async def _transaction() -> None:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=dict(mapping))
                pipe.pexpire(key, int(ttl_ms))
                await pipe.execute()

        await self._call("put", key, _transaction())

    async def fetch(self, key: str) -> Record | None:
        values = await self._call("fetch", key, self._redis.hgetall(key))
        return dict(values) if values else None

    async def patch(self, key: str, fields: Mapping[str, str]) -> bool:
        if not fields:
            return bool(await self._call("exists", key, self._redis.exists(key)))
        result = await self._call("patch", key, self._patch(keys=[key], args=_flatten(fields)))
        return bool(result)

    async def claim(
        self,
        key: str,
        flag: str,
        extra: Mapping[str, str] | None = None,
    ) -> Record | None:
        args = [flag, *_flatten(extra or {})]
        result = await self._call("claim", key, self._claim(keys=[key], args=args))
        if not result:
            return None
        return _pairs(list(result))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("delete", ",".join(keys), self._redis.delete(*keys)))

    async def hit(self, key: str, window_ms: int) -> tuple[int, int]:
        count, ttl = await self._call("hit", key, self._hit(keys=[key], args=[int(window_ms)]))
        return int(count), max(0, int(ttl))

    async def window(self, key: str) -> tuple[int, int]:
        async def _read() -> tuple[Any, Any]:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.get(key)
                pipe.pttl(key)
                count, ttl = await pipe.execute()
            return count, ttl

        count, ttl = await self._call("window", key, _read())
        if count is None:
            return 0, 0
        return int(count), max(0, int(ttl))

    async def ping(self) -> bool:
        return bool(await self._call("ping", "-", self._redis.ping()))

    async def close(self) -> None:
        await self._redis.aclose()
