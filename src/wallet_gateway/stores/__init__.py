# src/wallet_gateway/stores/__init__.py
"""Backing stores for session, nonce and rate-limit state."""

from __future__ import annotations

from functools import lru_cache

from wallet_gateway.core.settings import settings

from .base import BackingStore, Record
from .memory import MemoryStore


@lru_cache(maxsize=1)
def get_store() -> BackingStore:
    """Return the process-wide backing store selected by settings."""
    if settings.store_backend == "redis":
        from .redis_store import RedisStore

        return RedisStore(settings.redis_url, timeout_seconds=settings.store_timeout_seconds)
    return MemoryStore(shards=settings.store_shards)


__all__ = ["BackingStore", "MemoryStore", "Record", "get_store"]
