"""In-process backing store partitioned by key.

Each key maps to one of ``shards`` locks, so contention on one wallet or
session never blocks unrelated keys. Critical sections never await.
"""

from __future__ import annotations

import zlib
from collections.abc import Mapping
from dataclasses import dataclass
from threading import Lock

from wallet_gateway.core.time import Clock, system_clock, to_ms
from wallet_gateway.stores.base import BackingStore, Record


@dataclass
class _Entry:
    value: dict[str, str] | int
    expires_at_ms: int | None


class MemoryStore(BackingStore):
    """Backing store living in the current process."""

    def __init__(self, *, shards: int = 64, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._data: dict[str, _Entry] = {}
        self._locks = [Lock() for _ in range(max(1, shards))]

    def _lock_for(self, key: str) -> Lock:
        return self._locks[zlib.crc32(key.encode()) % len(self._locks)]

    def _now_ms(self) -> int:
        return to_ms(self._clock())

    def _live(self, key: str, now_ms: int) -> _Entry | None:
        """Return the live entry for ``key``; caller holds its lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at_ms is not None and entry.expires_at_ms <= now_ms:
            del self._data[key]
            return None
        return entry

    async def put(self, key: str, mapping: Mapping[str, str], ttl_ms: int) -> None:
        with self._lock_for(key):
            self._data[key] = _Entry(dict(mapping), self._now_ms() + int(ttl_ms))

    async def fetch(self, key: str) -> Record | None:
        with self._lock_for(key):
            entry = self._live(key, self._now_ms())
            if entry is None or not isinstance(entry.value, dict):
                return None
            return dict(entry.value)

    async def patch(self, key: str, fields: Mapping[str, str]) -> bool:
        with self._lock_for(key):
            entry = self._live(key, self._now_ms())
            if entry is None or not isinstance(entry.value, dict):
                return False
            entry.value.update(fields)
            return True

    async def claim(
        self,
        key: str,
        flag: str,
        extra: Mapping[str, str] | None = None,
    ) -> Record | None:
        with self._lock_for(key):
            entry = self._live(key, self._now_ms())
            if entry is None or not isinstance(entry.value, dict):
                return None
            current = entry.value.get(flag)
            if current is None or current == "1":
                return None
            entry.value[flag] = "1"
            if extra:
                entry.value.update(extra)
            return dict(entry.value)

    async def delete(self, *keys: str) -> int:
        removed = 0
        now_ms = self._now_ms()
        for key in keys:
            with self._lock_for(key):
                if self._live(key, now_ms) is not None:
                    del self._data[key]
                    removed += 1
        return removed

    async def hit(self, key: str, window_ms: int) -> tuple[int, int]:
        with self._lock_for(key):
            now_ms = self._now_ms()
            entry = self._live(key, now_ms)
            if entry is None or not isinstance(entry.value, int):
                entry = _Entry(0, now_ms + int(window_ms))
                self._data[key] = entry
            entry.value += 1
            expires_at_ms = entry.expires_at_ms or now_ms
            return entry.value, max(0, expires_at_ms - now_ms)

    async def window(self, key: str) -> tuple[int, int]:
        with self._lock_for(key):
            now_ms = self._now_ms()
            entry = self._live(key, now_ms)
            if entry is None or not isinstance(entry.value, int):
                return 0, 0
            expires_at_ms = entry.expires_at_ms or now_ms
            return entry.value, max(0, expires_at_ms - now_ms)

    async def ping(self) -> bool:
        return True

    async def purge_expired(self) -> int:
        purged = 0
        now_ms = self._now_ms()
        for key in list(self._data):
            with self._lock_for(key):
                entry = self._data.get(key)
                if entry is None or entry.expires_at_ms is None:
                    continue
                if entry.expires_at_ms <= now_ms:
                    del self._data[key]
                    purged += 1
        return purged

    def __len__(self) -> int:
        return len(self._data)
