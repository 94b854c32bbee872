"""Backing store contract for sessions, nonces and rate-limit buckets."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping

Record = dict[str, str]


class BackingStore(ABC):
    """Async key/value store exposing only atomic primitives.

    Records are flat string mappings. Counters live in their own keys and are
    only touched through :meth:`hit` and :meth:`window`. Every method is a
    single atomic unit against the store; callers never compose a read and a
    write to emulate one.
    """

    @abstractmethod
    async def put(self, key: str, mapping: Mapping[str, str], ttl_ms: int) -> None:
        """Replace the record at ``key`` and give it a fresh TTL."""

    @abstractmethod
    async def fetch(self, key: str) -> Record | None:
        """Return the record at ``key`` or None if it is missing or expired."""

    @abstractmethod
    async def patch(self, key: str, fields: Mapping[str, str]) -> bool:
        """Update fields of an existing record, keeping its TTL.

        Returns:
            True if the record existed and was updated
        """

    @abstractmethod
    async def claim(
        self,
        key: str,
        flag: str,
        extra: Mapping[str, str] | None = None,
    ) -> Record | None:
        """Flip ``flag`` from "0" to "1" on an existing record.

        ``extra`` fields are written in the same step.

        Returns:
            The updated record, or None if the record is missing or already claimed
        """

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def hit(self, key: str, window_ms: int) -> tuple[int, int]:
        """Increment a fixed-window counter.

        The first hit opens the window and sets its TTL to ``window_ms``.

        Returns:
            Tuple of (count within the current window, milliseconds until reset)
        """

    @abstractmethod
    async def window(self, key: str) -> tuple[int, int]:
        """Return (count, milliseconds until reset) without incrementing."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store answers."""

    async def purge_expired(self) -> int:
        """Drop expired entries eagerly. Stores with native expiry return 0."""
        return 0

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
