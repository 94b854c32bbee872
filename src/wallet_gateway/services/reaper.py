"""Background sweep of expired store entries.

Expired entries are already invisible on access; the reaper only bounds the
memory held by keys nobody touches again.
"""

from __future__ import annotations

import asyncio
import logging

from wallet_gateway.stores import BackingStore

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """Periodically asks the backing store to drop expired entries."""

    def __init__(self, store: BackingStore, *, interval_seconds: float = 300.0) -> None:
        self._store = store
        self._interval = max(0.01, float(interval_seconds))
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run(), name="expiry-reaper")
            logger.info("Expiry reaper started (every %.1fs)", self._interval)

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Expiry reaper stopped")

    async def sweep(self) -> int:
        """Run one sweep and return how many entries were dropped."""
        purged = await self._store.purge_expired()
        if purged:
            logger.debug("Expiry reaper purged %d entries", purged)
        return purged

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            if self._stopping.is_set():
                return
            try:
                await self.sweep()
            except Exception:
                logger.exception("Expiry sweep failed; will retry next cycle")
