"""Session-bound CSRF tokens for state-changing browser requests."""

from __future__ import annotations

import hmac
import logging
import secrets

from wallet_gateway.core.errors import StoreUnavailable
from wallet_gateway.core.settings import settings
from wallet_gateway.core.time import Clock, system_clock, to_ms
from wallet_gateway.stores import BackingStore

logger = logging.getLogger(__name__)

CSRF_PREFIX = "csrf:"


class CsrfTokenStore:
    """Issues random tokens that are only accepted alongside their session id.

    Tokens stay valid until they expire or are revoked; validation does not
    consume them. Validation fails closed when the store is unreachable.
    """

    def __init__(
        self,
        store: BackingStore,
        *,
        ttl_seconds: int | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self.ttl_seconds = ttl_seconds or settings.csrf_ttl_seconds
        self._clock = clock

    @staticmethod
    def _key(token: str) -> str:
        return f"{CSRF_PREFIX}{token}"

    async def issue(self, session_id: str) -> str:
        token = secrets.token_urlsafe(32)
        await self._store.put(
            self._key(token),
            {"session_id": session_id, "issued_at": str(to_ms(self._clock()))},
            self.ttl_seconds * 1000,
        )
        return token

    async def validate(self, token: str, session_id: str) -> bool:
        """Return True if ``token`` was issued to ``session_id`` and is unexpired."""
        if not token or not session_id:
            return False
        try:
            record = await self._store.fetch(self._key(token))
        except StoreUnavailable as err:
            logger.error("CSRF store unavailable, rejecting token: %s", err)
            return False
        if record is None:
            return False
        return hmac.compare_digest(record.get("session_id", "").encode(), session_id.encode())

    async def revoke(self, token: str) -> bool:
        return bool(await self._store.delete(self._key(token)))

