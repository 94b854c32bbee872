"""Single-use challenge nonces preventing signature replay."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from wallet_gateway.core.errors import FailurePolicy, StoreUnavailable
from wallet_gateway.core.settings import settings
from wallet_gateway.core.time import Clock, system_clock, to_ms
from wallet_gateway.stores import BackingStore, Record, get_store

logger = logging.getLogger(__name__)

NONCE_PREFIX = "nonce:"
WALLET_VERIFICATION = "wallet_verification"


@dataclass(frozen=True)
class Nonce:
    """A challenge token bound to one wallet and one session."""

    value: str
    wallet_address: str
    session_id: str
    purpose: str
    issued_at: int
    consumed: bool = False

    def to_record(self) -> Record:
        return {
            "value": self.value,
            "wallet_address": self.wallet_address,
            "session_id": self.session_id,
            "purpose": self.purpose,
            "issued_at": str(self.issued_at),
            "consumed": "1" if self.consumed else "0",
        }

    @classmethod
    def from_record(cls, record: Record) -> Nonce:
        return cls(
            value=record["value"],
            wallet_address=record["wallet_address"],
            session_id=record["session_id"],
            purpose=record.get("purpose", WALLET_VERIFICATION),
            issued_at=int(record.get("issued_at", "0")),
            consumed=record.get("consumed") == "1",
        )


class NonceStore:
    """Issues and redeems nonces.

    Redemption flips the ``consumed`` flag in a single store operation, so
    concurrent redeemers of the same nonce see exactly one success. Nonce
    TTL is tracked on its own record, independent of the session it names.
    """

    def __init__(
        self,
        store: BackingStore,
        *,
        ttl_seconds: int | None = None,
        policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._ttl_ms = int((ttl_seconds or settings.nonce_ttl_seconds) * 1000)
        self._policy = policy
        self._clock = clock

    @staticmethod
    def _key(value: str) -> str:
        return f"{NONCE_PREFIX}{value}"

    async def issue(
        self,
        wallet_address: str,
        session_id: str,
        purpose: str = WALLET_VERIFICATION,
    ) -> Nonce:
        """Create a fresh nonce for a wallet/session pair."""
        nonce = Nonce(
            value=str(uuid.uuid4()),
            wallet_address=wallet_address,
            session_id=session_id,
            purpose=purpose,
            issued_at=to_ms(self._clock()),
        )
        await self._store.put(self._key(nonce.value), nonce.to_record(), self._ttl_ms)
        return nonce

    async def consume(
        self,
        value: str,
        *,
        wallet_address: str | None = None,
        session_id: str | None = None,
    ) -> bool:
        """Redeem a nonce once.

        The nonce is burnt even when the binding check fails, so a mismatched
        attempt cannot be retried with the same token.

        Returns:
            True iff the nonce existed, was unconsumed, unexpired and bound to
            the given wallet and session (when supplied)
        """
        try:
            record = await self._store.claim(self._key(value), "consumed")
        except StoreUnavailable as err:
            if self._policy is FailurePolicy.FAIL_OPEN:
                logger.warning("Nonce store unavailable, accepting %s: %s", value, err)
                return True
            logger.error("Nonce store unavailable, rejecting %s: %s", value, err)
            return False

        if record is None:
            return False
        if wallet_address is not None and record.get("wallet_address") != wallet_address:
            logger.info("Nonce %s presented for a different wallet", value)
            return False
        if session_id is not None and record.get("session_id") != session_id:
            logger.info("Nonce %s presented for a different session", value)
            return False
        return True

    async def get(self, value: str) -> Nonce | None:
        record = await self._store.fetch(self._key(value))
        return Nonce.from_record(record) if record else None

    async def revoke(self, value: str) -> bool:
        """Invalidate an outstanding nonce. Returns True if it existed."""
        return bool(await self._store.delete(self._key(value)))


def get_nonce_store() -> NonceStore:
    """Return a nonce store bound to the process-wide backing store."""
    return NonceStore(get_store())
