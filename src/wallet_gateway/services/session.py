"""Server-side wallet session records."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from wallet_gateway.core.settings import settings
from wallet_gateway.core.time import Clock, system_clock, to_ms
from wallet_gateway.stores import BackingStore, Record, get_store

logger = logging.getLogger(__name__)

SESSION_PREFIX = "sess:"


@dataclass(frozen=True)
class Session:
    """A wallet connection, unverified until its challenge is signed."""

    id: str
    wallet_address: str
    chain_id: int
    created_at: int
    last_activity_at: int
    verified: bool = False
    verified_at: int | None = None
    user_agent: str | None = None
    ip_address: str | None = None

    def to_record(self) -> Record:
        record = {
            "id": self.id,
            "wallet_address": self.wallet_address,
            "chain_id": str(self.chain_id),
            "created_at": str(self.created_at),
            "last_activity_at": str(self.last_activity_at),
            "verified": "1" if self.verified else "0",
        }
        if self.verified_at is not None:
            record["verified_at"] = str(self.verified_at)
        if self.user_agent is not None:
            record["user_agent"] = self.user_agent
        if self.ip_address is not None:
            record["ip_address"] = self.ip_address
        return record

    @classmethod
    def from_record(cls, record: Record) -> Session:
        verified_at = record.get("verified_at")
        return cls(
            id=record["id"],
            wallet_address=record["wallet_address"],
            chain_id=int(record["chain_id"]),
            created_at=int(record["created_at"]),
            last_activity_at=int(record["last_activity_at"]),
            verified=record.get("verified") == "1",
            verified_at=int(verified_at) if verified_at else None,
            user_agent=record.get("user_agent"),
            ip_address=record.get("ip_address"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(**data)


class SessionStore:
    """Owns session lifecycle: create, read, touch, verify, destroy.

    Sessions carry an absolute TTL fixed at creation; touching or verifying
    a session never extends it.
    """

    def __init__(
        self,
        store: BackingStore,
        *,
        ttl_seconds: int | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds
        self._clock = clock

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    async def create(
        self,
        session_id: str,
        wallet_address: str,
        chain_id: int,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> Session:
        now_ms = to_ms(self._clock())
        session = Session(
            id=session_id,
            wallet_address=wallet_address,
            chain_id=chain_id,
            created_at=now_ms,
            last_activity_at=now_ms,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        await self._store.put(self._key(session_id), session.to_record(), self.ttl_seconds * 1000)
        return session

    async def get(self, session_id: str) -> Session | None:
        record = await self._store.fetch(self._key(session_id))
        return Session.from_record(record) if record else None

    async def touch(self, session_id: str) -> bool:
        """Update ``last_activity_at``. Returns False if the session is gone."""
        return await self._store.patch(
            self._key(session_id),
            {"last_activity_at": str(to_ms(self._clock()))},
        )

    async def verify(self, session_id: str) -> Session | None:
        """Promote a session to verified.

        Promotion happens once; a session that is already verified keeps its
        original ``verified_at``.

        Returns:
            The verified session, or None if it no longer exists
        """
        now_ms = to_ms(self._clock())
        record = await self._store.claim(
            self._key(session_id),
            "verified",
            {"verified_at": str(now_ms), "last_activity_at": str(now_ms)},
        )
        if record is not None:
            return Session.from_record(record)
        session = await self.get(session_id)
        if session is not None and session.verified:
            return session
        return None

    async def destroy(self, session_id: str) -> bool:
        return bool(await self._store.delete(self._key(session_id)))


def get_session_store() -> SessionStore:
    """Return a session store bound to the process-wide backing store."""
    return SessionStore(get_store())
