"""Wallet address to session bindings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wallet_gateway.core.errors import StoreUnavailable
from wallet_gateway.core.time import Clock, system_clock, to_ms
from wallet_gateway.services.session import SessionStore, get_session_store
from wallet_gateway.stores import BackingStore, Record, get_store

logger = logging.getLogger(__name__)

WALLET_SESSION_PREFIX = "wallet:"


@dataclass(frozen=True)
class ConnectionMetadata:
    """Client details captured when a wallet connects."""

    chain_id: int
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class WalletBinding:
    """The session currently bound to a wallet address."""

    wallet_address: str
    session_id: str
    chain_id: int
    connected_at: int
    last_activity: int
    nonce: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None

    def to_record(self) -> Record:
        record = {
            "wallet_address": self.wallet_address,
            "session_id": self.session_id,
            "chain_id": str(self.chain_id),
            "connected_at": str(self.connected_at),
            "last_activity": str(self.last_activity),
        }
        for name in ("nonce", "user_agent", "ip_address"):
            value = getattr(self, name)
            if value is not None:
                record[name] = value
        return record

    @classmethod
    def from_record(cls, record: Record) -> WalletBinding:
        return cls(
            wallet_address=record["wallet_address"],
            session_id=record["session_id"],
            chain_id=int(record["chain_id"]),
            connected_at=int(record["connected_at"]),
            last_activity=int(record["last_activity"]),
            nonce=record.get("nonce"),
            user_agent=record.get("user_agent"),
            ip_address=record.get("ip_address"),
        )


class WalletSessionManager:
    """Tracks which session a wallet is connected through.

    A reconnect overwrites the previous binding. Bindings expire with the
    session TTL; expiry itself stays with the session store.
    """

    def __init__(
        self,
        store: BackingStore,
        sessions: SessionStore,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._clock = clock

    @staticmethod
    def _key(wallet_address: str) -> str:
        return f"{WALLET_SESSION_PREFIX}{wallet_address}"

    async def create_wallet_session(
        self,
        wallet_address: str,
        session_id: str,
        metadata: ConnectionMetadata,
        *,
        nonce: str | None = None,
    ) -> WalletBinding:
        now_ms = to_ms(self._clock())
        binding = WalletBinding(
            wallet_address=wallet_address,
            session_id=session_id,
            chain_id=metadata.chain_id,
            connected_at=now_ms,
            last_activity=now_ms,
            nonce=nonce,
            user_agent=metadata.user_agent,
            ip_address=metadata.ip_address,
        )
        await self._store.put(
            self._key(wallet_address),
            binding.to_record(),
            self._sessions.ttl_seconds * 1000,
        )
        return binding

    async def get_binding(self, wallet_address: str) -> WalletBinding | None:
        record = await self._store.fetch(self._key(wallet_address))
        return WalletBinding.from_record(record) if record else None

    async def validate_wallet_session(self, wallet_address: str, session_id: str) -> bool:
        """Return True if ``session_id`` is the live session bound to the wallet.

        An unreachable store counts as an invalid binding.
        """
        try:
            binding = await self.get_binding(wallet_address)
        except StoreUnavailable as err:
            logger.error("Cannot validate wallet session for %s: %s", wallet_address, err)
            return False
        return binding is not None and binding.session_id == session_id

    async def update_last_activity(self, wallet_address: str) -> bool:
        """Touch the binding and its session. Returns False if nothing is bound."""
        binding = await self.get_binding(wallet_address)
        if binding is None:
            return False
        now_ms = str(to_ms(self._clock()))
        updated = await self._store.patch(self._key(wallet_address), {"last_activity": now_ms})
        await self._sessions.touch(binding.session_id)
        return updated

    async def disconnect_wallet(self, wallet_address: str, session_id: str | None = None) -> bool:
        """Remove the binding for a wallet.

        When ``session_id`` is given, a binding that belongs to another
        session is left alone. Safe to call repeatedly.

        Returns:
            True if a binding was removed
        """
        if session_id is not None:
            binding = await self.get_binding(wallet_address)
            if binding is None or binding.session_id != session_id:
                return False
        return bool(await self._store.delete(self._key(wallet_address)))


def get_wallet_session_manager() -> WalletSessionManager:
    """Return a manager bound to the process-wide backing store."""
    return WalletSessionManager(get_store(), get_session_store())
