"""Wallet authentication flow: connect, verify, query, disconnect.

Per wallet address the flow moves ``Disconnected -> Connecting -> Verified ->
Disconnected``. Rate limiting fails open; session and nonce validation fail
closed. Abandoned challenges need no cleanup: their records expire.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from wallet_gateway.core.errors import (
    InvalidCsrfToken,
    InvalidNonce,
    InvalidSession,
    InvalidSignature,
    NotFound,
    StoreUnavailable,
)
from wallet_gateway.core.settings import settings
from wallet_gateway.core.time import Clock, system_clock, to_ms
from wallet_gateway.services.cache import ReadCache
from wallet_gateway.services.csrf import CsrfTokenStore
from wallet_gateway.services.nonce import WALLET_VERIFICATION, NonceStore
from wallet_gateway.services.rate_limit import (
    RateLimitRegistry,
    RateLimitResult,
    wallet_identifier,
)
from wallet_gateway.services.session import Session, SessionStore
from wallet_gateway.services.signature import SignatureVerifier, get_signature_verifier
from wallet_gateway.services.wallet_session import ConnectionMetadata, WalletSessionManager
from wallet_gateway.stores import BackingStore, get_store

logger = logging.getLogger(__name__)

CONNECT_CATEGORY = "wallet_connect"
VERIFY_CATEGORY = "auth"

# Identifier prefixes the gateway uses per limiter category.
_IDENTIFIER_PREFIXES = {
    CONNECT_CATEGORY: "connect:",
    VERIFY_CATEGORY: "verify:",
}


def metadata_cache_key(address: str) -> str:
    return f"wallet:metadata:{address}"


def verified_cache_key(session_id: str) -> str:
    return f"wallet:verified:{session_id}"


def session_cache_key(session_id: str) -> str:
    return f"session:{session_id}"


@dataclass(frozen=True)
class ConnectResult:
    session_id: str
    nonce: str
    message: str
    expires_at: int


@dataclass(frozen=True)
class VerifyResult:
    verified: bool
    session_id: str
    wallet_address: str


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    verified: bool
    last_connected: int | None = None
    chain_id: int | None = None
    session_id: str | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_time: int
    type: str


def build_challenge_message(app_name: str, nonce: str, timestamp_ms: int) -> str:
    """Return the text a wallet signs to prove control of its address."""
    return f"Connect to {app_name}\nNonce: {nonce}\nTimestamp: {timestamp_ms}"


class AuthGateway:
    """Coordinates rate limits, sessions, bindings and nonces for wallet login."""

    def __init__(
        self,
        *,
        rate_limits: RateLimitRegistry,
        nonces: NonceStore,
        sessions: SessionStore,
        wallet_sessions: WalletSessionManager,
        cache: ReadCache,
        verifier: SignatureVerifier,
        csrf_tokens: CsrfTokenStore,
        clock: Clock = system_clock,
        app_name: str | None = None,
        single_active_challenge: bool | None = None,
        session_cache_ttl_seconds: int | None = None,
        wallet_cache_ttl_seconds: int | None = None,
    ) -> None:
        self.rate_limits = rate_limits
        self.nonces = nonces
        self.sessions = sessions
        self.wallet_sessions = wallet_sessions
        self.cache = cache
        self.verifier = verifier
        self.csrf_tokens = csrf_tokens
        self._clock = clock
        self._app_name = app_name or settings.app_name
        self._single_active_challenge = (
            settings.single_active_challenge
            if single_active_challenge is None
            else single_active_challenge
        )
        self._session_cache_ttl = session_cache_ttl_seconds or settings.session_cache_ttl_seconds
        self._wallet_cache_ttl = wallet_cache_ttl_seconds or settings.wallet_cache_ttl_seconds

    @classmethod
    def from_store(
        cls,
        store: BackingStore,
        *,
        verifier: SignatureVerifier | None = None,
        limits: dict[str, tuple[int, int]] | None = None,
        clock: Clock = system_clock,
        **options: Any,
    ) -> AuthGateway:
        """Wire a gateway whose components all share ``store``."""
        sessions = SessionStore(store, clock=clock)
        return cls(
            rate_limits=RateLimitRegistry(store, limits, clock=clock),
            nonces=NonceStore(store, clock=clock),
            sessions=sessions,
            wallet_sessions=WalletSessionManager(store, sessions, clock=clock),
            cache=ReadCache(store),
            verifier=verifier or get_signature_verifier(),
            csrf_tokens=CsrfTokenStore(store, clock=clock),
            clock=clock,
            **options,
        )

    def _now_ms(self) -> int:
        return to_ms(self._clock())

    async def _revoke_previous_challenge(self, address: str) -> None:
        binding = await self.wallet_sessions.get_binding(address)
        if binding is None:
            return
        if binding.nonce:
            await self.nonces.revoke(binding.nonce)
        await self.sessions.destroy(binding.session_id)
        await self.cache.delete(
            session_cache_key(binding.session_id),
            verified_cache_key(binding.session_id),
        )
        logger.info("Revoked previous challenge for %s (session %s)", address, binding.session_id)

    async def connect(
        self,
        address: str,
        chain_id: int,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> ConnectResult:
        """Open an unverified session and issue its signing challenge.

        Raises:
            RateLimited: If the wallet-connect allowance is exhausted
            StoreUnavailable: If the session or nonce could not be stored
        """
        await self.rate_limits.check(CONNECT_CATEGORY, f"connect:{address}")

        try:
            if self._single_active_challenge:
                await self._revoke_previous_challenge(address)

            session_id = str(uuid.uuid4())
            session = await self.sessions.create(
                session_id,
                address,
                chain_id,
                user_agent=user_agent,
                ip_address=ip_address,
            )
            nonce = await self.nonces.issue(address, session_id, WALLET_VERIFICATION)
            await self.wallet_sessions.create_wallet_session(
                address,
                session_id,
                ConnectionMetadata(chain_id=chain_id, user_agent=user_agent, ip_address=ip_address),
                nonce=nonce.value,
            )
        except StoreUnavailable:
            logger.exception("Wallet connection failed for %s", address)
            raise

        now_ms = self._now_ms()
        await self.cache.set(
            metadata_cache_key(address),
            {
                "address": address,
                "chainId": chain_id,
                "lastConnected": now_ms,
                "sessionId": session_id,
            },
            self._wallet_cache_ttl,
        )

        return ConnectResult(
            session_id=session_id,
            nonce=nonce.value,
            message=build_challenge_message(self._app_name, nonce.value, now_ms),
            expires_at=session.created_at + self.sessions.ttl_seconds * 1000,
        )

    async def verify(
        self,
        address: str,
        signature: str,
        message: str,
        nonce: str,
        session_id: str,
    ) -> VerifyResult:
        """Redeem a signed challenge and promote its session to verified.

        Raises:
            RateLimited: If the auth allowance is exhausted
            InvalidSession: If the session is missing, expired or not bound to ``address``
            InvalidNonce: If the nonce is unknown, expired, reused or bound elsewhere
            InvalidSignature: If the signature does not prove control of ``address``
        """
        await self.rate_limits.check(VERIFY_CATEGORY, f"verify:{address}")

        if not await self.wallet_sessions.validate_wallet_session(address, session_id):
            raise InvalidSession()
        try:
            session = await self.sessions.get(session_id)
        except StoreUnavailable as err:
            logger.error("Cannot load session %s: %s", session_id, err)
            raise InvalidSession() from err
        if session is None or session.wallet_address != address:
            raise InvalidSession()

        if not await self.nonces.consume(nonce, wallet_address=address, session_id=session_id):
            raise InvalidNonce()

        if f"Nonce: {nonce}" not in message:
            logger.info("Signed message for %s does not embed its nonce", address)
            raise InvalidSignature()
        if not self.verifier.verify(address, message, signature):
            raise InvalidSignature()

        try:
            promoted = await self.sessions.verify(session_id)
            if promoted is None:
                raise InvalidSession()
            await self.wallet_sessions.update_last_activity(address)
        except StoreUnavailable:
            logger.exception("Could not promote session %s for %s", session_id, address)
            raise

        await self.cache.set(
            verified_cache_key(session_id),
            {"verified": True, "verifiedAt": promoted.verified_at},
            self._wallet_cache_ttl,
        )
        await self.cache.delete(session_cache_key(session_id))
        logger.info("Wallet %s verified session %s", address, session_id)

        return VerifyResult(verified=True, session_id=session_id, wallet_address=address)

    async def _load_session_dict(self, session_id: str) -> dict[str, Any] | None:
        session = await self.sessions.get(session_id)
        return session.to_dict() if session else None

    async def get_session(self, session_id: str, address: str) -> Session:
        """Return the session bound to ``address``.

        Only verified snapshots are cached: verification never reverts, so a
        reader racing ``verify`` cannot pin a stale unverified copy. The
        binding is always read from the store.

        Raises:
            NotFound: If the session does not exist
            InvalidSession: If it belongs to another wallet or is no longer bound
        """
        try:
            data = await self.cache.remember(
                session_cache_key(session_id),
                lambda: self._load_session_dict(session_id),
                self._session_cache_ttl,
                cache_if=lambda loaded: bool(loaded.get("verified")),
            )
        except StoreUnavailable as err:
            logger.error("Cannot load session %s: %s", session_id, err)
            raise InvalidSession() from err
        if data is None:
            raise NotFound()

        session = Session.from_dict(data)
        if session.wallet_address != address:
            raise InvalidSession()
        if not await self.wallet_sessions.validate_wallet_session(address, session_id):
            await self.cache.delete(session_cache_key(session_id))
            try:
                current = await self.sessions.get(session_id)
            except StoreUnavailable as err:
                raise InvalidSession() from err
            if current is None:
                raise NotFound()
            raise InvalidSession()
        return session

    async def _load_metadata(self, address: str) -> dict[str, Any] | None:
        binding = await self.wallet_sessions.get_binding(address)
        if binding is None:
            return None
        session = await self.sessions.get(binding.session_id)
        if session is None:
            return None
        return {
            "address": address,
            "chainId": session.chain_id,
            "lastConnected": binding.connected_at,
            "sessionId": session.id,
        }

    async def _load_verification(self, session_id: str) -> dict[str, Any] | None:
        session = await self.sessions.get(session_id)
        if session is None or not session.verified:
            return None
        return {"verified": True, "verifiedAt": session.verified_at}

    async def get_connection_status(self, address: str) -> ConnectionStatus:
        """Report whether ``address`` has a live and/or verified session.

        Cached metadata is only trusted while the wallet binding still points
        at its session; otherwise it is dropped and reloaded from the store.
        A store outage is reported as disconnected.
        """
        key = metadata_cache_key(address)
        try:
            metadata = await self.cache.remember(
                key,
                lambda: self._load_metadata(address),
                self._wallet_cache_ttl,
            )
            if metadata is not None and not await self.wallet_sessions.validate_wallet_session(
                address, metadata["sessionId"]
            ):
                await self.cache.delete(key)
                metadata = await self._load_metadata(address)
            if metadata is None:
                return ConnectionStatus(connected=False, verified=False)
            verification = await self.cache.remember(
                verified_cache_key(metadata["sessionId"]),
                lambda: self._load_verification(metadata["sessionId"]),
                self._wallet_cache_ttl,
            )
        except StoreUnavailable as err:
            logger.error("Connection status unavailable for %s: %s", address, err)
            return ConnectionStatus(connected=False, verified=False)

        return ConnectionStatus(
            connected=True,
            verified=bool(verification and verification.get("verified")),
            last_connected=metadata.get("lastConnected"),
            chain_id=metadata.get("chainId"),
            session_id=metadata.get("sessionId"),
        )

    async def disconnect(self, session_id: str, address: str) -> bool:
        """Tear down the session, its wallet binding and derived cache entries.

        Idempotent: disconnecting twice, or a session that already expired,
        still succeeds. A session belonging to another wallet is not touched.
        """
        try:
            session = await self.sessions.get(session_id)
            if session is None or session.wallet_address == address:
                await self.sessions.destroy(session_id)
            await self.wallet_sessions.disconnect_wallet(address, session_id)
        except StoreUnavailable:
            logger.exception("Wallet disconnect failed for %s", address)
            raise

        await self.cache.delete(
            metadata_cache_key(address),
            verified_cache_key(session_id),
            session_cache_key(session_id),
        )
        logger.info("Wallet %s disconnected session %s", address, session_id)
        return True

    async def issue_csrf_token(self, session_id: str, address: str) -> tuple[str, int]:
        """Issue a CSRF token for a verified session.

        Returns:
            Tuple of (token, expiry in epoch milliseconds)

        Raises:
            NotFound: If the session does not exist
            InvalidSession: If it is unverified, unbound or owned by another wallet
        """
        session = await self.get_session(session_id, address)
        if not session.verified:
            raise InvalidSession()
        token = await self.csrf_tokens.issue(session_id)
        return token, self._now_ms() + self.csrf_tokens.ttl_seconds * 1000

    async def check_csrf_token(self, token: str, session_id: str) -> None:
        """Raise ``InvalidCsrfToken`` unless ``token`` belongs to a live ``session_id``."""
        if not await self.csrf_tokens.validate(token, session_id):
            raise InvalidCsrfToken()
        try:
            session = await self.sessions.get(session_id)
        except StoreUnavailable as err:
            raise InvalidCsrfToken() from err
        if session is None:
            raise InvalidCsrfToken()

    async def get_rate_limit_status(self, address: str, category: str) -> RateLimitStatus:
        """Inspect the bucket counted for ``address`` in ``category`` without consuming it.

        Raises:
            KeyError: If the category is not configured
        """
        prefix = _IDENTIFIER_PREFIXES.get(category)
        identifier = f"{prefix}{address}" if prefix else wallet_identifier(address)
        result: RateLimitResult = await self.rate_limits.status(category, identifier)
        return RateLimitStatus(
            allowed=result.allowed,
            remaining=result.remaining,
            reset_time=result.reset_at,
            type=category,
        )


def get_auth_gateway() -> AuthGateway:
    """Return a gateway wired to the process-wide backing store."""
    return AuthGateway.from_store(get_store())
