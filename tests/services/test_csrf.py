"""Tests for session-bound CSRF tokens."""

import pytest

from wallet_gateway.core.errors import InvalidCsrfToken, InvalidSession, StoreUnavailable
from wallet_gateway.services.csrf import CsrfTokenStore
from wallet_gateway.services.gateway import AuthGateway
from wallet_gateway.stores import MemoryStore


@pytest.fixture
def csrf_tokens(store: MemoryStore, clock) -> CsrfTokenStore:
    return CsrfTokenStore(store, ttl_seconds=60, clock=clock)


async def _verified_session(gateway: AuthGateway, wallet) -> str:
    result = await gateway.connect(wallet.address, 1)
    await gateway.verify(
        wallet.address, wallet.sign(result.message), result.message, result.nonce, result.session_id
    )
    return result.session_id


@pytest.mark.asyncio
async def test_token_is_bound_to_its_session(csrf_tokens: CsrfTokenStore) -> None:
    token = await csrf_tokens.issue("session-a")

    assert len(token) >= 32
    assert await csrf_tokens.validate(token, "session-a") is True
    assert await csrf_tokens.validate(token, "session-a") is True
    assert await csrf_tokens.validate(token, "session-b") is False
    assert await csrf_tokens.validate("forged", "session-a") is False
    assert await csrf_tokens.validate("", "session-a") is False


@pytest.mark.asyncio
async def test_token_expires_and_can_be_revoked(csrf_tokens: CsrfTokenStore, clock) -> None:
    expiring = await csrf_tokens.issue("s")
    revoked = await csrf_tokens.issue("s")

    assert await csrf_tokens.revoke(revoked) is True
    assert await csrf_tokens.validate(revoked, "s") is False

    clock.advance(60)
    assert await csrf_tokens.validate(expiring, "s") is False


@pytest.mark.asyncio
async def test_validation_fails_closed_on_outage(
    csrf_tokens: CsrfTokenStore, store: MemoryStore, mocker
) -> None:
    token = await csrf_tokens.issue("s")
    mocker.patch.object(store, "fetch", side_effect=StoreUnavailable("down"))

    assert await csrf_tokens.validate(token, "s") is False


@pytest.mark.asyncio
async def test_gateway_issues_tokens_only_for_verified_sessions(
    gateway: AuthGateway, wallet, other_wallet, clock
) -> None:
    pending = await gateway.connect(other_wallet.address, 1)
    with pytest.raises(InvalidSession):
        await gateway.issue_csrf_token(pending.session_id, other_wallet.address)

    session_id = await _verified_session(gateway, wallet)
    token, expires_at = await gateway.issue_csrf_token(session_id, wallet.address)

    assert expires_at == clock.now_ms + gateway.csrf_tokens.ttl_seconds * 1000
    await gateway.check_csrf_token(token, session_id)
    with pytest.raises(InvalidCsrfToken):
        await gateway.check_csrf_token(token, pending.session_id)


@pytest.mark.asyncio
async def test_disconnect_invalidates_csrf_token(gateway: AuthGateway, wallet) -> None:
    session_id = await _verified_session(gateway, wallet)
    token, _ = await gateway.issue_csrf_token(session_id, wallet.address)

    await gateway.disconnect(session_id, wallet.address)

    with pytest.raises(InvalidCsrfToken):
        await gateway.check_csrf_token(token, session_id)
