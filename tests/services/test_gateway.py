"""Tests for the wallet authentication flow."""

import asyncio

import pytest

from wallet_gateway.core.errors import (
    InvalidNonce,
    InvalidSession,
    InvalidSignature,
    NotFound,
    RateLimited,
    StoreUnavailable,
)
from wallet_gateway.core.validation import is_uuid4
from wallet_gateway.services.gateway import AuthGateway, ConnectResult, build_challenge_message
from wallet_gateway.services.rate_limit import wallet_identifier

E2E_ADDRESS = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1111"


class AcceptAllVerifier:
    def verify(self, address: str, message: str, signature: str) -> bool:
        return True


async def _connect_and_sign(gateway: AuthGateway, wallet, chain_id: int = 1):
    result = await gateway.connect(wallet.address, chain_id)
    return result, wallet.sign(result.message)


@pytest.mark.asyncio
async def test_connect_issues_challenge(gateway: AuthGateway, wallet, clock) -> None:
    result = await gateway.connect(wallet.address, 1, user_agent="pytest", ip_address="10.0.0.1")

    assert is_uuid4(result.session_id)
    assert is_uuid4(result.nonce)
    assert result.message == build_challenge_message("Valkyrie Finance", result.nonce, clock.now_ms)
    assert result.expires_at == clock.now_ms + gateway.sessions.ttl_seconds * 1000

    session = await gateway.sessions.get(result.session_id)
    assert session.wallet_address == wallet.address
    assert session.verified is False
    assert session.user_agent == "pytest"


@pytest.mark.asyncio
async def test_connect_then_status_is_connected_unverified(gateway: AuthGateway, wallet) -> None:
    result = await gateway.connect(wallet.address, 137)

    status = await gateway.get_connection_status(wallet.address)

    assert status.connected is True
    assert status.verified is False
    assert status.chain_id == 137
    assert status.session_id == result.session_id


@pytest.mark.asyncio
async def test_verify_flips_status_and_nonce_cannot_be_reused(
    gateway: AuthGateway, wallet
) -> None:
    result, signature = await _connect_and_sign(gateway, wallet)
    await gateway.get_connection_status(wallet.address)

    verified = await gateway.verify(
        wallet.address, signature, result.message, result.nonce, result.session_id
    )

    assert verified.verified is True
    assert verified.wallet_address == wallet.address
    assert (await gateway.get_connection_status(wallet.address)).verified is True

    with pytest.raises(InvalidNonce):
        await gateway.verify(
            wallet.address, signature, result.message, result.nonce, result.session_id
        )


@pytest.mark.asyncio
async def test_verify_rejects_wrong_signer_and_burns_nonce(
    gateway: AuthGateway, wallet, other_wallet
) -> None:
    result = await gateway.connect(wallet.address, 1)

    with pytest.raises(InvalidSignature):
        await gateway.verify(
            wallet.address,
            other_wallet.sign(result.message),
            result.message,
            result.nonce,
            result.session_id,
        )

    with pytest.raises(InvalidNonce):
        await gateway.verify(
            wallet.address,
            wallet.sign(result.message),
            result.message,
            result.nonce,
            result.session_id,
        )
    assert (await gateway.sessions.get(result.session_id)).verified is False


@pytest.mark.asyncio
async def test_verify_requires_nonce_in_signed_message(gateway: AuthGateway, wallet) -> None:
    result = await gateway.connect(wallet.address, 1)
    message = "Connect to Valkyrie Finance"

    with pytest.raises(InvalidSignature):
        await gateway.verify(
            wallet.address, wallet.sign(message), message, result.nonce, result.session_id
        )


@pytest.mark.asyncio
async def test_verify_rejects_session_of_other_wallet(
    gateway: AuthGateway, wallet, other_wallet
) -> None:
    result, signature = await _connect_and_sign(gateway, wallet)

    with pytest.raises(InvalidSession):
        await gateway.verify(
            other_wallet.address, signature, result.message, result.nonce, result.session_id
        )

    # The legitimate wallet can still redeem its challenge.
    assert (
        await gateway.verify(
            wallet.address, signature, result.message, result.nonce, result.session_id
        )
    ).verified is True


@pytest.mark.asyncio
async def test_verify_rejects_expired_session(gateway: AuthGateway, wallet, clock) -> None:
    result, signature = await _connect_and_sign(gateway, wallet)
    clock.advance(gateway.sessions.ttl_seconds)

    with pytest.raises(InvalidSession):
        await gateway.verify(
            wallet.address, signature, result.message, result.nonce, result.session_id
        )


@pytest.mark.asyncio
async def test_concurrent_verify_succeeds_once(gateway: AuthGateway, wallet) -> None:
    result, signature = await _connect_and_sign(gateway, wallet)

    outcomes = await asyncio.gather(
        *(
            gateway.verify(
                wallet.address, signature, result.message, result.nonce, result.session_id
            )
            for _ in range(5)
        ),
        return_exceptions=True,
    )

    assert sum(not isinstance(outcome, Exception) for outcome in outcomes) == 1
    assert all(
        isinstance(outcome, InvalidNonce) for outcome in outcomes if isinstance(outcome, Exception)
    )


@pytest.mark.asyncio
async def test_reconnect_revokes_previous_challenge(gateway: AuthGateway, wallet) -> None:
    first, first_signature = await _connect_and_sign(gateway, wallet)
    second = await gateway.connect(wallet.address, 1)

    assert await gateway.nonces.get(first.nonce) is None
    assert await gateway.sessions.get(first.session_id) is None
    with pytest.raises(InvalidSession):
        await gateway.verify(
            wallet.address, first_signature, first.message, first.nonce, first.session_id
        )

    assert (
        await gateway.verify(
            wallet.address,
            wallet.sign(second.message),
            second.message,
            second.nonce,
            second.session_id,
        )
    ).verified is True


@pytest.mark.asyncio
async def test_reconnect_can_keep_previous_challenge(make_gateway, wallet) -> None:
    gateway = make_gateway(single_active_challenge=False)
    first, first_signature = await _connect_and_sign(gateway, wallet)
    await gateway.connect(wallet.address, 1)

    assert await gateway.nonces.get(first.nonce) is not None
    assert await gateway.sessions.get(first.session_id) is not None

    # Kept, but only the latest binding can be redeemed.
    with pytest.raises(InvalidSession):
        await gateway.verify(
            wallet.address, first_signature, first.message, first.nonce, first.session_id
        )
    assert await gateway.nonces.get(first.nonce) is not None


@pytest.mark.asyncio
async def test_get_session_checks_owner(gateway: AuthGateway, wallet, other_wallet) -> None:
    result = await gateway.connect(wallet.address, 1)

    session = await gateway.get_session(result.session_id, wallet.address)
    assert session.id == result.session_id

    with pytest.raises(InvalidSession):
        await gateway.get_session(result.session_id, other_wallet.address)


@pytest.mark.asyncio
async def test_get_session_reflects_verification(gateway: AuthGateway, wallet) -> None:
    result, signature = await _connect_and_sign(gateway, wallet)
    assert (await gateway.get_session(result.session_id, wallet.address)).verified is False

    await gateway.verify(wallet.address, signature, result.message, result.nonce, result.session_id)

    assert (await gateway.get_session(result.session_id, wallet.address)).verified is True


@pytest.mark.asyncio
async def test_disconnect_then_get_session_is_not_found(gateway: AuthGateway, wallet) -> None:
    result = await gateway.connect(wallet.address, 1)
    await gateway.get_session(result.session_id, wallet.address)

    assert await gateway.disconnect(result.session_id, wallet.address) is True

    with pytest.raises(NotFound):
        await gateway.get_session(result.session_id, wallet.address)
    assert await gateway.disconnect(result.session_id, wallet.address) is True


@pytest.mark.asyncio
async def test_disconnect_leaves_other_wallets_session(
    gateway: AuthGateway, wallet, other_wallet
) -> None:
    result = await gateway.connect(wallet.address, 1)

    await gateway.disconnect(result.session_id, other_wallet.address)

    assert await gateway.sessions.get(result.session_id) is not None
    assert (await gateway.get_connection_status(wallet.address)).connected is True


@pytest.mark.asyncio
async def test_end_to_end_flow(make_gateway) -> None:
    gateway = make_gateway(verifier=AcceptAllVerifier())

    connected: ConnectResult = await gateway.connect(E2E_ADDRESS, 1)
    verified = await gateway.verify(
        E2E_ADDRESS, "0xsig", connected.message, connected.nonce, connected.session_id
    )
    assert verified.verified is True

    status = await gateway.get_connection_status(E2E_ADDRESS)
    assert (status.connected, status.verified, status.chain_id) == (True, True, 1)

    assert await gateway.disconnect(connected.session_id, E2E_ADDRESS) is True

    status = await gateway.get_connection_status(E2E_ADDRESS)
    assert (status.connected, status.verified) == (False, False)


@pytest.mark.asyncio
async def test_sixth_connect_is_rate_limited(gateway: AuthGateway, wallet, clock) -> None:
    for _ in range(5):
        await gateway.connect(wallet.address, 1)

    with pytest.raises(RateLimited) as excinfo:
        await gateway.connect(wallet.address, 1)

    assert excinfo.value.category == "wallet_connect"
    assert excinfo.value.reset_at > clock.now_ms
    assert excinfo.value.retry_after == 300


@pytest.mark.asyncio
async def test_connect_limit_recovers_after_window(gateway: AuthGateway, wallet, clock) -> None:
    for _ in range(5):
        await gateway.connect(wallet.address, 1)
    clock.advance(300)

    assert (await gateway.connect(wallet.address, 1)).session_id


@pytest.mark.asyncio
async def test_verify_attempts_are_rate_limited(gateway: AuthGateway, wallet) -> None:
    result = await gateway.connect(wallet.address, 1)
    for _ in range(5):
        with pytest.raises((InvalidSignature, InvalidNonce)):
            await gateway.verify(wallet.address, "0x00", result.message, result.nonce, result.session_id)

    with pytest.raises(RateLimited):
        await gateway.verify(wallet.address, "0x00", result.message, result.nonce, result.session_id)


@pytest.mark.asyncio
async def test_rate_limit_status_does_not_consume(gateway: AuthGateway, wallet) -> None:
    await gateway.connect(wallet.address, 1)
    await gateway.connect(wallet.address, 1)

    for _ in range(3):
        status = await gateway.get_rate_limit_status(wallet.address, "wallet_connect")

    assert status.allowed is True
    assert status.remaining == 3
    assert status.type == "wallet_connect"


@pytest.mark.asyncio
async def test_rate_limit_status_reads_wallet_scoped_buckets(gateway: AuthGateway, wallet) -> None:
    assert (await gateway.get_rate_limit_status(wallet.address, "portfolio")).remaining == 50

    for _ in range(10):
        await gateway.rate_limits.check("portfolio", wallet_identifier(wallet.address.upper()))

    status = await gateway.get_rate_limit_status(wallet.address, "portfolio")
    assert status.remaining == 40
    assert status.type == "portfolio"


@pytest.mark.asyncio
async def test_rate_limit_store_outage_fails_open(gateway: AuthGateway, wallet, store, mocker) -> None:
    mocker.patch.object(store, "hit", side_effect=StoreUnavailable("down"))

    for _ in range(7):
        await gateway.connect(wallet.address, 1)


@pytest.mark.asyncio
async def test_status_outage_reports_disconnected(
    gateway: AuthGateway, wallet, store, mocker
) -> None:
    await gateway.connect(wallet.address, 1)
    mocker.patch.object(store, "fetch", side_effect=StoreUnavailable("down"))

    status = await gateway.get_connection_status(wallet.address)

    assert (status.connected, status.verified) == (False, False)


@pytest.mark.asyncio
async def test_verify_outage_fails_closed(gateway: AuthGateway, wallet, store, mocker) -> None:
    result, signature = await _connect_and_sign(gateway, wallet)
    mocker.patch.object(store, "fetch", side_effect=StoreUnavailable("down"))

    with pytest.raises(InvalidSession):
        await gateway.verify(
            wallet.address, signature, result.message, result.nonce, result.session_id
        )


@pytest.mark.asyncio
async def test_connect_outage_propagates(gateway: AuthGateway, wallet, store, mocker) -> None:
    mocker.patch.object(store, "put", side_effect=StoreUnavailable("down"))

    with pytest.raises(StoreUnavailable):
        await gateway.connect(wallet.address, 1)
