# src/wallet_gateway/api/v1/endpoints/wallet.py
"""Wallet connection and verification endpoints."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from fastapi import APIRouter, HTTPException, Path, Query, Request, Response, status
from pydantic import ValidationError

from wallet_gateway.api.v1.dependencies import (
    GatewayDep,
    rate_limit_headers,
    to_http_exception,
)
from wallet_gateway.core.errors import WalletGatewayError
from wallet_gateway.core.settings import RATE_LIMIT_CATEGORIES
from wallet_gateway.core.validation import normalize_address
from wallet_gateway.schemas.wallet import (
    ConnectionStatusResponse,
    ConnectRequest,
    ConnectResponse,
    CsrfTokenResponse,
    DisconnectResponse,
    ErrorResponse,
    RateLimitStatusResponse,
    SessionQuery,
    SessionResponse,
    VerifyRequest,
    VerifyResponse,
)

router = APIRouter(prefix="/wallet", tags=["wallet"])

RateLimitType = Literal[RATE_LIMIT_CATEGORIES]  # type: ignore[valid-type]

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _address_param(address: str) -> str:
    try:
        return normalize_address(address)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err),
        ) from err


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post(
    "/connect",
    summary="Open a wallet session and issue a signing challenge",
    response_model=ConnectResponse,
    responses=_ERROR_RESPONSES,
)
async def connect_wallet(
    payload: ConnectRequest,
    request: Request,
    gateway: GatewayDep,
) -> ConnectResponse:
    """Create an unverified session for the wallet and return the message to sign."""
    try:
        result = await gateway.connect(
            payload.address,
            payload.chain_id,
            user_agent=payload.user_agent or request.headers.get("user-agent"),
            ip_address=payload.ip_address or _client_ip(request),
        )
    except WalletGatewayError as err:
        raise to_http_exception(err) from err

    return ConnectResponse(
        session_id=result.session_id,
        nonce=result.nonce,
        message=result.message,
        expires_at=result.expires_at,
    )


@router.post(
    "/verify",
    summary="Verify a signed wallet challenge",
    response_model=VerifyResponse,
    responses=_ERROR_RESPONSES,
)
async def verify_wallet(payload: VerifyRequest, gateway: GatewayDep) -> VerifyResponse:
    """Redeem the challenge nonce and mark the session as verified."""
    try:
        result = await gateway.verify(
            payload.address,
            payload.signature,
            payload.message,
            payload.nonce,
            payload.session_id,
        )
    except WalletGatewayError as err:
        raise to_http_exception(err) from err

    return VerifyResponse(
        verified=result.verified,
        session_id=result.session_id,
        wallet_address=result.wallet_address,
    )


@router.get(
    "/session",
    summary="Fetch the session bound to a wallet",
    response_model=SessionResponse,
    responses=_ERROR_RESPONSES,
)
async def get_session(
    session_id: Annotated[str, Query(alias="sessionId")],
    address: Annotated[str, Query()],
    gateway: GatewayDep,
) -> SessionResponse:
    """Return session data if it exists and belongs to ``address``."""
    try:
        query = SessionQuery(address=address, session_id=session_id)
    except ValidationError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=err.errors(include_url=False, include_context=False),
        ) from err

    try:
        session = await gateway.get_session(query.session_id, query.address)
    except WalletGatewayError as err:
        raise to_http_exception(err) from err

    return SessionResponse.model_validate(session)


@router.post(
    "/disconnect",
    summary="Disconnect a wallet and drop its session",
    response_model=DisconnectResponse,
    responses=_ERROR_RESPONSES,
)
async def disconnect_wallet(payload: SessionQuery, gateway: GatewayDep) -> DisconnectResponse:
    """Tear down the session; repeating the call is harmless."""
    try:
        success = await gateway.disconnect(payload.session_id, payload.address)
    except WalletGatewayError as err:
        raise to_http_exception(err) from err

    return DisconnectResponse(success=success)


@router.post(
    "/csrf-token",
    summary="Issue a CSRF token for a verified session",
    response_model=CsrfTokenResponse,
    responses=_ERROR_RESPONSES,
)
async def issue_csrf_token(payload: SessionQuery, gateway: GatewayDep) -> CsrfTokenResponse:
    try:
        token, expires_at = await gateway.issue_csrf_token(payload.session_id, payload.address)
    except WalletGatewayError as err:
        raise to_http_exception(err) from err

    return CsrfTokenResponse(csrf_token=token, expires_at=expires_at)


@router.get(
    "/status/{address}",
    summary="Report whether a wallet is connected and verified",
    response_model=ConnectionStatusResponse,
)
async def get_connection_status(
    address: Annotated[str, Path(description="0x-prefixed wallet address")],
    gateway: GatewayDep,
) -> ConnectionStatusResponse:
    status_ = await gateway.get_connection_status(_address_param(address))
    return ConnectionStatusResponse.model_validate(status_)


@router.get(
    "/rate-limit",
    summary="Inspect the rate-limit window for a wallet",
    response_model=RateLimitStatusResponse,
)
async def get_rate_limit_status(
    address: Annotated[str, Query()],
    type_: Annotated[RateLimitType, Query(alias="type")],
    gateway: GatewayDep,
    response: Response,
) -> RateLimitStatusResponse:
    """Report the allowance left without consuming an attempt."""
    result = await gateway.get_rate_limit_status(_address_param(address), type_)
    limit = gateway.rate_limits.get(type_).config.max_attempts
    response.headers.update(rate_limit_headers(limit, result.remaining, result.reset_time))
    return RateLimitStatusResponse.model_validate(result)
