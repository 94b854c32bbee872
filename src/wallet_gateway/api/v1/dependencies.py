"""Shared API dependencies for wallet authentication and rate limiting."""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from wallet_gateway.core.errors import (
    InvalidCsrfToken,
    InvalidNonce,
    InvalidSession,
    InvalidSignature,
    NotFound,
    RateLimited,
    StoreUnavailable,
    WalletGatewayError,
)
from wallet_gateway.services.gateway import AuthGateway, get_auth_gateway
from wallet_gateway.services.rate_limit import (
    RateLimitRegistry,
    RateLimitResult,
    wallet_identifier,
)

_STATUS_BY_ERROR: dict[type[WalletGatewayError], int] = {
    RateLimited: status.HTTP_429_TOO_MANY_REQUESTS,
    InvalidSession: status.HTTP_401_UNAUTHORIZED,
    InvalidSignature: status.HTTP_401_UNAUTHORIZED,
    InvalidCsrfToken: status.HTTP_403_FORBIDDEN,
    InvalidNonce: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_gateway_dep() -> AuthGateway:
    return get_auth_gateway()


def get_rate_limit_registry_dep(
    gateway: Annotated[AuthGateway, Depends(get_gateway_dep)],
) -> RateLimitRegistry:
    return gateway.rate_limits


GatewayDep = Annotated[AuthGateway, Depends(get_gateway_dep)]
RegistryDep = Annotated[RateLimitRegistry, Depends(get_rate_limit_registry_dep)]


def rate_limit_headers(limit: int, remaining: int, reset_at: int) -> dict[str, str]:
    """Return ``X-RateLimit-*`` headers for a window."""
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_at),
    }


def to_http_exception(err: WalletGatewayError) -> HTTPException:
    """Translate a gateway error into an HTTP error without leaking internals.

    Args:
        err: The domain error raised by the gateway

    Returns:
        HTTPException carrying a stable error code and client-safe message
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(err, error_type):
            status_code = code
            break

    if isinstance(err, StoreUnavailable):
        return HTTPException(
            status_code=status_code,
            detail={"error": err.code, "message": "Service temporarily unavailable"},
        )

    detail: dict[str, object] = {"error": err.code, "message": str(err)}
    headers: dict[str, str] | None = None
    if isinstance(err, RateLimited):
        detail["retryAfter"] = err.retry_after
        headers = {
            "Retry-After": str(err.retry_after),
            **rate_limit_headers(err.limit, err.remaining, err.reset_at),
        }
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def get_client_identifier(request: Request) -> str:
    """Derive the rate-limit identity of the caller.

    Prefers an authenticated user id, then a wallet address, then the
    forwarded or peer IP address.
    """
    user_id = request.headers.get("x-user-id")
    if user_id:
        return f"user:{user_id}"

    wallet_address = request.headers.get("x-wallet-address")
    if wallet_address:
        return wallet_identifier(wallet_address)

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return f"ip:{real_ip}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def rate_limited(category: str) -> Callable[..., Awaitable[RateLimitResult]]:
    """Build a dependency enforcing the ``category`` allowance per client.

    Usage::

        @router.get("/portfolio", dependencies=[Depends(rate_limited("portfolio"))])
    """

    async def _dependency(request: Request, registry: RegistryDep) -> RateLimitResult:
        try:
            result = await registry.check(category, get_client_identifier(request))
        except RateLimited as err:
            raise to_http_exception(err) from err
        request.state.rate_limit = result
        return result

    return _dependency


async def require_csrf_token(request: Request, gateway: GatewayDep) -> str:
    """Reject the request unless ``X-CSRF-Token`` was issued to ``X-Session-Id``.

    Usage::

        @router.post("/vault/deposit", dependencies=[Depends(require_csrf_token)])
    """
    session_id = request.headers.get("x-session-id", "")
    try:
        await gateway.check_csrf_token(request.headers.get("x-csrf-token", ""), session_id)
    except WalletGatewayError as err:
        raise to_http_exception(err) from err
    return session_id
