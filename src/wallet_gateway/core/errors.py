"""Error taxonomy for the wallet authentication layer."""

from __future__ import annotations

import math
from enum import Enum


class FailurePolicy(Enum):
    """What a store outage means for a given operation.

    Abuse prevention favours availability; authentication favours correctness.
    """

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


class WalletGatewayError(RuntimeError):
    """Base exception raised by the wallet gateway.

    Subclasses are expected, user-facing outcomes unless stated otherwise.
    """

    code = "wallet_gateway_error"
    message = "Wallet gateway error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class RateLimited(WalletGatewayError):
    """Raised when a caller exhausted its allowance for a category."""

    code = "rate_limited"
    message = "Too many requests. Please try again later."

    def __init__(
        self,
        category: str,
        *,
        limit: int,
        remaining: int,
        reset_at: int,
        now_ms: int,
        message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        self.retry_after = max(1, math.ceil((reset_at - now_ms) / 1000))


class InvalidSession(WalletGatewayError):
    """Raised when a session is missing, expired or bound to another wallet."""

    code = "invalid_session"
    message = "Invalid or expired session"


class InvalidNonce(WalletGatewayError):
    """Raised when a nonce is unknown, expired or already consumed."""

    code = "invalid_nonce"
    message = "Invalid or expired nonce"


class InvalidSignature(WalletGatewayError):
    """Raised when the wallet signature does not match the challenge."""

    code = "invalid_signature"
    message = "Invalid signature"


class InvalidCsrfToken(WalletGatewayError):
    """Raised when a CSRF token is missing, expired or issued to another session."""

    code = "invalid_csrf_token"
    message = "Invalid or expired CSRF token"


class NotFound(WalletGatewayError):
    """Raised when a requested record does not exist."""

    code = "not_found"
    message = "Session not found"


class StoreUnavailable(WalletGatewayError):
    """Raised when the backing store cannot be reached in time.

    Internal: never surfaced to clients with its original detail.
    """

    code = "store_unavailable"
    message = "Backing store unavailable"
