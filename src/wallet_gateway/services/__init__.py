# src/wallet_gateway/services/__init__.py
"""Business logic services for wallet authentication and rate limiting."""

from .cache import ReadCache
from .csrf import CsrfTokenStore
from .gateway import AuthGateway
from .nonce import NonceStore
from .rate_limit import FixedWindowRateLimiter, RateLimitRegistry
from .reaper import ExpiryReaper
from .session import SessionStore
from .signature import Eip191Verifier, SignatureVerifier
from .wallet_session import WalletSessionManager

__all__ = [
    "AuthGateway",
    "CsrfTokenStore",
    "Eip191Verifier",
    "ExpiryReaper",
    "FixedWindowRateLimiter",
    "NonceStore",
    "RateLimitRegistry",
    "ReadCache",
    "SessionStore",
    "SignatureVerifier",
    "WalletSessionManager",
]
