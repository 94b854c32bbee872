# src/wallet_gateway/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .wallet import (
    ConnectionStatusResponse,
    ConnectRequest,
    ConnectResponse,
    CsrfTokenResponse,
    DisconnectResponse,
    ErrorDetail,
    ErrorResponse,
    RateLimitStatusResponse,
    SessionQuery,
    SessionResponse,
    VerifyRequest,
    VerifyResponse,
)

__all__ = [
    "ConnectRequest", "ConnectResponse",
    "VerifyRequest", "VerifyResponse",
    "SessionQuery", "SessionResponse",
    "DisconnectResponse", "CsrfTokenResponse", "ConnectionStatusResponse",
    "RateLimitStatusResponse", "ErrorDetail", "ErrorResponse",
]
