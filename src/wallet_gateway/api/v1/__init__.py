# src/wallet_gateway/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import system_router, wallet_router

__all__ = [
    "system_router",
    "wallet_router",
]
