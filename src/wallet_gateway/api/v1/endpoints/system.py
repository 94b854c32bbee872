"""System endpoints for the Wallet Gateway."""

from __future__ import annotations

import logging
import time
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from wallet_gateway.core.errors import StoreUnavailable
from wallet_gateway.core.settings import settings
from wallet_gateway.stores import BackingStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


def get_store_dep() -> BackingStore:
    """Get the backing store for dependency injection."""
    return get_store()


StoreDep = Annotated[BackingStore, Depends(get_store_dep)]


async def check_store_health(store: BackingStore) -> dict[str, Any]:
    """Ping the backing store and report latency.

    Args:
        store: Store to check

    Returns:
        Dictionary with ``status`` ("healthy" or "unhealthy") and either
        ``latency_ms`` or an ``error`` code
    """
    started = time.perf_counter()
    try:
        healthy = await store.ping()
    except StoreUnavailable as err:
        logger.warning("Store health check failed: %s", err)
        return {"status": "unhealthy", "error": err.code}
    latency_ms = round((time.perf_counter() - started) * 1000, 3)
    if not healthy:
        return {"status": "unhealthy", "error": "no_response"}
    return {"status": "healthy", "latency_ms": latency_ms}


@router.get("/health")
async def get_health(store: StoreDep) -> dict[str, Any]:
    """Return service and backing-store health."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "store_backend": settings.store_backend,
        "store": await check_store_health(store),
    }


@router.get("/config")
async def get_public_config() -> dict[str, Any]:
    """Return a sanitized snapshot of the public runtime configuration.

    Excludes connection strings; suitable for clients that want to display
    rate limits and session lifetimes.
    """
    return {
        "session_ttl_seconds": settings.session_ttl_seconds,
        "nonce_ttl_seconds": settings.nonce_ttl_seconds,
        "single_active_challenge": settings.single_active_challenge,
        "signature_scheme": settings.signature_scheme,
        "rate_limits": {
            category: {"max_attempts": max_attempts, "window_ms": window_ms}
            for category, (max_attempts, window_ms) in settings.rate_limits.items()
        },
    }
