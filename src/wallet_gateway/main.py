# src/wallet_gateway/main.py
"""Main entry point for the Wallet Gateway application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from wallet_gateway.api.v1 import system_router, wallet_router
from wallet_gateway.core.settings import settings
from wallet_gateway.services.reaper import ExpiryReaper
from wallet_gateway.stores import get_store

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging() -> None:
    """Apply ``LOG_LEVEL`` to the package loggers.

    A root handler is only installed when the host process has none.
    """
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("wallet_gateway").setLevel(
        getattr(logging, settings.log_level.upper(), logging.INFO)
    )


# Initialize FastAPI app
app = FastAPI(
    title="Wallet Gateway API",
    description="Wallet authentication and tiered rate limiting",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(wallet_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    # Redis expires keys natively; only the in-process store needs sweeping.
    if settings.reaper_enabled and settings.store_backend == "memory":
        reaper = ExpiryReaper(get_store(), interval_seconds=settings.reaper_interval_seconds)
        await reaper.start()
        app.state.reaper = reaper
    else:
        app.state.reaper = None
    logger.info("Wallet gateway started with %s store", settings.store_backend)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    reaper: ExpiryReaper | None = getattr(app.state, "reaper", None)
    if reaper:
        await reaper.stop()
    await get_store().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "Wallet Gateway API",
        "version": settings.app_version,
        "description": "Wallet authentication and tiered rate limiting",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run("wallet_gateway.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
