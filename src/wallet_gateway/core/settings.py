"""Application settings and configuration.

This module defines all configuration options for the Wallet Gateway.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

RATE_LIMIT_CATEGORIES: tuple[str, ...] = (
    "auth",
    "api",
    "portfolio",
    "ai",
    "vault",
    "analytics",
    "wallet_connect",
    "transaction",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Wallet Gateway.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Valkyrie Finance", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Backing store for sessions, nonces and rate-limit buckets
    store_backend: Literal["memory", "redis"] = Field(default="memory", alias="STORE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    store_timeout_seconds: float = Field(default=0.5, alias="STORE_TIMEOUT_SECONDS")
    store_shards: int = Field(default=64, alias="STORE_SHARDS")

    # Session and challenge lifetimes
    session_ttl_seconds: int = Field(default=4 * 60 * 60, alias="SESSION_TTL_SECONDS")
    nonce_ttl_seconds: int = Field(default=4 * 60 * 60, alias="NONCE_TTL_SECONDS")
    session_cache_ttl_seconds: int = Field(default=300, alias="SESSION_CACHE_TTL_SECONDS")
    wallet_cache_ttl_seconds: int = Field(default=300, alias="WALLET_CACHE_TTL_SECONDS")
    # When false, earlier challenges are kept until they expire but cannot be
    # verified: only the latest binding is accepted.
    single_active_challenge: bool = Field(default=True, alias="SINGLE_ACTIVE_CHALLENGE")
    csrf_ttl_seconds: int = Field(default=60 * 60, alias="CSRF_TTL_SECONDS")

    # Wallet signature verification
    signature_scheme: Literal["eip191", "reject"] = Field(
        default="eip191",
        alias="SIGNATURE_SCHEME",
    )

    # Background sweep of expired in-process entries
    reaper_enabled: bool = Field(default=True, alias="REAPER_ENABLED")
    reaper_interval_seconds: float = Field(default=300.0, alias="REAPER_INTERVAL_SECONDS")

    # Rate limit tiers (attempts per window)
    rate_limit_auth_max_attempts: int = Field(default=5, alias="RATE_LIMIT_AUTH_MAX_ATTEMPTS")
    rate_limit_auth_window_ms: int = Field(default=300_000, alias="RATE_LIMIT_AUTH_WINDOW_MS")
    rate_limit_api_max_attempts: int = Field(default=100, alias="RATE_LIMIT_API_MAX_ATTEMPTS")
    rate_limit_api_window_ms: int = Field(default=60_000, alias="RATE_LIMIT_API_WINDOW_MS")
    rate_limit_portfolio_max_attempts: int = Field(
        default=50, alias="RATE_LIMIT_PORTFOLIO_MAX_ATTEMPTS"
    )
    rate_limit_portfolio_window_ms: int = Field(
        default=60_000, alias="RATE_LIMIT_PORTFOLIO_WINDOW_MS"
    )
    rate_limit_ai_max_attempts: int = Field(default=20, alias="RATE_LIMIT_AI_MAX_ATTEMPTS")
    rate_limit_ai_window_ms: int = Field(default=300_000, alias="RATE_LIMIT_AI_WINDOW_MS")
    rate_limit_vault_max_attempts: int = Field(default=10, alias="RATE_LIMIT_VAULT_MAX_ATTEMPTS")
    rate_limit_vault_window_ms: int = Field(default=60_000, alias="RATE_LIMIT_VAULT_WINDOW_MS")
    rate_limit_analytics_max_attempts: int = Field(
        default=30, alias="RATE_LIMIT_ANALYTICS_MAX_ATTEMPTS"
    )
    rate_limit_analytics_window_ms: int = Field(
        default=60_000, alias="RATE_LIMIT_ANALYTICS_WINDOW_MS"
    )
    rate_limit_wallet_connect_max_attempts: int = Field(
        default=5, alias="RATE_LIMIT_WALLET_CONNECT_MAX_ATTEMPTS"
    )
    rate_limit_wallet_connect_window_ms: int = Field(
        default=300_000, alias="RATE_LIMIT_WALLET_CONNECT_WINDOW_MS"
    )
    rate_limit_transaction_max_attempts: int = Field(
        default=5, alias="RATE_LIMIT_TRANSACTION_MAX_ATTEMPTS"
    )
    rate_limit_transaction_window_ms: int = Field(
        default=60_000, alias="RATE_LIMIT_TRANSACTION_WINDOW_MS"
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def rate_limits(self) -> dict[str, tuple[int, int]]:
        """Return the configured rate limit tiers.

        Returns:
            Mapping of category name to ``(max_attempts, window_ms)``
        """
        return {
            category: (
                int(getattr(self, f"rate_limit_{category}_max_attempts")),
                int(getattr(self, f"rate_limit_{category}_window_ms")),
            )
            for category in RATE_LIMIT_CATEGORIES
        }


settings = Settings()
