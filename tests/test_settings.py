"""Tests for environment-driven configuration."""

from wallet_gateway.core.settings import RATE_LIMIT_CATEGORIES, Settings


def test_defaults_describe_every_tier() -> None:
    limits = Settings().rate_limits

    assert tuple(limits) == RATE_LIMIT_CATEGORIES
    assert limits["auth"] == (5, 300_000)
    assert limits["api"] == (100, 60_000)
    assert limits["portfolio"] == (50, 60_000)
    assert limits["ai"] == (20, 300_000)
    assert limits["vault"] == (10, 60_000)
    assert limits["analytics"] == (30, 60_000)
    assert limits["wallet_connect"] == (5, 300_000)
    assert limits["transaction"] == (5, 60_000)


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_VAULT_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("SESSION_TTL_SECONDS", "60")
    monkeypatch.setenv("STORE_BACKEND", "redis")

    configured = Settings()

    assert configured.rate_limits["vault"] == (3, 60_000)
    assert configured.session_ttl_seconds == 60
    assert configured.store_backend == "redis"


def test_lifetimes_default_to_four_hours(test_settings: Settings) -> None:
    assert test_settings.session_ttl_seconds == 4 * 60 * 60
    assert test_settings.nonce_ttl_seconds == 4 * 60 * 60
