# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("REAPER_ENABLED", "false")
os.environ.setdefault("STORE_BACKEND", "memory")

from wallet_gateway.api.v1.dependencies import get_gateway_dep
from wallet_gateway.core.settings import Settings
from wallet_gateway.main import app as fastapi_app
from wallet_gateway.services.gateway import AuthGateway
from wallet_gateway.services.signature import Eip191Verifier
from wallet_gateway.stores import MemoryStore

START_TIME = 1_700_000_000.0

TEST_LIMITS: dict[str, tuple[int, int]] = {
    "auth": (5, 300_000),
    "api": (100, 60_000),
    "portfolio": (50, 60_000),
    "ai": (20, 300_000),
    "vault": (10, 60_000),
    "analytics": (30, 60_000),
    "wallet_connect": (5, 300_000),
    "transaction": (5, 60_000),
}


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    @property
    def now_ms(self) -> int:
        return round(self.now * 1000)


@dataclass
class SigningWallet:
    """A locally generated key pair able to sign challenges."""

    address: str
    key: bytes

    def sign(self, message: str) -> str:
        signed = Account.sign_message(encode_defunct(text=message), self.key)
        return "0x" + bytes(signed.signature).hex()


def _new_wallet() -> SigningWallet:
    account = Account.create()
    return SigningWallet(address=account.address.lower(), key=bytes(account.key))


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> MemoryStore:
    return MemoryStore(shards=8, clock=clock)


@pytest.fixture()
def wallet() -> SigningWallet:
    return _new_wallet()


@pytest.fixture()
def other_wallet() -> SigningWallet:
    return _new_wallet()


@pytest.fixture()
def make_gateway(
    store: MemoryStore, clock: FakeClock
) -> Callable[..., AuthGateway]:
    def _make(**options: object) -> AuthGateway:
        options.setdefault("verifier", Eip191Verifier())
        options.setdefault("limits", TEST_LIMITS)
        options.setdefault("app_name", "Valkyrie Finance")
        return AuthGateway.from_store(store, clock=clock, **options)

    return _make


@pytest.fixture()
def gateway(make_gateway: Callable[..., AuthGateway]) -> AuthGateway:
    return make_gateway()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_gateway_dependency(app: FastAPI, gateway: AuthGateway) -> Iterator[None]:
    app.dependency_overrides[get_gateway_dep] = lambda: gateway
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_gateway_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide a Settings instance aligned with runtime configuration."""
    return Settings()
