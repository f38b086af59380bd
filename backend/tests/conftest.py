"""
Pytest configuration and fixtures for LinkSign backend tests.
"""
import os
from collections.abc import Generator

# Required settings must exist before linksign.main builds the app at import
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("CONTRACT_ADDRESS", "0x5fbdb2315678afecb367f032d93f642f64180aa3")
os.environ.setdefault("PAY_TO_ADDRESS", "0x70997970c51812dc3a010c7d01b50e0d17dc79c8")
os.environ.setdefault("SERVER_WALLET_PRIVATE_KEY", "0x" + "11" * 32)
os.environ.setdefault("BLOCKCHAIN_NETWORK", "base-sepolia")
os.environ.setdefault("STORAGE_PROVIDER", "pinata")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import CHAIN_REF, PAY_TO, USDC, FakeFacilitator, FakeLedger, FakeStorage
from linksign.domain.payments.gate import PaymentGate
from linksign.domain.payments.x402 import PaymentConfig


# ----- Fixtures -----


@pytest.fixture
def payment_config() -> PaymentConfig:
    return PaymentConfig(
        network=CHAIN_REF,
        pay_to=PAY_TO,
        asset=USDC,
        create_price="$0.01",
        sign_price="$0.001",
    )


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def fake_facilitator() -> FakeFacilitator:
    return FakeFacilitator()


@pytest.fixture
def payment_gate(fake_facilitator: FakeFacilitator, payment_config: PaymentConfig) -> PaymentGate:
    return PaymentGate(fake_facilitator, payment_config)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> Generator[None, None, None]:
    """Rate limits are per process; keep tests independent."""
    from linksign.api.ratelimit import limiter

    limiter.reset()
    yield


@pytest.fixture
def app(
    fake_storage: FakeStorage,
    fake_ledger: FakeLedger,
    payment_gate: PaymentGate,
) -> FastAPI:
    """App wired to in-memory collaborators."""
    from linksign.main import create_app

    app = create_app()
    app.state.storage = fake_storage
    app.state.ledger = fake_ledger
    app.state.payment_gate = payment_gate
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Create test client."""
    with TestClient(app) as test_client:
        yield test_client
