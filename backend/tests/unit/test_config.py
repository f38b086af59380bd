"""Unit tests for settings validation."""

import pytest
from pydantic import ValidationError

from linksign.config import Settings

BASE = {
    "contract_address": "0x5fbdb2315678afecb367f032d93f642f64180aa3",
    "pay_to_address": "0x70997970c51812dc3a010c7d01b50e0d17dc79c8",
    "server_wallet_private_key": "11" * 32,
}

PRODUCTION = {
    **BASE,
    "app_env": "production",
    "pinata_jwt": "jwt",
    "redis_url": "redis://:secret@redis:6379/0",
    "cors_origins": "https://linksignx402.xyz",
}


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **{**BASE, **overrides})


class TestSettings:
    """Test field validation and derived values."""

    def test_private_key_gets_prefix(self):
        assert _settings().server_wallet_private_key == "0x" + "11" * 32

    def test_bad_private_key(self):
        with pytest.raises(ValidationError):
            _settings(server_wallet_private_key="0x1234")

    def test_bad_address(self):
        with pytest.raises(ValidationError):
            _settings(pay_to_address="not-an-address")

    @pytest.mark.parametrize("price", ["0.01", "$", "1 USD"])
    def test_bad_price(self, price):
        with pytest.raises(ValidationError):
            _settings(payment_create_price=price)

    def test_chain_ref_from_network(self):
        assert _settings(blockchain_network="base").chain_ref == "eip155:8453"

    def test_chain_ref_override(self):
        assert _settings(blockchain_chain_ref="eip155:31337").chain_ref == "eip155:31337"

    def test_cors_origins_json_and_csv(self):
        assert _settings(cors_origins='["https://a.test"]').cors_origins == ["https://a.test"]
        assert _settings(cors_origins="https://a.test, https://b.test").cors_origins == [
            "https://a.test",
            "https://b.test",
        ]


class TestProductionSettings:
    """Test the production safety checks."""

    def test_valid_production(self):
        settings = Settings(_env_file=None, **PRODUCTION)

        assert settings.is_production

    @pytest.mark.parametrize(
        "override",
        [
            {"app_debug": True},
            {"pinata_jwt": ""},
            {"redis_url": "redis://localhost:6379"},
            {"cors_origins": "*"},
            {"storage_provider": "s3"},
        ],
    )
    def test_insecure_production_rejected(self, override):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{**PRODUCTION, **override})
