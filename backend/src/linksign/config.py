"""Application configuration using Pydantic Settings."""

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REDIS_URL = "redis://localhost:6379"
DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"
DEFAULT_RPC_URL = "https://sepolia.base.org"
DEFAULT_S3_ACCESS_KEY = "minio"
DEFAULT_S3_SECRET_KEY = "minio123"
SECRET_FILE_ENV_VARS = (
    "SERVER_WALLET_PRIVATE_KEY",
    "FACILITATOR_API_KEY",
    "PINATA_JWT",
    "REDIS_URL",
    "S3_ACCESS_KEY",
    "S3_SECRET_KEY",
)

_PRICE_PATTERN = re.compile(r"^\$\d+(\.\d+)?$")
_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def _load_secret_file_env_vars() -> None:
    """Allow secrets to be sourced from *_FILE env vars (Docker secrets)."""
    for env_var in SECRET_FILE_ENV_VARS:
        file_var = f"{env_var}_FILE"
        file_path = os.getenv(file_var)
        if not file_path:
            continue
        try:
            value = Path(file_path).read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise RuntimeError(f"Failed to read {file_var} at {file_path}") from exc
        if not value:
            raise ValueError(f"{file_var} is empty")
        os.environ[env_var] = value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ----- Application -----
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_domain: str = "https://linksignx402.xyz"
    max_upload_bytes: int = 20 * 1024 * 1024

    # ----- Redis (rate limiter storage in production) -----
    redis_url: str = DEFAULT_REDIS_URL

    # ----- Blockchain -----
    blockchain_network: Literal["base-sepolia", "base", "sepolia", "mainnet"] = "base-sepolia"
    blockchain_rpc_url: str = DEFAULT_RPC_URL
    # Optional CAIP-2 override (e.g. "eip155:84532"); derived from the network otherwise
    blockchain_chain_ref: str | None = None
    contract_address: str = Field(..., description="AgreementOracle contract address")
    contract_start_block: int = 0
    server_wallet_private_key: str = Field(
        ...,  # Required - the wallet that submits registrations
        description="Hex private key of the server wallet that writes to the contract",
    )

    # ----- Ledger behaviour -----
    ledger_confirmation_timeout_seconds: float = 120.0
    ledger_poll_interval_seconds: float = 1.0
    ledger_read_attempts: int = 3
    ledger_read_failure_policy: Literal["assume_false", "propagate"] = "assume_false"

    # ----- x402 payments -----
    pay_to_address: str = Field(..., description="Address that receives USDC payments")
    usdc_address: str | None = None
    payment_create_price: str = "$0.01"
    payment_sign_price: str = "$0.001"
    payment_reference_source: Literal["settlement", "header_digest"] = "settlement"
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    facilitator_api_key: str = ""
    facilitator_timeout_seconds: float = 30.0
    facilitator_init_timeout_seconds: float = 15.0

    # ----- Storage -----
    storage_provider: Literal["pinata", "s3"] = "pinata"
    pinata_jwt: str = ""
    pinata_gateway: str = "gateway.pinata.cloud"
    pinata_api_version: Literal["v3", "legacy"] = "v3"

    s3_endpoint: str = "http://localhost:9000"
    s3_access_key: str = DEFAULT_S3_ACCESS_KEY
    s3_secret_key: str = DEFAULT_S3_SECRET_KEY
    s3_bucket: str = "linksign-documents"
    s3_region: str = "eu-central-1"
    s3_max_concurrency: int = 8

    # ----- CORS -----
    # Can be set as JSON list or comma-separated string
    cors_origins_str: str = Field(default="http://localhost:3000", alias="cors_origins")

    @field_validator("payment_create_price", "payment_sign_price")
    @classmethod
    def validate_price(cls, v: str) -> str:
        if not _PRICE_PATTERN.match(v):
            raise ValueError(f"Invalid price format: {v}. Expected format: $0.01")
        return v

    @field_validator("contract_address", "pay_to_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not _ADDRESS_PATTERN.match(v):
            raise ValueError(f"Invalid EVM address: {v}")
        return v

    @field_validator("server_wallet_private_key")
    @classmethod
    def validate_private_key(cls, v: str) -> str:
        if not _PRIVATE_KEY_PATTERN.match(v):
            raise ValueError("SERVER_WALLET_PRIVATE_KEY must be a 32-byte hex string")
        return v if v.startswith("0x") else f"0x{v}"

    @property
    def cors_origins(self) -> list[str]:
        """Parse cors_origins from comma-separated string or JSON list."""
        v = self.cors_origins_str
        if not v:
            return ["http://localhost:3000"]
        # Try JSON first
        if v.startswith("["):
            import json

            raw = json.loads(v)
            if not isinstance(raw, list) or not all(isinstance(origin, str) for origin in raw):
                raise ValueError("CORS_ORIGINS must be a JSON list of strings")
            return raw
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    @property
    def chain_ref(self) -> str:
        """CAIP-2 reference recorded with every ledger event."""
        from linksign.domain.networks import network_to_chain_ref

        return self.blockchain_chain_ref or network_to_chain_ref(self.blockchain_network)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Ensure secure settings in production environment."""
        if self.is_production:
            if self.app_debug:
                raise ValueError("APP_DEBUG must be false in production!")
            if self.storage_provider == "pinata" and not self.pinata_jwt:
                raise ValueError("PINATA_JWT must be set in production!")
            if self.storage_provider == "s3":
                if self.s3_access_key == DEFAULT_S3_ACCESS_KEY:
                    raise ValueError("S3_ACCESS_KEY must be set to a non-default value!")
                if self.s3_secret_key == DEFAULT_S3_SECRET_KEY:
                    raise ValueError("S3_SECRET_KEY must be set to a non-default value!")
            if self.redis_url == DEFAULT_REDIS_URL or "@" not in self.redis_url:
                raise ValueError(
                    "REDIS_URL must include credentials in production (redis://:password@host:port/db)."
                )
            if any(origin in {"*", "http://localhost:3000"} for origin in self.cors_origins):
                raise ValueError("CORS_ORIGINS must be restricted in production!")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    _load_secret_file_env_vars()
    return Settings()
