"""Factories for the long-lived upstream clients.

These clients hold network connections (httpx.AsyncClient, web3 providers).
Creating them per-request is expensive and can leak resources if not closed,
so the app builds them once in its lifespan.
"""

from __future__ import annotations

import inspect

from linksign.config import Settings
from linksign.domain.networks import default_usdc_address
from linksign.domain.payments.gate import PaymentGate
from linksign.domain.payments.x402 import PaymentConfig
from linksign.infrastructure.ledger.oracle import AgreementOracle, ReadFailurePolicy
from linksign.infrastructure.payments.facilitator import FacilitatorClient
from linksign.infrastructure.storage.pinata import PinataStorage
from linksign.infrastructure.storage.s3 import S3Storage


def build_storage(settings: Settings) -> PinataStorage | S3Storage:
    if settings.storage_provider == "s3":
        return S3Storage(
            endpoint=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            max_concurrency=settings.s3_max_concurrency,
        )

    return PinataStorage(
        jwt=settings.pinata_jwt,
        gateway=settings.pinata_gateway,
        api_version=settings.pinata_api_version,
    )


def build_ledger(settings: Settings) -> AgreementOracle:
    return AgreementOracle(
        rpc_url=settings.blockchain_rpc_url,
        contract_address=settings.contract_address,
        private_key=settings.server_wallet_private_key,
        chain_ref=settings.chain_ref,
        start_block=settings.contract_start_block,
        confirmation_timeout_seconds=settings.ledger_confirmation_timeout_seconds,
        poll_interval_seconds=settings.ledger_poll_interval_seconds,
        read_attempts=settings.ledger_read_attempts,
        read_failure_policy=ReadFailurePolicy(settings.ledger_read_failure_policy),
    )


def build_payment_config(settings: Settings) -> PaymentConfig:
    # Payments and ledger events must name the same chain
    network = settings.chain_ref
    return PaymentConfig(
        network=network,
        pay_to=settings.pay_to_address,
        asset=settings.usdc_address or default_usdc_address(network),
        create_price=settings.payment_create_price,
        sign_price=settings.payment_sign_price,
    )


def build_payment_gate(settings: Settings) -> PaymentGate:
    facilitator = FacilitatorClient(
        base_url=settings.facilitator_url,
        api_key=settings.facilitator_api_key,
        timeout=settings.facilitator_timeout_seconds,
    )
    return PaymentGate(
        facilitator,
        build_payment_config(settings),
        reference_source=settings.payment_reference_source,
        init_timeout_seconds=settings.facilitator_init_timeout_seconds,
    )


async def close_resources(*resources: object | None) -> None:
    for resource in resources:
        if resource is None:
            continue
        close = getattr(resource, "close", None)
        if close is None:
            continue
        if inspect.iscoroutinefunction(close):
            await close()
        else:
            close()
