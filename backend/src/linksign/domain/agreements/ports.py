"""Ports for agreement registration dependencies."""

from __future__ import annotations

from typing import Protocol

from linksign.domain.payments.models import PaymentProof, PaymentRoute, SettledPayment
from linksign.infrastructure.ledger.oracle import AgreementHistory, LedgerWriteResult


class StoragePort(Protocol):
    """Document store interface."""

    async def upload(self, content: bytes, filename: str, fingerprint: str) -> str:
        """Store a document and return its content locator."""

    async def public_url(self, locator: str) -> str | None:
        """Public or presigned URL for a locator."""


class LedgerPort(Protocol):
    """AgreementOracle interface."""

    chain_ref: str
    contract_address: str

    async def exists(self, agreement_id: str) -> bool:
        """Whether an agreement with this id is registered."""

    async def has_signed(self, agreement_id: str, signer: str) -> bool:
        """Whether ``signer`` already signed the agreement."""

    async def register(
        self,
        *,
        agreement_id: str,
        doc_hash: str,
        cid: str,
        creator: str,
        payment_ref: str,
        chain_ref: str,
        wait_for_confirmation: bool = True,
    ) -> LedgerWriteResult:
        """Write the creation event."""

    async def record_signature(
        self,
        *,
        agreement_id: str,
        signer: str,
        payment_ref: str,
        chain_ref: str,
        wait_for_confirmation: bool = True,
    ) -> LedgerWriteResult:
        """Write a signature event."""

    async def get_history(self, agreement_id: str) -> AgreementHistory | None:
        """Creation and signature events, or None if not registered."""


class PaymentGatePort(Protocol):
    """x402 payment handshake interface."""

    def read_proof(self, route: PaymentRoute, header: str | None) -> PaymentProof:
        """Decode the payment header or raise the challenge."""

    async def settle(self, proof: PaymentProof) -> SettledPayment:
        """Verify and settle a decoded proof."""
