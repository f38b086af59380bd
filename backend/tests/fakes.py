"""In-memory doubles for storage, ledger and facilitator."""

import json
from typing import Any

from linksign.domain.agreements.identifiers import digest_text, validate_bytes32
from linksign.domain.payments.x402 import encode_header_json
from linksign.infrastructure.ledger.oracle import (
    AgreementHistory,
    CreatedEvent,
    LedgerWriteResult,
    SignedEvent,
)
from linksign.infrastructure.payments.facilitator import (
    SettleFailed,
    SettleResult,
    SettleSucceeded,
    SupportedKind,
    VerifyAccepted,
    VerifyRejected,
    VerifyResult,
)
from linksign.shared.exceptions import StorageError

CHAIN_REF = "eip155:84532"
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CREATOR = "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc"
SIGNER = "0x90f79bf6eb2c4f870365e785982e1f101e93b906"
PAY_TO = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
USDC = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"


def make_payment_header(nonce: str = "1") -> str:
    """Base64 JSON payment proof as an x402 client would send it."""
    return encode_header_json(
        {
            "x402Version": 2,
            "scheme": "exact",
            "network": CHAIN_REF,
            "payload": {
                "signature": "0x" + "ab" * 65,
                "authorization": {"from": CREATOR, "to": PAY_TO, "value": "10000", "nonce": nonce},
            },
        }
    )


# ----- Fakes -----


class FakeStorage:
    """In-memory content-addressed store."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.uploads: list[tuple[bytes, str, str]] = []

    async def upload(self, content: bytes, filename: str, fingerprint: str) -> str:
        if self.fail:
            raise StorageError("IPFS upload failed", details={"provider": "fake"})
        self.uploads.append((content, filename, fingerprint))
        return f"bafy{fingerprint[2:18]}"

    async def public_url(self, locator: str) -> str | None:
        return f"https://gateway.test/ipfs/{locator}"


class FakeLedger:
    """Ledger double that keeps events in memory."""

    def __init__(self) -> None:
        self.chain_ref = CHAIN_REF
        self.contract_address = CONTRACT_ADDRESS
        self.created: dict[str, CreatedEvent] = {}
        self.signatures: dict[str, list[SignedEvent]] = {}
        self.register_calls = 0
        self.signature_calls = 0
        self._tx_counter = 0

    def _next_tx(self) -> str:
        self._tx_counter += 1
        return "0x" + f"{self._tx_counter:064x}"

    async def block_number(self) -> int:
        return 1_000

    async def exists(self, agreement_id: str) -> bool:
        return agreement_id in self.created

    async def has_signed(self, agreement_id: str, signer: str) -> bool:
        return any(
            s.signer.lower() == signer.lower() for s in self.signatures.get(agreement_id, [])
        )

    async def register(self, **kwargs: Any) -> LedgerWriteResult:
        self.register_calls += 1
        tx_hash = self._next_tx()
        self.created[kwargs["agreement_id"]] = CreatedEvent(
            agreement_id=kwargs["agreement_id"],
            doc_hash=kwargs["doc_hash"],
            cid=kwargs["cid"],
            creator=kwargs["creator"],
            payment_ref=kwargs["payment_ref"],
            chain_ref=kwargs["chain_ref"],
            tx_hash=tx_hash,
            block_number=900,
        )
        return LedgerWriteResult(tx_hash=tx_hash, accepted=True, confirmed=True, block_number=900)

    async def record_signature(self, **kwargs: Any) -> LedgerWriteResult:
        self.signature_calls += 1
        tx_hash = self._next_tx()
        self.signatures.setdefault(kwargs["agreement_id"], []).append(
            SignedEvent(
                agreement_id=kwargs["agreement_id"],
                signer=kwargs["signer"],
                payment_ref=kwargs["payment_ref"],
                chain_ref=kwargs["chain_ref"],
                tx_hash=tx_hash,
                block_number=950,
            )
        )
        return LedgerWriteResult(tx_hash=tx_hash, accepted=True, confirmed=True, block_number=950)

    async def get_history(self, agreement_id: str) -> AgreementHistory | None:
        created = self.created.get(agreement_id)
        if created is None:
            return None
        return AgreementHistory(created=created, signatures=list(self.signatures.get(agreement_id, [])))


class FakeFacilitator:
    """Facilitator double that settles each authorization nonce once.

    Settling the same payload again returns the same transaction, like a
    real facilitator replaying an already-settled authorization.
    """

    def __init__(
        self,
        *,
        kinds: list[SupportedKind] | None = None,
        verify_reason: str | None = None,
        settle_reason: str | None = None,
    ) -> None:
        self.kinds = kinds if kinds is not None else [SupportedKind(2, "exact", CHAIN_REF)]
        self.verify_reason = verify_reason
        self.settle_reason = settle_reason
        self.supported_calls = 0
        self.verify_calls = 0
        self.settle_calls = 0

    async def supported(self) -> list[SupportedKind]:
        self.supported_calls += 1
        return self.kinds

    async def verify(self, payload: dict[str, Any], requirements: dict[str, Any]) -> VerifyResult:
        self.verify_calls += 1
        if self.verify_reason:
            return VerifyRejected(reason=self.verify_reason)
        return VerifyAccepted(payer=CREATOR)

    async def settle(self, payload: dict[str, Any], requirements: dict[str, Any]) -> SettleResult:
        self.settle_calls += 1
        if self.settle_reason:
            return SettleFailed(reason=self.settle_reason, raw={"success": False})
        transaction = validate_bytes32(
            digest_text(json.dumps(payload, sort_keys=True)), "transaction"
        )
        return SettleSucceeded(
            transaction=transaction,
            network=CHAIN_REF,
            payer=CREATOR,
            raw={"success": True, "transaction": transaction, "network": CHAIN_REF},
        )
