"""Agreement registration service - core business logic."""

from linksign.domain.agreements.identifiers import (
    compute_agreement_id,
    fingerprint,
    validate_bytes32,
    validate_evm_address,
)
from linksign.domain.agreements.models import (
    AgreementRecord,
    AgreementView,
    ContractView,
    PartyView,
    SignatureRecord,
)
from linksign.domain.agreements.ports import LedgerPort, PaymentGatePort, StoragePort
from linksign.domain.networks import build_address_url, build_tx_url
from linksign.domain.payments.models import PaymentRoute
from linksign.shared.exceptions import ConflictError, FileTooLargeError, NotFoundError
from linksign.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FILE_NAME = "agreement.pdf"


class AgreementService:
    """Orchestrates storage, payment and ledger for agreement operations.

    Checks that cost nothing (validation, existence, prior signature) always
    run before the payment is settled, so a request that cannot succeed is
    never charged.
    """

    def __init__(
        self,
        storage: StoragePort,
        ledger: LedgerPort,
        payment_gate: PaymentGatePort,
        *,
        app_domain: str,
        max_upload_bytes: int | None = None,
    ) -> None:
        self.storage = storage
        self.ledger = ledger
        self.payment_gate = payment_gate
        self.app_domain = app_domain.rstrip("/")
        self.max_upload_bytes = max_upload_bytes

    def agreement_link(self, agreement_id: str) -> str:
        return f"{self.app_domain}/a/{agreement_id}"

    async def create_agreement(
        self,
        file_bytes: bytes,
        file_name: str | None,
        creator_address: str,
        payment_header: str | None,
    ) -> AgreementRecord:
        """Register a document on the ledger after payment.

        Steps:
        1. Validate creator and document
        2. Fingerprint the document
        3. Decode the payment proof (402 challenge if missing)
        4. Upload to storage
        5. Verify and settle the payment
        6. Derive the agreement id
        7. Return the existing record if already registered
        8. Otherwise write and confirm the creation event

        Raises:
            ValidationError: Bad creator, empty or oversized file, bad header.
            PaymentError: Challenge, verification or settlement failure.
            StorageError / LedgerError: Upstream failures.
        """
        creator = validate_evm_address(creator_address, "creatorAddress")
        if self.max_upload_bytes is not None and len(file_bytes) > self.max_upload_bytes:
            raise FileTooLargeError(self.max_upload_bytes)
        doc_hash = fingerprint(file_bytes)
        name = file_name or DEFAULT_FILE_NAME

        proof = self.payment_gate.read_proof(PaymentRoute.CREATE, payment_header)

        logger.info(
            "agreement_create_started",
            file_name=name,
            size=len(file_bytes),
            creator=creator,
            doc_hash=doc_hash,
        )

        # Upload before settlement: a failed upload must not cost the client
        cid = await self.storage.upload(file_bytes, name, doc_hash)

        payment = await self.payment_gate.settle(proof)
        agreement_id = compute_agreement_id(doc_hash, creator, payment.reference)
        chain_ref = self.ledger.chain_ref

        if await self.ledger.exists(agreement_id):
            logger.info("agreement_already_exists", agreement_id=agreement_id)
            return AgreementRecord(
                agreement_id=agreement_id,
                doc_hash=doc_hash,
                cid=cid,
                creator=creator,
                payment_ref=payment.reference,
                chain_ref=chain_ref,
                tx_hash=None,
                confirmed=True,
                link=self.agreement_link(agreement_id),
                already_existed=True,
                payment=payment,
            )

        result = await self.ledger.register(
            agreement_id=agreement_id,
            doc_hash=doc_hash,
            cid=cid,
            creator=creator,
            payment_ref=payment.reference,
            chain_ref=chain_ref,
            wait_for_confirmation=True,
        )

        logger.info(
            "agreement_created",
            agreement_id=agreement_id,
            tx_hash=result.tx_hash,
            confirmed=result.confirmed,
        )
        return AgreementRecord(
            agreement_id=agreement_id,
            doc_hash=doc_hash,
            cid=cid,
            creator=creator,
            payment_ref=payment.reference,
            chain_ref=chain_ref,
            tx_hash=result.tx_hash,
            confirmed=result.confirmed,
            link=self.agreement_link(agreement_id),
            already_existed=False,
            payment=payment,
        )

    async def sign_agreement(
        self,
        agreement_id: str,
        signer_address: str,
        payment_header: str | None,
    ) -> SignatureRecord:
        """Record a paid signature on an existing agreement.

        Raises:
            ValidationError: Malformed id or signer.
            NotFoundError: Agreement is not registered.
            ConflictError: Signer already signed.
            PaymentError / LedgerError: Payment or ledger failures.
        """
        agreement_id = validate_bytes32(agreement_id, "agreementId")
        signer = validate_evm_address(signer_address, "signerAddress")

        if not await self.ledger.exists(agreement_id):
            raise NotFoundError("Agreement", agreement_id)

        if await self.ledger.has_signed(agreement_id, signer):
            raise ConflictError(
                "Already signed",
                details={"agreement_id": agreement_id, "signer": signer},
            )

        proof = self.payment_gate.read_proof(PaymentRoute.SIGN, payment_header)
        payment = await self.payment_gate.settle(proof)
        chain_ref = self.ledger.chain_ref

        result = await self.ledger.record_signature(
            agreement_id=agreement_id,
            signer=signer,
            payment_ref=payment.reference,
            chain_ref=chain_ref,
            wait_for_confirmation=True,
        )

        logger.info(
            "agreement_signed",
            agreement_id=agreement_id,
            signer=signer,
            tx_hash=result.tx_hash,
        )
        return SignatureRecord(
            agreement_id=agreement_id,
            signer=signer,
            payment_ref=payment.reference,
            chain_ref=chain_ref,
            tx_hash=result.tx_hash,
            confirmed=result.confirmed,
            link=self.agreement_link(agreement_id),
            payment=payment,
        )

    async def get_agreement(self, agreement_id: str) -> AgreementView:
        """Aggregate the ledger events of one agreement.

        Raises:
            ValidationError: Malformed id.
            NotFoundError: No creation event.
        """
        agreement_id = validate_bytes32(agreement_id, "agreementId")
        history = await self.ledger.get_history(agreement_id)
        if history is None:
            raise NotFoundError("Agreement", agreement_id)

        created = history.created
        contract_chain_ref = created.chain_ref or self.ledger.chain_ref
        contract_address = self.ledger.contract_address

        return AgreementView(
            agreement_id=created.agreement_id,
            doc_hash=created.doc_hash,
            cid=created.cid,
            document_url=await self.storage.public_url(created.cid),
            link=self.agreement_link(agreement_id),
            contract=ContractView(
                address=contract_address,
                chain_ref=contract_chain_ref,
                explorer_url=build_address_url(contract_chain_ref, contract_address),
            ),
            creator=PartyView(
                address=created.creator,
                payment_ref=created.payment_ref,
                chain_ref=created.chain_ref,
                tx_hash=created.tx_hash,
                explorer_url=build_tx_url(created.chain_ref, created.payment_ref),
            ),
            signers=[
                PartyView(
                    address=event.signer,
                    payment_ref=event.payment_ref,
                    chain_ref=event.chain_ref,
                    tx_hash=event.tx_hash,
                    explorer_url=build_tx_url(event.chain_ref, event.payment_ref),
                )
                for event in history.signatures
            ],
        )
