"""Unit tests for the agreement workflow."""

import pytest

from fakes import (
    CHAIN_REF,
    CREATOR,
    SIGNER,
    FakeFacilitator,
    FakeLedger,
    FakeStorage,
    make_payment_header,
)
from linksign.domain.agreements.identifiers import compute_agreement_id, fingerprint
from linksign.domain.agreements.services import AgreementService
from linksign.domain.payments.gate import PaymentGate
from linksign.shared.exceptions import (
    ConflictError,
    FileTooLargeError,
    NotFoundError,
    PaymentRequiredError,
    StorageError,
    ValidationError,
)

DOCUMENT = b"%PDF-1.7 mutual NDA"


@pytest.fixture
def service(fake_storage, fake_ledger, payment_gate) -> AgreementService:
    return AgreementService(
        fake_storage,
        fake_ledger,
        payment_gate,
        app_domain="https://linksign.test/",
        max_upload_bytes=1024,
    )


async def _create(service: AgreementService, nonce: str = "1"):
    return await service.create_agreement(
        DOCUMENT, "nda.pdf", CREATOR, make_payment_header(nonce)
    )


class TestCreateAgreement:
    """Test the paid create workflow."""

    @pytest.mark.asyncio
    async def test_create_registers_on_ledger(self, service, fake_storage, fake_ledger):
        record = await _create(service)

        assert record.doc_hash == fingerprint(DOCUMENT)
        assert record.agreement_id == compute_agreement_id(
            record.doc_hash, CREATOR, record.payment_ref
        )
        assert record.chain_ref == CHAIN_REF
        assert record.confirmed is True
        assert record.already_existed is False
        assert record.link == f"https://linksign.test/a/{record.agreement_id}"
        assert fake_storage.uploads[0][1] == "nda.pdf"
        assert fake_ledger.register_calls == 1

    @pytest.mark.asyncio
    async def test_replayed_payment_is_idempotent(self, service, fake_ledger):
        """The same document, creator and payment map to one ledger entry."""
        first = await _create(service)
        second = await _create(service)

        assert second.agreement_id == first.agreement_id
        assert second.already_existed is True
        assert second.tx_hash is None
        assert fake_ledger.register_calls == 1

    @pytest.mark.asyncio
    async def test_new_payment_is_new_agreement(self, service, fake_ledger):
        first = await _create(service, nonce="1")
        second = await _create(service, nonce="2")

        assert second.agreement_id != first.agreement_id
        assert fake_ledger.register_calls == 2

    @pytest.mark.asyncio
    async def test_default_file_name(self, service, fake_storage):
        await service.create_agreement(DOCUMENT, None, CREATOR, make_payment_header())

        assert fake_storage.uploads[0][1] == "agreement.pdf"

    @pytest.mark.asyncio
    async def test_empty_file_costs_nothing(self, service, fake_storage, fake_facilitator):
        with pytest.raises(ValidationError):
            await service.create_agreement(b"", "nda.pdf", CREATOR, make_payment_header())

        assert fake_storage.uploads == []
        assert fake_facilitator.verify_calls == 0

    @pytest.mark.asyncio
    async def test_bad_creator_rejected(self, service, fake_facilitator):
        with pytest.raises(ValidationError):
            await service.create_agreement(DOCUMENT, "nda.pdf", "0x1234", make_payment_header())

        assert fake_facilitator.verify_calls == 0

    @pytest.mark.asyncio
    async def test_oversized_file_rejected(self, service, fake_facilitator):
        with pytest.raises(FileTooLargeError):
            await service.create_agreement(
                b"x" * 2048, "nda.pdf", CREATOR, make_payment_header()
            )

        assert fake_facilitator.verify_calls == 0

    @pytest.mark.asyncio
    async def test_missing_payment_is_challenged_before_upload(self, service, fake_storage):
        with pytest.raises(PaymentRequiredError):
            await service.create_agreement(DOCUMENT, "nda.pdf", CREATOR, None)

        assert fake_storage.uploads == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_charged(self, fake_ledger, payment_config):
        facilitator = FakeFacilitator()
        service = AgreementService(
            FakeStorage(fail=True),
            fake_ledger,
            PaymentGate(facilitator, payment_config),
            app_domain="https://linksign.test",
        )

        with pytest.raises(StorageError):
            await _create(service)

        assert facilitator.settle_calls == 0
        assert fake_ledger.register_calls == 0


class TestSignAgreement:
    """Test the paid sign workflow."""

    @pytest.mark.asyncio
    async def test_sign_records_signature(self, service, fake_ledger):
        created = await _create(service)

        record = await service.sign_agreement(
            created.agreement_id, SIGNER, make_payment_header("sig-1")
        )

        assert record.signer.lower() == SIGNER
        assert record.chain_ref == CHAIN_REF
        assert record.confirmed is True
        assert fake_ledger.signature_calls == 1

    @pytest.mark.asyncio
    async def test_unknown_agreement_costs_nothing(self, service, fake_facilitator):
        with pytest.raises(NotFoundError):
            await service.sign_agreement("0x" + "00" * 32, SIGNER, make_payment_header())

        assert fake_facilitator.verify_calls == 0

    @pytest.mark.asyncio
    async def test_second_signature_costs_nothing(self, service, fake_facilitator, fake_ledger):
        created = await _create(service)
        await service.sign_agreement(created.agreement_id, SIGNER, make_payment_header("sig-1"))
        settled_before = fake_facilitator.settle_calls

        with pytest.raises(ConflictError):
            await service.sign_agreement(
                created.agreement_id, SIGNER, make_payment_header("sig-2")
            )

        assert fake_facilitator.settle_calls == settled_before
        assert fake_ledger.signature_calls == 1

    @pytest.mark.asyncio
    async def test_malformed_id_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.sign_agreement("0x1234", SIGNER, make_payment_header())


class TestGetAgreement:
    """Test the read-only agreement view."""

    @pytest.mark.asyncio
    async def test_view_aggregates_events(self, service):
        created = await _create(service)
        await service.sign_agreement(created.agreement_id, SIGNER, make_payment_header("sig-1"))

        view = await service.get_agreement(created.agreement_id)

        assert view.agreement_id == created.agreement_id
        assert view.document_url == f"https://gateway.test/ipfs/{created.cid}"
        assert view.creator.payment_ref == created.payment_ref
        assert view.creator.explorer_url == (
            f"https://sepolia.basescan.org/tx/{created.payment_ref}"
        )
        assert view.contract.explorer_url.startswith("https://sepolia.basescan.org/address/")
        assert len(view.signers) == 1
        assert view.signers[0].address.lower() == SIGNER

    @pytest.mark.asyncio
    async def test_missing_agreement(self, service):
        with pytest.raises(NotFoundError):
            await service.get_agreement("0x" + "00" * 32)

    @pytest.mark.asyncio
    async def test_unknown_chain_has_no_explorer(self, fake_storage, payment_gate):
        ledger = FakeLedger()
        ledger.chain_ref = "eip155:999999"
        service = AgreementService(
            fake_storage, ledger, payment_gate, app_domain="https://linksign.test"
        )
        created = await _create(service)

        view = await service.get_agreement(created.agreement_id)

        assert view.creator.explorer_url is None
        assert view.contract.explorer_url is None
