"""Shared API schemas and base models."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from linksign.domain.agreements.models import (
    AgreementRecord,
    AgreementView,
    PartyView,
    SignatureRecord,
)


class APIRequestModel(BaseModel):
    """Base model for request bodies.

    Forbids unknown fields to avoid silently accepting typos or outdated clients.
    Fields are camelCase on the wire.
    """

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class APIResponseModel(BaseModel):
    """Base model for response bodies (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----- Requests -----


class CreateAgreementRequest(APIRequestModel):
    file_base64: str = Field(min_length=1)
    file_name: str | None = None
    creator_address: str


class SignAgreementRequest(APIRequestModel):
    agreement_id: str
    signer_address: str


# ----- Responses -----


class AgreementRecordResponse(APIResponseModel):
    agreement_id: str
    doc_hash: str
    cid: str
    creator: str
    payment_ref: str
    chain_ref: str
    tx_hash: str | None
    confirmed: bool
    link: str
    already_existed: bool

    @classmethod
    def from_record(cls, record: AgreementRecord) -> "AgreementRecordResponse":
        return cls(
            agreement_id=record.agreement_id,
            doc_hash=record.doc_hash,
            cid=record.cid,
            creator=record.creator,
            payment_ref=record.payment_ref,
            chain_ref=record.chain_ref,
            tx_hash=record.tx_hash,
            confirmed=record.confirmed,
            link=record.link,
            already_existed=record.already_existed,
        )


class SignatureRecordResponse(APIResponseModel):
    agreement_id: str
    signer: str
    payment_ref: str
    chain_ref: str
    tx_hash: str
    confirmed: bool
    link: str

    @classmethod
    def from_record(cls, record: SignatureRecord) -> "SignatureRecordResponse":
        return cls(
            agreement_id=record.agreement_id,
            signer=record.signer,
            payment_ref=record.payment_ref,
            chain_ref=record.chain_ref,
            tx_hash=record.tx_hash,
            confirmed=record.confirmed,
            link=record.link,
        )


class PartyResponse(APIResponseModel):
    address: str
    payment_ref: str
    chain_ref: str
    tx_hash: str | None
    explorer_url: str | None

    @classmethod
    def from_view(cls, party: PartyView) -> "PartyResponse":
        return cls(
            address=party.address,
            payment_ref=party.payment_ref,
            chain_ref=party.chain_ref,
            tx_hash=party.tx_hash,
            explorer_url=party.explorer_url,
        )


class ContractResponse(APIResponseModel):
    address: str
    chain_ref: str
    explorer_url: str | None


class AgreementViewResponse(APIResponseModel):
    agreement_id: str
    doc_hash: str
    cid: str
    document_url: str | None
    link: str
    contract: ContractResponse
    creator: PartyResponse
    signers: list[PartyResponse]

    @classmethod
    def from_view(cls, view: AgreementView) -> "AgreementViewResponse":
        return cls(
            agreement_id=view.agreement_id,
            doc_hash=view.doc_hash,
            cid=view.cid,
            document_url=view.document_url,
            link=view.link,
            contract=ContractResponse(
                address=view.contract.address,
                chain_ref=view.contract.chain_ref,
                explorer_url=view.contract.explorer_url,
            ),
            creator=PartyResponse.from_view(view.creator),
            signers=[PartyResponse.from_view(s) for s in view.signers],
        )
