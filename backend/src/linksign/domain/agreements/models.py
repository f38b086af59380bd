"""Agreement records returned by the registration workflow."""

from dataclasses import dataclass, field

from linksign.domain.payments.models import SettledPayment


@dataclass(frozen=True)
class AgreementRecord:
    """Outcome of a create call."""

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
    payment: SettledPayment | None = None


@dataclass(frozen=True)
class SignatureRecord:
    """Outcome of a sign call."""

    agreement_id: str
    signer: str
    payment_ref: str
    chain_ref: str
    tx_hash: str
    confirmed: bool
    link: str
    payment: SettledPayment | None = None


@dataclass(frozen=True)
class PartyView:
    """Creator or signer as shown on the agreement page."""

    address: str
    payment_ref: str
    chain_ref: str
    tx_hash: str | None
    explorer_url: str | None


@dataclass(frozen=True)
class ContractView:
    address: str
    chain_ref: str
    explorer_url: str | None


@dataclass(frozen=True)
class AgreementView:
    """Read-only aggregation of an agreement's ledger events."""

    agreement_id: str
    doc_hash: str
    cid: str
    document_url: str | None
    link: str
    contract: ContractView
    creator: PartyView
    signers: list[PartyView] = field(default_factory=list)
