"""AgreementOracle ledger adapter."""

from linksign.infrastructure.ledger.oracle import (
    AgreementHistory,
    AgreementOracle,
    CreatedEvent,
    LedgerLookup,
    LedgerWriteResult,
    ReadFailurePolicy,
    SignedEvent,
)

__all__ = [
    "AgreementHistory",
    "AgreementOracle",
    "CreatedEvent",
    "LedgerLookup",
    "LedgerWriteResult",
    "ReadFailurePolicy",
    "SignedEvent",
]
