"""Custom exception hierarchy for LinkSign."""

from typing import Any


class LinkSignError(Exception):
    """Base exception for all LinkSign errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ----- Validation Errors -----


class ValidationError(LinkSignError):
    """Input validation failed."""

    pass


class FileTooLargeError(ValidationError):
    """Uploaded file exceeds size limit."""

    def __init__(self, max_bytes: int) -> None:
        super().__init__(
            message=f"File is too large. Maximum size: {max_bytes} bytes",
            details={"max_bytes": max_bytes},
        )


# ----- Resource Errors -----


class NotFoundError(LinkSignError):
    """Requested resource was not found."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            message=f"{resource} not found",
            details={"resource": resource, "identifier": identifier},
        )


class ConflictError(LinkSignError):
    """Resource conflict (e.g., already signed)."""

    pass


# ----- Payment Errors -----


class PaymentError(LinkSignError):
    """Base class for x402 payment failures."""

    pass


class PaymentRequiredError(PaymentError):
    """No payment proof attached; carries the challenge for the client."""

    def __init__(self, challenge: dict[str, Any], header_value: str) -> None:
        super().__init__(
            message="Payment required",
            details={"remediation": "attach_payment", **challenge},
        )
        self.challenge = challenge
        self.header_value = header_value


class InvalidPaymentHeaderError(ValidationError):
    """Payment header could not be decoded."""

    pass


class PaymentVerificationError(PaymentError):
    """Facilitator rejected the payment authorization. Client must re-sign."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message=reason,
            details={"remediation": "sign_new_payment", "reason": reason},
        )


class SettlementError(PaymentError):
    """Verification passed but settlement failed. Client may retry settlement."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message="Payment settlement failed",
            details={"remediation": "retry_settlement", "reason": reason},
        )


# ----- External Service Errors -----


class ExternalServiceError(LinkSignError):
    """Error from an external service."""

    pass


class StorageError(ExternalServiceError):
    """Error from the document store (IPFS / S3)."""

    pass


class FacilitatorUnavailableError(ExternalServiceError):
    """Facilitator could not be reached or answered with a transport error."""

    pass


class FacilitatorProtocolError(ExternalServiceError):
    """Facilitator answered with a payload of unrecognized shape."""

    pass


class FacilitatorInitError(ExternalServiceError):
    """Facilitator capability negotiation failed or timed out."""

    pass


class LedgerError(ExternalServiceError):
    """Base class for ledger failures."""

    pass


class LedgerUnavailableError(LedgerError):
    """Ledger RPC could not be reached."""

    pass


class LedgerRevertError(LedgerError):
    """Contract execution reverted (simulation or on-chain)."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=f"Ledger rejected the transaction: {reason}",
            details={"reason": reason, **(details or {})},
        )
        self.reason = reason


class LedgerTimeoutError(LedgerError):
    """Transaction was broadcast but not confirmed in time."""

    def __init__(self, tx_hash: str, timeout_seconds: float) -> None:
        super().__init__(
            message=f"Transaction not confirmed within {timeout_seconds:g}s",
            details={"tx_hash": tx_hash, "timeout_seconds": timeout_seconds},
        )
        self.tx_hash = tx_hash
