"""x402 payment gate.

Settlement is awaited inside the request: the settlement transaction becomes
the payment reference, which feeds the agreement identifier returned to the
client. Verify-then-respond-then-settle middlewares cannot provide that.

Flow for one request::

    read_proof()  no header   -> CHALLENGED     (PaymentRequiredError, 402)
                  bad header  -> MALFORMED      (InvalidPaymentHeaderError, 400)
    settle()      verify fail -> VERIFY_FAILED  (PaymentVerificationError, 402)
                  settle fail -> SETTLE_FAILED  (SettlementError, 402)
                  ok          -> SETTLED        (SettledPayment)

Retries with the same signed proof rely on the facilitator settling each
authorization nonce at most once; the gate keeps no replay cache.
"""

from typing import Any, Literal, Protocol

from linksign.domain.agreements.identifiers import digest_text, validate_bytes32
from linksign.domain.payments.initializer import FacilitatorInitializer
from linksign.domain.payments.models import (
    PaymentAttempt,
    PaymentProof,
    PaymentRoute,
    PaymentState,
    SettledPayment,
)
from linksign.domain.payments.x402 import (
    PaymentConfig,
    build_payment_required,
    build_requirements,
    decode_header_json,
    encode_header_json,
)
from linksign.infrastructure.payments.facilitator import (
    SettleFailed,
    SettleResult,
    SupportedKind,
    VerifyRejected,
    VerifyResult,
)
from linksign.shared.exceptions import (
    FacilitatorProtocolError,
    InvalidPaymentHeaderError,
    PaymentRequiredError,
    PaymentVerificationError,
    SettlementError,
    ValidationError,
)
from linksign.shared.logging import get_logger

logger = get_logger(__name__)

PaymentReferenceSource = Literal["settlement", "header_digest"]


class FacilitatorPort(Protocol):
    """Facilitator operations the gate relies on."""

    async def supported(self) -> list[SupportedKind]:
        """List payment kinds the facilitator can verify and settle."""

    async def verify(self, payload: dict[str, Any], requirements: dict[str, Any]) -> VerifyResult:
        """Verify a signed payment authorization."""

    async def settle(self, payload: dict[str, Any], requirements: dict[str, Any]) -> SettleResult:
        """Settle a verified payment authorization."""


class PaymentGate:
    """Mediates the 402 handshake for the paid routes."""

    def __init__(
        self,
        facilitator: FacilitatorPort,
        config: PaymentConfig,
        *,
        reference_source: PaymentReferenceSource = "settlement",
        initializer: FacilitatorInitializer | None = None,
        init_timeout_seconds: float = 15.0,
    ) -> None:
        self.facilitator = facilitator
        self.config = config
        self.reference_source = reference_source
        self.initializer = initializer or FacilitatorInitializer(
            facilitator.supported,
            network=config.network,
            timeout_seconds=init_timeout_seconds,
        )

    @property
    def is_ready(self) -> bool:
        return self.initializer.is_ready

    async def close(self) -> None:
        close = getattr(self.facilitator, "close", None)
        if close is not None:
            await close()

    def requirements(self, route: PaymentRoute) -> dict[str, Any]:
        return build_requirements(self.config, route)

    def challenge(self, route: PaymentRoute) -> PaymentRequiredError:
        body = build_payment_required(self.config, route)
        return PaymentRequiredError(challenge=body, header_value=encode_header_json(body))

    def read_proof(self, route: PaymentRoute, header: str | None) -> PaymentProof:
        """Decode the payment header without contacting the facilitator.

        Raises:
            PaymentRequiredError: No header; carries the challenge.
            InvalidPaymentHeaderError: Header is not base64 JSON.
        """
        attempt = PaymentAttempt(route=route)

        if not header:
            attempt.advance(PaymentState.NO_PAYMENT)
            attempt.advance(PaymentState.CHALLENGED)
            logger.info("payment_challenged", route=str(route))
            raise self.challenge(route)

        attempt.advance(PaymentState.HAS_PAYMENT)
        try:
            payload = decode_header_json(header)
        except ValueError as e:
            attempt.advance(PaymentState.MALFORMED)
            raise InvalidPaymentHeaderError(
                "Invalid payment header format",
                details={"field": "payment_header"},
            ) from e

        if not isinstance(payload, dict):
            attempt.advance(PaymentState.MALFORMED)
            raise InvalidPaymentHeaderError(
                "Invalid payment header format",
                details={"field": "payment_header"},
            )

        return PaymentProof(route=route, raw_header=header, payload=payload, attempt=attempt)

    async def settle(self, proof: PaymentProof) -> SettledPayment:
        """Verify then settle ``proof``, returning the payment reference.

        Raises:
            FacilitatorInitError: Facilitator negotiation failed.
            PaymentVerificationError: Authorization rejected.
            SettlementError: Settlement failed after verification.
            FacilitatorUnavailableError / FacilitatorProtocolError: Upstream fault.
        """
        await self.initializer.ensure_initialized()

        attempt = proof.attempt
        requirements = self.requirements(proof.route)

        attempt.advance(PaymentState.VERIFYING)
        try:
            verification = await self.facilitator.verify(proof.payload, requirements)
        except Exception:
            attempt.advance(PaymentState.VERIFY_FAILED)
            raise

        if isinstance(verification, VerifyRejected):
            attempt.advance(PaymentState.VERIFY_FAILED)
            logger.warning(
                "payment_verify_failed",
                route=str(proof.route),
                reason=verification.reason,
            )
            raise PaymentVerificationError(verification.reason)
        attempt.advance(PaymentState.VERIFIED)

        attempt.advance(PaymentState.SETTLING)
        try:
            settlement = await self.facilitator.settle(proof.payload, requirements)
        except Exception:
            attempt.advance(PaymentState.SETTLE_FAILED)
            raise

        if isinstance(settlement, SettleFailed):
            attempt.advance(PaymentState.SETTLE_FAILED)
            logger.warning(
                "payment_settle_failed",
                route=str(proof.route),
                reason=settlement.reason,
            )
            raise SettlementError(settlement.reason)

        try:
            reference = self._payment_reference(proof, settlement.transaction)
        except FacilitatorProtocolError:
            attempt.advance(PaymentState.SETTLE_FAILED)
            raise
        attempt.advance(PaymentState.SETTLED)

        logger.info(
            "payment_settled",
            route=str(proof.route),
            transaction=settlement.transaction,
            network=settlement.network,
        )
        return SettledPayment(
            reference=reference,
            transaction=settlement.transaction,
            network=settlement.network,
            payer=settlement.payer or verification.payer,
            response_header=encode_header_json(settlement.raw),
        )

    async def collect(self, route: PaymentRoute, header: str | None) -> SettledPayment:
        """read_proof() and settle() in one step."""
        return await self.settle(self.read_proof(route, header))

    def _payment_reference(self, proof: PaymentProof, transaction: str) -> str:
        if self.reference_source == "header_digest":
            return digest_text(proof.raw_header)
        try:
            return validate_bytes32(transaction, "paymentRef")
        except ValidationError as e:
            raise FacilitatorProtocolError(
                "Settlement transaction is not a 32-byte hash",
                details={"transaction": transaction},
            ) from e
