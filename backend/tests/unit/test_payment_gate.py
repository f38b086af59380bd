"""Unit tests for the x402 payment gate and its state machine."""

import asyncio
import base64
from unittest.mock import AsyncMock

import pytest

from fakes import CHAIN_REF, FakeFacilitator, make_payment_header
from linksign.domain.agreements.identifiers import digest_text
from linksign.domain.payments.gate import PaymentGate
from linksign.domain.payments.initializer import FacilitatorInitializer
from linksign.domain.payments.models import PaymentAttempt, PaymentRoute, PaymentState
from linksign.domain.payments.x402 import decode_header_json
from linksign.infrastructure.payments.facilitator import SettleSucceeded, SupportedKind
from linksign.shared.exceptions import (
    FacilitatorInitError,
    FacilitatorProtocolError,
    FacilitatorUnavailableError,
    InvalidPaymentHeaderError,
    PaymentRequiredError,
    PaymentVerificationError,
    SettlementError,
)


class TestPaymentAttempt:
    """Test the per-request state machine."""

    def test_happy_path(self):
        attempt = PaymentAttempt(route=PaymentRoute.CREATE)
        for state in (
            PaymentState.HAS_PAYMENT,
            PaymentState.VERIFYING,
            PaymentState.VERIFIED,
            PaymentState.SETTLING,
            PaymentState.SETTLED,
        ):
            attempt.advance(state)

        assert attempt.is_terminal
        assert attempt.history[0] == PaymentState.START

    def test_illegal_transition_rejected(self):
        """Settling without verification is not allowed."""
        attempt = PaymentAttempt(route=PaymentRoute.SIGN)
        attempt.advance(PaymentState.HAS_PAYMENT)

        with pytest.raises(RuntimeError):
            attempt.advance(PaymentState.SETTLING)


class TestReadProof:
    """Test header decoding before any facilitator call."""

    def test_missing_header_raises_challenge(self, payment_gate, fake_facilitator):
        """No header yields a 402 challenge and no facilitator traffic."""
        with pytest.raises(PaymentRequiredError) as exc_info:
            payment_gate.read_proof(PaymentRoute.CREATE, None)

        challenge = decode_header_json(exc_info.value.header_value)
        assert challenge["x402Version"] == 2
        assert challenge["accepts"][0]["amount"] == "10000"
        assert exc_info.value.details["remediation"] == "attach_payment"
        assert fake_facilitator.supported_calls == 0

    def test_malformed_header_is_invalid(self, payment_gate, fake_facilitator):
        with pytest.raises(InvalidPaymentHeaderError):
            payment_gate.read_proof(PaymentRoute.CREATE, "%%%not-base64%%%")

        assert fake_facilitator.verify_calls == 0

    def test_non_object_payload_is_invalid(self, payment_gate):
        """A JSON array is not a payment payload."""
        header = base64.b64encode(b"[1, 2]").decode()

        with pytest.raises(InvalidPaymentHeaderError):
            payment_gate.read_proof(PaymentRoute.SIGN, header)

    def test_valid_header_decodes(self, payment_gate):
        proof = payment_gate.read_proof(PaymentRoute.CREATE, make_payment_header())

        assert proof.payload["x402Version"] == 2
        assert proof.attempt.state == PaymentState.HAS_PAYMENT


class TestSettle:
    """Test verify-then-settle."""

    @pytest.mark.asyncio
    async def test_settlement_transaction_is_reference(self, payment_gate, fake_facilitator):
        payment = await payment_gate.collect(PaymentRoute.CREATE, make_payment_header())

        assert payment.reference == payment.transaction
        assert payment.network == CHAIN_REF
        assert decode_header_json(payment.response_header)["success"] is True
        assert fake_facilitator.verify_calls == 1
        assert fake_facilitator.settle_calls == 1

    @pytest.mark.asyncio
    async def test_header_digest_reference(self, fake_facilitator, payment_config):
        """Fallback mode derives the reference from the raw header."""
        gate = PaymentGate(fake_facilitator, payment_config, reference_source="header_digest")
        header = make_payment_header()

        payment = await gate.collect(PaymentRoute.CREATE, header)

        assert payment.reference == digest_text(header)

    @pytest.mark.asyncio
    async def test_verify_rejection(self, payment_config):
        facilitator = FakeFacilitator(verify_reason="invalid_exact_evm_payload_signature")
        gate = PaymentGate(facilitator, payment_config)

        with pytest.raises(PaymentVerificationError) as exc_info:
            await gate.collect(PaymentRoute.CREATE, make_payment_header())

        assert exc_info.value.details["remediation"] == "sign_new_payment"
        assert facilitator.settle_calls == 0

    @pytest.mark.asyncio
    async def test_settle_failure(self, payment_config):
        facilitator = FakeFacilitator(settle_reason="insufficient_funds")
        gate = PaymentGate(facilitator, payment_config)

        with pytest.raises(SettlementError) as exc_info:
            await gate.collect(PaymentRoute.SIGN, make_payment_header())

        assert exc_info.value.details == {
            "remediation": "retry_settlement",
            "reason": "insufficient_funds",
        }

    @pytest.mark.asyncio
    async def test_non_hash_transaction_is_protocol_error(self, fake_facilitator, payment_config):
        """A settlement reference that is not 32 bytes is not silently used."""
        fake_facilitator.settle = AsyncMock(
            return_value=SettleSucceeded(
                transaction="0x1234", network=CHAIN_REF, payer=None, raw={"success": True}
            )
        )
        gate = PaymentGate(fake_facilitator, payment_config)

        with pytest.raises(FacilitatorProtocolError):
            await gate.collect(PaymentRoute.CREATE, make_payment_header())

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, fake_facilitator, payment_config):
        fake_facilitator.verify = AsyncMock(
            side_effect=FacilitatorUnavailableError("Payment facilitator is unreachable")
        )
        gate = PaymentGate(fake_facilitator, payment_config)

        with pytest.raises(FacilitatorUnavailableError):
            await gate.collect(PaymentRoute.CREATE, make_payment_header())


class TestFacilitatorInitializer:
    """Test lazy, single-flight facilitator negotiation."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return [SupportedKind(2, "exact", CHAIN_REF)]

        initializer = FacilitatorInitializer(fetch, network=CHAIN_REF)

        kinds = await asyncio.gather(*(initializer.ensure_initialized() for _ in range(5)))

        assert calls == 1
        assert all(k.network == CHAIN_REF for k in kinds)
        assert initializer.is_ready

    @pytest.mark.asyncio
    async def test_memoized_after_success(self):
        fetch = AsyncMock(return_value=[SupportedKind(2, "exact", CHAIN_REF)])
        initializer = FacilitatorInitializer(fetch, network=CHAIN_REF)

        await initializer.ensure_initialized()
        await initializer.ensure_initialized()

        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_resets_for_retry(self):
        """A timed-out attempt is cleared so the next caller retries."""
        attempts = 0

        async def fetch():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                await asyncio.sleep(1)
            return [SupportedKind(2, "exact", CHAIN_REF)]

        initializer = FacilitatorInitializer(fetch, network=CHAIN_REF, timeout_seconds=0.05)

        with pytest.raises(FacilitatorInitError):
            await initializer.ensure_initialized()
        assert not initializer.is_ready

        kind = await initializer.ensure_initialized()
        assert kind.scheme == "exact"
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_unsupported_network(self):
        fetch = AsyncMock(return_value=[SupportedKind(2, "exact", "eip155:1")])
        initializer = FacilitatorInitializer(fetch, network=CHAIN_REF)

        with pytest.raises(FacilitatorInitError) as exc_info:
            await initializer.ensure_initialized()

        assert exc_info.value.details == {"scheme": "exact", "network": CHAIN_REF}

    @pytest.mark.asyncio
    async def test_transport_failure_wrapped(self):
        fetch = AsyncMock(side_effect=FacilitatorUnavailableError("down"))
        initializer = FacilitatorInitializer(fetch, network=CHAIN_REF)

        with pytest.raises(FacilitatorInitError):
            await initializer.ensure_initialized()

    @pytest.mark.asyncio
    async def test_gate_fails_init_before_verify(self, payment_config):
        facilitator = FakeFacilitator(kinds=[])
        gate = PaymentGate(facilitator, payment_config)

        with pytest.raises(FacilitatorInitError):
            await gate.collect(PaymentRoute.CREATE, make_payment_header())

        assert facilitator.verify_calls == 0
