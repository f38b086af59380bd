"""Payment gate types: routes, states and the per-request attempt."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from linksign.observability.metrics import PAYMENT_OUTCOMES
from linksign.shared.logging import get_logger

logger = get_logger(__name__)


class PaymentRoute(StrEnum):
    """Paid operations, each with its own price."""

    CREATE = "create"
    SIGN = "sign"


class PaymentState(StrEnum):
    """States of a single payment attempt."""

    START = "start"
    NO_PAYMENT = "no_payment"
    CHALLENGED = "challenged"
    HAS_PAYMENT = "has_payment"
    MALFORMED = "malformed"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    VERIFY_FAILED = "verify_failed"
    SETTLING = "settling"
    SETTLED = "settled"
    SETTLE_FAILED = "settle_failed"


_TRANSITIONS: dict[PaymentState, frozenset[PaymentState]] = {
    PaymentState.START: frozenset({PaymentState.NO_PAYMENT, PaymentState.HAS_PAYMENT}),
    PaymentState.NO_PAYMENT: frozenset({PaymentState.CHALLENGED}),
    PaymentState.HAS_PAYMENT: frozenset({PaymentState.MALFORMED, PaymentState.VERIFYING}),
    PaymentState.VERIFYING: frozenset({PaymentState.VERIFIED, PaymentState.VERIFY_FAILED}),
    PaymentState.VERIFIED: frozenset({PaymentState.SETTLING}),
    PaymentState.SETTLING: frozenset({PaymentState.SETTLED, PaymentState.SETTLE_FAILED}),
}

TERMINAL_STATES = frozenset(
    {
        PaymentState.CHALLENGED,
        PaymentState.MALFORMED,
        PaymentState.VERIFY_FAILED,
        PaymentState.SETTLED,
        PaymentState.SETTLE_FAILED,
    }
)


@dataclass
class PaymentAttempt:
    """Tracks one request's progress through the payment handshake."""

    route: PaymentRoute
    state: PaymentState = PaymentState.START
    history: list[PaymentState] = field(default_factory=list)

    def advance(self, new_state: PaymentState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(f"Illegal payment transition {self.state} -> {new_state}")
        self.history.append(self.state)
        self.state = new_state
        logger.debug("payment_state", route=str(self.route), state=str(new_state))
        if new_state in TERMINAL_STATES:
            PAYMENT_OUTCOMES.labels(route=str(self.route), state=str(new_state)).inc()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass(frozen=True)
class PaymentProof:
    """A decoded payment header, not yet verified."""

    route: PaymentRoute
    raw_header: str
    payload: dict[str, Any]
    attempt: PaymentAttempt


@dataclass(frozen=True)
class SettledPayment:
    """A settled payment and the reference derived from it."""

    reference: str
    transaction: str
    network: str
    payer: str | None
    response_header: str
