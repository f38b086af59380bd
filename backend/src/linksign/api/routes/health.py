"""Health check endpoints."""

from fastapi import APIRouter, Request
from pydantic import BaseModel

from linksign.api.ratelimit import RATE_LIMIT_HEALTH, limiter
from linksign.shared.exceptions import LedgerUnavailableError
from linksign.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ReadyResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    checks: dict[str, bool]
    facilitator: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check - always returns OK if service is running."""
    from linksign import __version__

    return HealthResponse(status="healthy", version=__version__)


@router.get("/ready", response_model=ReadyResponse)
@limiter.limit(RATE_LIMIT_HEALTH)
async def readiness_check(request: Request) -> ReadyResponse:
    """Readiness check - the ledger RPC must answer.

    Facilitator negotiation is lazy; its state is reported but does not
    gate readiness.
    """
    checks: dict[str, bool] = {}

    try:
        await request.app.state.ledger.block_number()
        checks["ledger"] = True
    except LedgerUnavailableError as e:
        logger.warning("ledger_health_check_failed", error=e.message)
        checks["ledger"] = False

    gate = request.app.state.payment_gate
    return ReadyResponse(
        ready=all(checks.values()),
        checks=checks,
        facilitator="initialized" if gate.is_ready else "pending",
    )
