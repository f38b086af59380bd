"""FastAPI dependencies for API routes."""

from typing import Annotated

from fastapi import Depends, Request

from linksign.config import get_settings
from linksign.domain.agreements.services import AgreementService
from linksign.domain.payments.x402 import LEGACY_PAYMENT_HEADER, PAYMENT_SIGNATURE_HEADER


def get_agreement_service(request: Request) -> AgreementService:
    """Build the service around the clients created in the app lifespan."""
    settings = get_settings()
    state = request.app.state
    return AgreementService(
        storage=state.storage,
        ledger=state.ledger,
        payment_gate=state.payment_gate,
        app_domain=settings.app_domain,
        max_upload_bytes=settings.max_upload_bytes,
    )


AgreementServiceDep = Annotated[AgreementService, Depends(get_agreement_service)]


def get_payment_header(request: Request) -> str | None:
    """x402 v2 header, falling back to the v1 ``X-PAYMENT`` header."""
    return request.headers.get(PAYMENT_SIGNATURE_HEADER) or request.headers.get(
        LEGACY_PAYMENT_HEADER
    )


PaymentHeaderDep = Annotated[str | None, Depends(get_payment_header)]
