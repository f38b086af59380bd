"""Agreement API routes."""

from fastapi import APIRouter, Request, Response
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from linksign.api.deps import AgreementServiceDep, PaymentHeaderDep
from linksign.api.ratelimit import RATE_LIMIT_PAID, RATE_LIMIT_READ, limiter
from linksign.api.schemas import (
    AgreementRecordResponse,
    AgreementViewResponse,
    CreateAgreementRequest,
    SignAgreementRequest,
    SignatureRecordResponse,
)
from linksign.domain.agreements.identifiers import decode_base64_document
from linksign.domain.payments.models import SettledPayment
from linksign.domain.payments.x402 import PAYMENT_RESPONSE_HEADER
from linksign.shared.exceptions import ValidationError

router = APIRouter(tags=["Agreements"])


# ----- Helpers -----


async def _read_multipart(request: Request) -> tuple[bytes, str | None, str]:
    form = await request.form()
    upload = form.get("file")
    if not isinstance(upload, UploadFile):
        raise ValidationError("Missing file", details={"field": "file"})

    creator = form.get("creatorAddress")
    if not isinstance(creator, str) or not creator:
        raise ValidationError("Missing creatorAddress", details={"field": "creatorAddress"})

    file_name = form.get("fileName")
    name = file_name if isinstance(file_name, str) and file_name else upload.filename
    return await upload.read(), name, creator


async def _read_json(request: Request) -> tuple[bytes, str | None, str]:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Request body must be JSON") from e

    try:
        payload = CreateAgreementRequest.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(
            "Request validation failed",
            details={
                "errors": e.errors(include_url=False, include_context=False, include_input=False)
            },
        ) from e

    return decode_base64_document(payload.file_base64), payload.file_name, payload.creator_address


async def read_create_body(request: Request) -> tuple[bytes, str | None, str]:
    """Accept either a JSON body with ``fileBase64`` or a multipart upload."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        return await _read_multipart(request)
    return await _read_json(request)


def _attach_payment_response(response: Response, payment: SettledPayment | None) -> None:
    if payment is not None:
        response.headers[PAYMENT_RESPONSE_HEADER] = payment.response_header


# ----- Routes -----


@router.post("/create", response_model=AgreementRecordResponse)
@limiter.limit(RATE_LIMIT_PAID)
async def create_agreement(
    request: Request,
    response: Response,
    service: AgreementServiceDep,
    payment_header: PaymentHeaderDep,
) -> AgreementRecordResponse:
    """Register a document as an agreement (paid).

    Without a payment header the response is a 402 challenge. Re-sending the
    same document with the same settled payment returns the existing
    agreement with ``alreadyExisted: true``.
    """
    file_bytes, file_name, creator = await read_create_body(request)

    record = await service.create_agreement(
        file_bytes=file_bytes,
        file_name=file_name,
        creator_address=creator,
        payment_header=payment_header,
    )

    _attach_payment_response(response, record.payment)
    return AgreementRecordResponse.from_record(record)


@router.post("/sign", response_model=SignatureRecordResponse)
@limiter.limit(RATE_LIMIT_PAID)
async def sign_agreement(
    request: Request,
    response: Response,
    body: SignAgreementRequest,
    service: AgreementServiceDep,
    payment_header: PaymentHeaderDep,
) -> SignatureRecordResponse:
    """Record a signature on an existing agreement (paid)."""
    record = await service.sign_agreement(
        agreement_id=body.agreement_id,
        signer_address=body.signer_address,
        payment_header=payment_header,
    )

    _attach_payment_response(response, record.payment)
    return SignatureRecordResponse.from_record(record)


@router.get("/agreement/{agreement_id}", response_model=AgreementViewResponse)
@limiter.limit(RATE_LIMIT_READ)
async def get_agreement(
    request: Request,
    agreement_id: str,
    service: AgreementServiceDep,
) -> AgreementViewResponse:
    """Creation and signature history of an agreement."""
    view = await service.get_agreement(agreement_id)
    return AgreementViewResponse.from_view(view)
