"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from linksign import __version__
from linksign.api.middleware.request_id import REQUEST_ID_HEADER, setup_request_id
from linksign.api.ratelimit import limiter, rate_limit_exceeded_handler
from linksign.api.router import api_router
from linksign.config import get_settings
from linksign.domain.payments.x402 import (
    LEGACY_PAYMENT_HEADER,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_RESPONSE_HEADER,
    PAYMENT_SIGNATURE_HEADER,
)
from linksign.infrastructure.factory import (
    build_ledger,
    build_payment_gate,
    build_storage,
    close_resources,
)
from linksign.observability.metrics import setup_metrics
from linksign.shared.context import get_request_id
from linksign.shared.exceptions import (
    ConflictError,
    ExternalServiceError,
    FacilitatorInitError,
    InvalidPaymentHeaderError,
    LedgerRevertError,
    LedgerTimeoutError,
    LinkSignError,
    NotFoundError,
    PaymentRequiredError,
    PaymentVerificationError,
    SettlementError,
    ValidationError,
)
from linksign.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown events."""
    # Startup
    setup_logging()
    logger.info("linksign_starting", version=__version__)

    # Shared clients (avoid per-request client creation)
    settings = get_settings()
    app.state.storage = getattr(app.state, "storage", None) or build_storage(settings)
    app.state.ledger = getattr(app.state, "ledger", None) or build_ledger(settings)
    app.state.payment_gate = getattr(app.state, "payment_gate", None) or build_payment_gate(
        settings
    )

    yield

    # Shutdown
    logger.info("linksign_stopping")
    await close_resources(
        getattr(app.state, "payment_gate", None),
        getattr(app.state, "ledger", None),
        getattr(app.state, "storage", None),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LinkSign API",
        description="Pay-per-use agreement registry on an EVM ledger",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]

    # CORS middleware; browsers must be able to read the x402 headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"] if settings.is_production else ["*"],
        allow_headers=[
            "Content-Type",
            REQUEST_ID_HEADER,
            PAYMENT_SIGNATURE_HEADER,
            LEGACY_PAYMENT_HEADER,
        ]
        if settings.is_production
        else ["*"],
        expose_headers=[PAYMENT_REQUIRED_HEADER, PAYMENT_RESPONSE_HEADER, REQUEST_ID_HEADER],
    )

    # Exception handlers
    register_exception_handlers(app)

    # Include routers
    app.include_router(api_router, prefix="/api")

    # Observability
    setup_request_id(app)
    setup_metrics(app)

    return app


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """JSON error body shared by every handler."""
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    content: dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    content["requestId"] = request_id
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={REQUEST_ID_HEADER: request_id, **(headers or {})},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""

    @app.exception_handler(InvalidPaymentHeaderError)
    async def invalid_payment_header_handler(
        request: Request, exc: InvalidPaymentHeaderError
    ) -> JSONResponse:
        return error_response(request, 400, "invalid_payment_header", exc.message, exc.details)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return error_response(request, 400, "validation_error", exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return error_response(
            request, 400, "validation_error", "Request validation failed", {"errors": errors}
        )

    @app.exception_handler(PaymentRequiredError)
    async def payment_required_handler(
        request: Request, exc: PaymentRequiredError
    ) -> JSONResponse:
        return error_response(
            request,
            402,
            "payment_required",
            exc.message,
            exc.details,
            headers={PAYMENT_REQUIRED_HEADER: exc.header_value},
        )

    @app.exception_handler(PaymentVerificationError)
    async def payment_verification_handler(
        request: Request, exc: PaymentVerificationError
    ) -> JSONResponse:
        return error_response(
            request, 402, "payment_verification_failed", exc.message, exc.details
        )

    @app.exception_handler(SettlementError)
    async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
        return error_response(request, 402, "settlement_failed", exc.message, exc.details)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return error_response(request, 404, "not_found", exc.message, exc.details)

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return error_response(request, 409, "conflict", exc.message, exc.details)

    @app.exception_handler(LedgerRevertError)
    async def ledger_revert_handler(request: Request, exc: LedgerRevertError) -> JSONResponse:
        return error_response(request, 409, "ledger_revert", exc.message, exc.details)

    @app.exception_handler(LedgerTimeoutError)
    async def ledger_timeout_handler(request: Request, exc: LedgerTimeoutError) -> JSONResponse:
        return error_response(request, 504, "ledger_timeout", exc.message, exc.details)

    @app.exception_handler(FacilitatorInitError)
    async def facilitator_init_handler(
        request: Request, exc: FacilitatorInitError
    ) -> JSONResponse:
        logger.error("facilitator_init_error", error=exc.message)
        return error_response(request, 500, "payment_init_failed", exc.message)

    @app.exception_handler(ExternalServiceError)
    async def upstream_error_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        logger.error(
            "upstream_error",
            error=exc.message,
            error_type=type(exc).__name__,
            details=exc.details,
        )
        return error_response(request, 502, "upstream_error", exc.message)

    @app.exception_handler(LinkSignError)
    async def linksign_error_handler(request: Request, exc: LinkSignError) -> JSONResponse:
        logger.error("unhandled_error", error=exc.message, details=exc.details)
        return error_response(request, 500, "internal_error", "An internal error occurred")

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_error", error=str(exc))
        return error_response(request, 500, "internal_error", "An unexpected error occurred")


# Create app instance
app = create_app()
