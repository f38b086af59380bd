"""Request correlation context."""

from contextvars import ContextVar
from dataclasses import dataclass

import structlog


@dataclass(frozen=True)
class RequestContext:
    """Correlation data for the current request."""

    request_id: str
    method: str
    path: str


# Context variable to hold request info for the current task
_request_context: ContextVar[RequestContext | None] = ContextVar(
    "request_context", default=None
)


def set_request_context(ctx: RequestContext) -> None:
    """Set the request context and bind it to structured logs."""
    _request_context.set(ctx)
    structlog.contextvars.bind_contextvars(request_id=ctx.request_id)


def get_request_id() -> str:
    """Request ID of the current request, or "unknown" outside a request."""
    ctx = _request_context.get()
    return ctx.request_id if ctx is not None else "unknown"


def get_optional_request_context() -> RequestContext | None:
    """Get the request context if available, None otherwise."""
    return _request_context.get()


def clear_request_context() -> None:
    """Clear the request context."""
    _request_context.set(None)
    structlog.contextvars.unbind_contextvars("request_id")
