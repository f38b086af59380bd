"""Rate limiting configuration for API endpoints.

Uses slowapi with Redis backend for distributed rate limiting.
Falls back to in-memory storage for development.
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from linksign.config import get_settings
from linksign.shared.context import get_request_id
from linksign.shared.logging import get_logger

logger = get_logger(__name__)


def _get_rate_limit_key(request: Request) -> str:
    """Rate limit by client IP; there are no user accounts."""
    return get_remote_address(request)


def _create_limiter(storage_uri: str = "memory://") -> Limiter:
    """Create rate limiter with appropriate storage backend."""
    return Limiter(
        key_func=_get_rate_limit_key,
        storage_uri=storage_uri,
        strategy="fixed-window",
    )


def _storage_uri() -> str:
    try:
        settings = get_settings()
    except Exception:
        # Settings incomplete (e.g. tooling imports); limits stay per-process
        logger.info("rate_limiter_backend", backend="memory", reason="settings_unavailable")
        return "memory://"

    if settings.is_production:
        logger.info("rate_limiter_backend", backend="redis")
        return settings.redis_url
    logger.info("rate_limiter_backend", backend="memory")
    return "memory://"


limiter = _create_limiter(_storage_uri())


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.warning(
        "rate_limit_exceeded",
        path=request.url.path,
        method=request.method,
        key=_get_rate_limit_key(request),
        limit=str(exc.detail),
    )

    retry_after = getattr(exc, "retry_after", 60)
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    return JSONResponse(
        status_code=429,
        content={
            "error": "too_many_requests",
            "message": "Too many requests. Please wait a moment.",
            "details": {"limit": str(exc.detail), "retry_after": retry_after},
            "requestId": request_id,
        },
        headers={
            "Retry-After": str(retry_after),
            "X-Request-ID": request_id,
        },
    )


# ----- Rate Limit Decorators -----
# Usage: @limiter.limit(RATE_LIMIT_PAID)

RATE_LIMIT_PAID = "10/minute"            # create / sign (upload + settlement + ledger write)
RATE_LIMIT_READ = "60/minute"            # agreement lookups (RPC log scans)
RATE_LIMIT_HEALTH = "60/minute"          # Health checks
