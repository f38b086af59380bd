"""Structured logging configuration.

Console output in development, one JSON object per line elsewhere. Events
carry the request ID bound in :mod:`linksign.shared.context`.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, cast

import structlog

from linksign.config import get_settings

REDACTED = "***"

# Event keys whose values must never reach log output
SENSITIVE_KEYS = frozenset(
    {
        "private_key",
        "server_wallet_private_key",
        "pinata_jwt",
        "facilitator_api_key",
        "authorization",
        "payment_header",
        "signature",
    }
)

_QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "httpx", "httpcore", "web3", "botocore", "urllib3")


def redact_sensitive(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask wallet keys, API tokens and signed payment proofs."""
    for key in event_dict.keys() & SENSITIVE_KEYS:
        event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """Configure structlog on top of the standard library logger."""
    settings = get_settings()
    log_level = logging.DEBUG if settings.app_debug else logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        redact_sensitive,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
