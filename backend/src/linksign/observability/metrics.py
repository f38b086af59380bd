"""Prometheus metrics instrumentation for FastAPI."""

import time
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import FastAPI, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
REQUEST_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "In-progress HTTP requests",
    ["method"],
)

PAYMENT_OUTCOMES = Counter(
    "x402_payment_outcomes_total",
    "Terminal payment states by paid route",
    ["route", "state"],
)
LEDGER_WRITES = Counter(
    "ledger_writes_total",
    "AgreementOracle write attempts by action and outcome",
    ["action", "outcome"],
)
LEDGER_CONFIRMATION_LATENCY = Histogram(
    "ledger_confirmation_seconds",
    "Time spent waiting for transaction receipts",
    ["action"],
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 60, 120, 300),
)


# Scrapes would otherwise dominate the request counters
_UNINSTRUMENTED_PATHS = frozenset({"/metrics"})
UNMATCHED_PATH = "unmatched"


def route_template(request: Request) -> str:
    """Label requests by route template so agreement ids never become series."""
    route: Any | None = request.scope.get("route")
    path = getattr(route, "path", None)
    if isinstance(path, str) and path:
        return path
    return UNMATCHED_PATH


def setup_metrics(app: FastAPI) -> None:
    """Attach request instrumentation and the /metrics scrape endpoint."""

    @app.middleware("http")
    async def record_request_metrics(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in _UNINSTRUMENTED_PATHS:
            return await call_next(request)

        method = request.method
        status_code = "500"
        started = time.perf_counter()
        with REQUEST_IN_PROGRESS.labels(method=method).track_inprogress():
            try:
                response = await call_next(request)
                status_code = str(response.status_code)
                return response
            finally:
                path = route_template(request)
                REQUEST_LATENCY.labels(method=method, path=path).observe(
                    time.perf_counter() - started
                )
                REQUEST_COUNT.labels(method=method, path=path, status_code=status_code).inc()

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
