"""Prometheus metrics for DairyOps observability."""

import time

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match
from starlette.types import ASGIApp

# === Counters ===

HTTP_REQUESTS_TOTAL = Counter(
    "dairyops_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

WEBHOOK_VERIFICATIONS_TOTAL = Counter(
    "dairyops_webhook_verifications_total",
    "Webhook signature verification outcomes",
    ["outcome"],  # outcome: accepted, rejected, misconfigured
)

STORE_ERRORS_TOTAL = Counter(
    "dairyops_store_errors_total",
    "Failed data store operations",
    ["operation"],
)

# === Histograms ===

HTTP_REQUEST_LATENCY = Histogram(
    "dairyops_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

STORE_LATENCY = Histogram(
    "dairyops_store_latency_seconds",
    "Data store operation latency",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# === Gauges ===

CIRCUIT_BREAKER_STATE = Gauge(
    "dairyops_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
)


# === Helper Functions ===


def record_http_request(
    method: str,
    endpoint: str,
    status: int,
    latency: float,
) -> None:
    """Record an HTTP request."""
    HTTP_REQUESTS_TOTAL.labels(
        method=method,
        endpoint=endpoint,
        status=str(status),
    ).inc()
    HTTP_REQUEST_LATENCY.labels(
        method=method,
        endpoint=endpoint,
    ).observe(latency)


def record_webhook_verification(outcome: str) -> None:
    """Record a webhook verification outcome."""
    WEBHOOK_VERIFICATIONS_TOTAL.labels(outcome=outcome).inc()


def record_store_call(operation: str, latency: float, failed: bool = False) -> None:
    """Record a data store call."""
    STORE_LATENCY.labels(operation=operation).observe(latency)
    if failed:
        STORE_ERRORS_TOTAL.labels(operation=operation).inc()


def update_circuit_breaker_state(state: str) -> None:
    """Update circuit breaker state gauge."""
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    CIRCUIT_BREAKER_STATE.set(state_map.get(state, -1))


# === HTTP Endpoint ===


def _route_template(request: Request) -> str:
    """Resolve the route path template so ids do not explode label cardinality."""
    for route in request.app.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """HTTP request metrics middleware."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self._exclude_paths = set(exclude_paths or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exclude_paths:
            return await call_next(request)

        endpoint = _route_template(request)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            record_http_request(
                method=request.method,
                endpoint=endpoint,
                status=500,
                latency=duration,
            )
            raise

        duration = time.perf_counter() - start
        record_http_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            latency=duration,
        )
        return response


async def metrics_endpoint(_request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return Response(
        generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
