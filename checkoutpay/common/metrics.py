"""Prometheus metric definitions for the payment proxy."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter(
    "payment_requests_total",
    "Total payment requests accepted by validation",
    ["service", "method"],
)
payment_success_total = Counter(
    "payment_success_total",
    "Total payments created at the gateway",
    ["service", "method"],
)
payment_failure_total = Counter(
    "payment_failure_total",
    "Total failed payment requests",
    ["service", "error_type"],
)
payment_latency_seconds = Histogram(
    "payment_latency_seconds",
    "Gateway payment creation latency seconds",
    ["service"],
)
gateway_retries_total = Counter(
    "gateway_retries_total",
    "Gateway calls retried after a rate limit response",
    ["service", "provider"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
