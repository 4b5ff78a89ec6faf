"""Public entrypoint for checkout payment creation.

The proxy holds the gateway credentials, validates the checkout payload and
forwards a single payment creation call to the configured gateway.
"""

from time import perf_counter
from uuid import uuid4

import httpx
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response

from checkoutpay.common.config import ProxySettings, settings
from checkoutpay.common.logging import configure_logging, logger, trace_id_ctx
from checkoutpay.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
)
from checkoutpay.common.startup import log_startup_config
from checkoutpay.common.tracing import instrument_app, setup_tracing
from checkoutpay.services.payment_proxy.service import PaymentProxyService

STARTUP_FIELDS = [
    "gateway_provider",
    "gateway_base_url",
    "gateway_public_key",
    "gateway_secret_key",
    "gateway_payments_endpoint",
    "gateway_timeout_seconds",
    "gateway_max_attempts",
    "gateway_backoff_base_seconds",
]


def cors_headers(config: ProxySettings) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": config.cors_allow_origin,
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": (
            "Authorization, X-Client-ID, Content-Type, X-Correlation-ID, apikey, x-client-info"
        ),
    }


def create_app(
    config: ProxySettings,
    transport: httpx.AsyncBaseTransport | None = None,
    service: PaymentProxyService | None = None,
) -> FastAPI:
    """Build the FastAPI app around an explicit settings object."""

    service = service or PaymentProxyService(config, transport=transport)
    app = FastAPI(title="Checkout Payment Proxy")
    instrument_app(app, config)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency for every HTTP call."""

        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=config.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=config.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.options("/process-payment")
    def process_payment_preflight():
        """CORS preflight for the checkout page."""

        return Response(status_code=204, headers=cors_headers(config))

    @app.post("/process-payment")
    async def process_payment(request: Request, x_correlation_id: str | None = Header(default=None)):
        """Create a PIX or card payment and return the normalized result."""

        trace_id_ctx.set(x_correlation_id or str(uuid4()))
        try:
            body = await request.json()
        except ValueError:
            logger.warning("process-payment received a non-JSON body")
            body = None

        status_code, result = await service.handle(body)
        return JSONResponse(status_code=status_code, content=result.to_body(), headers=cors_headers(config))

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app


configure_logging()
setup_tracing(settings)
log_startup_config(settings, STARTUP_FIELDS)
app = create_app(settings)
