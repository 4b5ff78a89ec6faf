"""Structured JSON logging with checkout correlation fields.

Every record carries the gateway provider in use plus the trace id, external
id and payment method of the request being processed, so one checkout attempt
can be followed across the retry loop.
"""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from checkoutpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
external_id_ctx: ContextVar[str] = ContextVar("external_id", default="")
payment_method_ctx: ContextVar[str] = ContextVar("payment_method", default="")

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(service_name)s %(gateway_provider)s "
    "%(trace_id)s %(external_id)s %(payment_method)s %(message)s"
)


class CheckoutContextFilter(logging.Filter):
    """Stamp provider and per-request checkout identifiers on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.gateway_provider = settings.gateway_provider
        record.trace_id = trace_id_ctx.get()
        record.external_id = external_id_ctx.get()
        record.payment_method = payment_method_ctx.get()
        return True


def bind_checkout(external_id: str, payment_method: str) -> None:
    """Attach the validated checkout identifiers to the current request context."""

    external_id_ctx.set(external_id)
    payment_method_ctx.set(payment_method)


def configure_logging() -> None:
    """Configure root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = CheckoutContextFilter()
    handler.addFilter(context_filter)
    handler.setFormatter(JsonFormatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)


logger = logging.getLogger("checkoutpay")
