"""Payment creation against the configured gateway with 429 retry/backoff."""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable

import httpx

from checkoutpay.common.config import ProxySettings
from checkoutpay.common.logging import bind_checkout, logger
from checkoutpay.common.metrics import (
    gateway_retries_total,
    payment_failure_total,
    payment_latency_seconds,
    payment_requests_total,
    payment_success_total,
)
from checkoutpay.services.payment_proxy.errors import (
    GatewayError,
    GatewayTimeoutError,
    NetworkError,
    PaymentProxyError,
    UnknownError,
)
from checkoutpay.services.payment_proxy.providers import BaseProvider, build_provider
from checkoutpay.services.payment_proxy.schemas import PaymentIntent, PaymentResult
from checkoutpay.services.payment_proxy.validation import parse_payment_request

USER_AGENT = "checkoutpay-proxy/1.0"
ERROR_TEXT_LIMIT = 150
SENSITIVE_KEYS = {"card_number", "number", "card_cvv", "cvv", "document"}


def redact_payload(payload: Any) -> Any:
    """Copy of a gateway payload safe to log (card data and CPF masked)."""

    if isinstance(payload, dict):
        redacted = {}
        for key, value in payload.items():
            if key in SENSITIVE_KEYS and isinstance(value, str) and "number" in key:
                redacted[key] = "*" * max(0, len(value) - 4) + value[-4:]
            elif key in SENSITIVE_KEYS and isinstance(value, str):
                redacted[key] = "***"
            else:
                redacted[key] = redact_payload(value)
        return redacted
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    return payload


def extract_error_message(status_code: int, text: str) -> str:
    """Pull a human-readable message out of a gateway error body."""

    fallback = f"Gateway request failed (status {status_code})"
    try:
        data = json.loads(text)
    except ValueError:
        return text.strip()[:ERROR_TEXT_LIMIT] or fallback

    if not isinstance(data, dict):
        return fallback
    candidates = [data.get("message"), data.get("error"), data.get("detail")]
    errors = data.get("errors")
    if isinstance(errors, list) and errors:
        candidates.append(errors[0])
    for candidate in candidates:
        if isinstance(candidate, dict):
            candidate = candidate.get("message") or candidate.get("msg")
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return fallback


def gateway_error_from_response(response: httpx.Response) -> GatewayError:
    """Translate a non-2xx gateway response, keeping its status where meaningful."""

    status_code = response.status_code
    message = extract_error_message(status_code, response.text)
    if status_code in (401, 403):
        message = (
            f"{message} (payment gateway rejected the credentials; "
            "check GATEWAY_PUBLIC_KEY and GATEWAY_SECRET_KEY)"
        )
    if not 400 <= status_code <= 599:
        status_code = 502
    return GatewayError(message, status_code=status_code)


class PaymentProxyService:
    """Validates checkout requests and creates payments at the gateway."""

    def __init__(
        self,
        config: ProxySettings,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.transport = transport
        self.sleep = sleep
        self.clock = clock

    async def handle(self, body: Any) -> tuple[int, PaymentResult]:
        """Run one request end to end; never raises."""

        try:
            result = await self.process_payment(body)
            return 200, result
        except PaymentProxyError as exc:
            error = exc
        except Exception as exc:
            logger.exception("unexpected payment proxy failure: %s", exc)
            error = UnknownError("Unexpected error while processing payment. Please try again.")

        payment_failure_total.labels(service=self.config.service_name, error_type=error.error_type).inc()
        logger.warning(
            "payment request failed error_type=%s status=%s message=%s",
            error.error_type,
            error.status_code,
            error.message,
        )
        return error.status_code, PaymentResult(success=False, error=error.message)

    async def process_payment(self, body: Any) -> PaymentResult:
        """Validate, build the provider payload, call the gateway, normalize."""

        provider = build_provider(self.config)
        intent = parse_payment_request(body, clock=self.clock)
        bind_checkout(intent.external_id, intent.payment_method)
        payment_requests_total.labels(service=self.config.service_name, method=intent.payment_method).inc()

        payload = provider.build_payload(intent, self.config.order_description)
        logger.info(
            "gateway request provider=%s url=%s body=%s",
            provider.name,
            provider.url,
            json.dumps(redact_payload(payload), ensure_ascii=False),
        )

        with payment_latency_seconds.labels(service=self.config.service_name).time():
            response = await self._post_with_retry(provider, intent, payload)

        if not response.is_success:
            logger.error(
                "gateway rejected payment status=%s body=%s",
                response.status_code,
                response.text[:500],
            )
            raise gateway_error_from_response(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayError("invalid gateway response: body is not JSON", status_code=502) from exc

        result = provider.parse_response(intent, data)
        payment_success_total.labels(service=self.config.service_name, method=intent.payment_method).inc()
        logger.info(
            "payment created transaction_id=%s method=%s status=%s",
            result.transaction_id,
            intent.payment_method,
            result.status,
        )
        return result

    async def _post_with_retry(
        self,
        provider: BaseProvider,
        intent: PaymentIntent,
        payload: dict[str, Any],
    ) -> httpx.Response:
        """POST the payload, retrying only rate-limited (429) responses."""

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            **provider.headers(intent),
        }
        max_attempts = max(1, self.config.gateway_max_attempts)
        async with httpx.AsyncClient(
            timeout=self.config.gateway_timeout_seconds,
            transport=self.transport,
        ) as client:
            for attempt in range(1, max_attempts + 1):
                try:
                    # One deadline for the whole attempt; httpx timeouts are per phase.
                    response = await asyncio.wait_for(
                        client.post(provider.url, headers=headers, json=payload),
                        timeout=self.config.gateway_timeout_seconds,
                    )
                except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
                    logger.error("gateway timeout attempt=%s url=%s", attempt, provider.url)
                    raise GatewayTimeoutError(
                        "The payment gateway took too long to respond. Please try again."
                    ) from exc
                except httpx.TransportError as exc:
                    logger.error("gateway transport error attempt=%s error=%s", attempt, exc)
                    raise NetworkError("Could not reach the payment gateway. Please try again.") from exc

                if response.status_code != 429 or attempt == max_attempts:
                    return response

                # Exponential backoff: base, 2*base, 4*base, ...
                backoff_seconds = self.config.gateway_backoff_base_seconds * 2 ** (attempt - 1)
                gateway_retries_total.labels(service=self.config.service_name, provider=provider.name).inc()
                logger.warning(
                    "gateway rate limited attempt=%s backoff_s=%s",
                    attempt,
                    backoff_seconds,
                )
                await self.sleep(backoff_seconds)
        raise NetworkError("Could not reach the payment gateway. Please try again.")
