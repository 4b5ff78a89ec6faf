"""Gateway call tests: retry/backoff on 429, error mapping, transport failures."""

import asyncio

import httpx
import pytest

from checkoutpay.services.payment_proxy.service import (
    PaymentProxyService,
    extract_error_message,
    redact_payload,
)
from conftest import ScriptedGateway, make_settings

PIX_OK = {"id": "tx_123", "status": "pending", "qr_code": "00020126pix", "qr_code_image": "iVBORw0KGgo="}


def make_service(gateway: ScriptedGateway, sleep, **overrides) -> PaymentProxyService:
    return PaymentProxyService(
        make_settings(**overrides),
        transport=gateway.transport(),
        sleep=sleep,
        clock=lambda: 1700000000.0,
    )


@pytest.mark.asyncio
async def test_pix_success_sends_credentials(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(201, json=PIX_OK))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 200
    assert result.success is True
    assert result.transaction_id == "tx_123"
    assert result.qr_code == "00020126pix"
    request = gateway.requests[0]
    assert str(request.url) == "https://gateway.test/api/v1/pagamentos"
    assert request.headers["X-Public-Key"] == "pk_test"
    assert request.headers["X-Secret-Key"] == "sk_test"
    assert request.headers["Content-Type"] == "application/json"
    assert gateway.sent_json()["external_id"] == "ORDER_PIX_1700000000000"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limited_then_created(pix_body, sleep):
    gateway = ScriptedGateway(
        httpx.Response(429, json={"message": "slow down"}),
        httpx.Response(429, json={"message": "slow down"}),
        httpx.Response(429, json={"message": "slow down"}),
        httpx.Response(201, json=PIX_OK),
    )
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 200
    assert result.success is True
    assert len(gateway.requests) == 4
    assert sleep.delays == pytest.approx([0.4, 0.8, 1.6])


@pytest.mark.asyncio
async def test_rate_limit_exhausts_attempts(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(429, json={"error": "Too many requests"}))
    status_code, result = await make_service(gateway, sleep, gateway_max_attempts=3).handle(pix_body)

    assert status_code == 429
    assert result.success is False
    assert result.error == "Too many requests"
    assert len(gateway.requests) == 3
    assert sleep.delays == pytest.approx([0.4, 0.8])


@pytest.mark.asyncio
async def test_server_error_is_not_retried(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(500, text="upstream exploded"))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 500
    assert result.error == "upstream exploded"
    assert len(gateway.requests) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_unauthorized_is_passed_through_with_guidance(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(401, json={"message": "Invalid API key"}))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 401
    assert result.error.startswith("Invalid API key")
    assert "GATEWAY_SECRET_KEY" in result.error


@pytest.mark.asyncio
async def test_gateway_cpf_error_is_reported_verbatim(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(422, json={"errors": [{"message": "CPF do cliente inválido"}]}))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 422
    assert result.error == "CPF do cliente inválido"


@pytest.mark.asyncio
async def test_timeout_is_classified(pix_body, sleep):
    gateway = ScriptedGateway(httpx.ReadTimeout("timed out"))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 502
    assert "took too long" in result.error
    assert len(gateway.requests) == 1


@pytest.mark.asyncio
async def test_connection_refused_is_network_error(pix_body, sleep):
    gateway = ScriptedGateway(httpx.ConnectError("connection refused"))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 502
    assert result.error == "Could not reach the payment gateway. Please try again."


@pytest.mark.asyncio
async def test_non_json_success_is_bad_gateway(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(200, text="<html>ok</html>"))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 502
    assert "not JSON" in result.error


@pytest.mark.asyncio
async def test_validation_happens_before_gateway_call(pix_body, sleep):
    pix_body["customerData"]["cpf"] = "123"
    gateway = ScriptedGateway(httpx.Response(201, json=PIX_OK))
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 400
    assert "CPF" in result.error
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_missing_credentials_is_config_error(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(201, json=PIX_OK))
    status_code, result = await make_service(gateway, sleep, gateway_secret_key=None).handle(pix_body)

    assert status_code == 500
    assert "GATEWAY_SECRET_KEY" in result.error
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_unexpected_failure_becomes_unknown_error(pix_body, sleep):
    service = make_service(ScriptedGateway(httpx.Response(201, json=PIX_OK)), sleep)

    async def explode(body):
        raise RuntimeError("boom")

    service.process_payment = explode
    status_code, result = await service.handle(pix_body)

    assert status_code == 500
    assert result.success is False
    assert "boom" not in result.error
    assert result.error.startswith("Unexpected error while processing payment")


@pytest.mark.asyncio
async def test_bearer_card_payment(card_body, sleep):
    gateway = ScriptedGateway(httpx.Response(200, json={"id": "ch_1", "status": "paid"}))
    status_code, result = await make_service(gateway, sleep, gateway_provider="bearer").handle(card_body)

    assert status_code == 200
    assert result.status == "paid"
    assert gateway.requests[0].headers["Authorization"] == "Bearer sk_test"
    assert gateway.sent_json()["amount"] == 6790


@pytest.mark.parametrize(
    "status_code, text, expected",
    [
        (400, '{"message": "Valor inválido"}', "Valor inválido"),
        (400, '{"error": {"message": "nested"}}', "nested"),
        (400, '{"detail": "bad"}', "bad"),
        (400, '{"unexpected": true}', "Gateway request failed (status 400)"),
        (502, "x" * 300, "x" * 150),
        (503, "", "Gateway request failed (status 503)"),
    ],
)
def test_extract_error_message(status_code, text, expected):
    assert extract_error_message(status_code, text) == expected


def test_redact_payload_masks_card_and_document():
    redacted = redact_payload(
        {
            "card_number": "4111111111111111",
            "card_cvv": "123",
            "customer": {"document": "52998224725", "name": "Maria"},
            "card": {"number": "4111111111111111", "cvv": "123"},
        }
    )
    assert redacted["card_number"] == "************1111"
    assert redacted["card_cvv"] == "***"
    assert redacted["customer"] == {"document": "***", "name": "Maria"}
    assert redacted["card"] == {"number": "************1111", "cvv": "***"}


@pytest.mark.asyncio
async def test_slow_gateway_hits_overall_deadline(pix_body, sleep):
    calls = []

    async def stalled(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(5)
        return httpx.Response(201, json=PIX_OK)

    service = PaymentProxyService(
        make_settings(gateway_timeout_seconds=0.05),
        transport=httpx.MockTransport(stalled),
        sleep=sleep,
    )
    status_code, result = await service.handle(pix_body)

    assert status_code == 502
    assert "took too long" in result.error
    assert len(calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_oversized_amount_is_rejected_before_gateway(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(201, json=PIX_OK))
    pix_body["amount"] = "1e30"
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 400
    assert result.error == "invalid amount"
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_us_formatted_amount_is_not_charged(pix_body, sleep):
    gateway = ScriptedGateway(httpx.Response(201, json=PIX_OK))
    pix_body["amount"] = "1,234.56"
    status_code, result = await make_service(gateway, sleep).handle(pix_body)

    assert status_code == 400
    assert result.error == "invalid amount"
    assert gateway.requests == []
