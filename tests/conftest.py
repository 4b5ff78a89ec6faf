"""Shared fixtures: settings without .env, a scripted gateway transport."""

import base64
import json
import os

os.environ.setdefault("TRACING_ENABLED", "false")

import httpx
import pytest

from checkoutpay.common.config import ProxySettings

VALID_CPF = "529.982.247-25"


def make_settings(**overrides) -> ProxySettings:
    values = {
        "gateway_provider": "expfypay",
        "gateway_base_url": "https://gateway.test/api/v1",
        "gateway_public_key": "pk_test",
        "gateway_secret_key": "sk_test",
        "gateway_backoff_base_seconds": 0.4,
        "gateway_max_attempts": 4,
        "tracing_enabled": False,
    }
    values.update(overrides)
    return ProxySettings(_env_file=None, **values)


def card_token(**overrides) -> str:
    card = {
        "number": "4111 1111 1111 1111",
        "holderName": "MARIA SILVA",
        "expiration": "12/29",
        "cvv": "123",
    }
    card.update(overrides)
    return base64.b64encode(json.dumps(card).encode("utf-8")).decode("ascii")


class ScriptedGateway:
    """httpx handler replaying queued responses and recording requests."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def sent_json(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def pix_body():
    return {
        "paymentMethod": "PIX",
        "amount": 63.15,
        "customerData": {
            "name": "Maria Silva",
            "email": "maria@example.com",
            "phone": "(21) 99999-9999",
            "cpf": VALID_CPF,
        },
    }


@pytest.fixture
def card_body(pix_body):
    return {**pix_body, "paymentMethod": "CARD", "amount": 67.9, "cardToken": card_token()}


@pytest.fixture
def sleep():
    return RecordingSleep()
