"""Gateway provider strategies.

Each provider knows its endpoint, credential headers, request body and how to
read a successful response. Amount units differ: `expfypay` takes reais as a
decimal number, `bearer` takes integer cents.
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from checkoutpay.common.config import ProxySettings
from checkoutpay.services.payment_proxy.errors import ConfigError, GatewayError
from checkoutpay.services.payment_proxy.schemas import PaymentIntent, PaymentResult
from checkoutpay.services.payment_proxy.validation import to_cents

GATEWAY_METHODS = {"PIX": "pix", "CARD": "credit_card"}
METHOD_LABELS = {"PIX": "PIX", "CARD": "Cartão"}


def _lookup(data: dict, paths: tuple[str, ...]) -> str | None:
    """Return the first non-empty value found at any dotted path."""

    for path in paths:
        node: Any = data
        for part in path.split("."):
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(part)
        if node not in (None, ""):
            return str(node)
    return None


def _as_image(value: str | None) -> str | None:
    if value and not value.startswith(("data:", "http://", "https://")):
        return f"data:image/png;base64,{value}"
    return value


@dataclass(frozen=True)
class BaseProvider:
    """Shared URL building and response parsing for provider strategies."""

    base_url: str
    public_key: str
    secret_key: str
    endpoint: str | None = None

    name: ClassVar[str] = "base"
    default_endpoint: ClassVar[str] = "/payments"
    transaction_id_paths: ClassVar[tuple[str, ...]] = ("id", "transaction_id", "transactionId", "data.id")
    status_paths: ClassVar[tuple[str, ...]] = ("status", "data.status")
    qr_code_paths: ClassVar[tuple[str, ...]] = ("qr_code", "qrCode")
    qr_image_paths: ClassVar[tuple[str, ...]] = ("qr_code_base64", "qrCodeBase64")

    @property
    def url(self) -> str:
        path = self.endpoint or self.default_endpoint
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def headers(self, intent: PaymentIntent) -> dict[str, str]:
        raise NotImplementedError()

    def build_payload(self, intent: PaymentIntent, description: str) -> dict[str, Any]:
        raise NotImplementedError()

    def parse_response(self, intent: PaymentIntent, data: Any) -> PaymentResult:
        """Map a 2xx gateway body into the normalized result."""

        if not isinstance(data, dict):
            raise GatewayError("invalid gateway response: expected a JSON object", status_code=502)

        transaction_id = _lookup(data, self.transaction_id_paths)
        if not transaction_id:
            raise GatewayError("invalid gateway response: missing transaction id", status_code=502)

        result = PaymentResult(
            success=True,
            transaction_id=transaction_id,
            method=intent.payment_method,
            status=_lookup(data, self.status_paths),
        )
        if intent.payment_method == "PIX":
            result.qr_code = _lookup(data, self.qr_code_paths)
            result.qr_code_image = _as_image(_lookup(data, self.qr_image_paths))
            if not result.qr_code:
                raise GatewayError("invalid gateway response: missing PIX QR code", status_code=502)
        return result


@dataclass(frozen=True)
class ExpfyPayProvider(BaseProvider):
    """ExpfyPay: key pair headers, amount in reais, flat card fields."""

    name: ClassVar[str] = "expfypay"
    default_endpoint: ClassVar[str] = "/pagamentos"
    qr_code_paths: ClassVar[tuple[str, ...]] = (
        "qr_code",
        "pix_code",
        "pix.qr_code",
        "pix.copy_paste",
        "data.qr_code",
        "data.pix.qr_code",
    )
    qr_image_paths: ClassVar[tuple[str, ...]] = (
        "qr_code_image",
        "qr_code_base64",
        "pix.qr_code_image",
        "pix.qr_code_base64",
        "data.qr_code_image",
        "data.pix.qr_code_image",
    )

    def headers(self, intent: PaymentIntent) -> dict[str, str]:
        return {"X-Public-Key": self.public_key, "X-Secret-Key": self.secret_key}

    def build_payload(self, intent: PaymentIntent, description: str) -> dict[str, Any]:
        customer = {
            "name": intent.customer.name,
            "document": intent.customer.document,
            "email": intent.customer.email,
        }
        if intent.customer.phone:
            customer["phone"] = intent.customer.phone

        payload: dict[str, Any] = {
            "amount": float(intent.amount),
            "description": f"{description} ({METHOD_LABELS[intent.payment_method]})",
            "customer": customer,
            "external_id": intent.external_id,
            "payment_method": GATEWAY_METHODS[intent.payment_method],
        }
        if intent.card is not None:
            payload.update(
                {
                    "card_number": intent.card.number,
                    "card_holder_name": intent.card.holder_name,
                    "card_expiration_date": intent.card.expiration,
                    "card_cvv": intent.card.cvv,
                }
            )
        return payload


@dataclass(frozen=True)
class BearerTokenProvider(BaseProvider):
    """Bearer-token gateway: amount in cents, nested document and card objects."""

    name: ClassVar[str] = "bearer"
    default_endpoint: ClassVar[str] = "/transactions"
    qr_code_paths: ClassVar[tuple[str, ...]] = (
        "pix.qrcode",
        "pix.qrCode",
        "pix.copyPaste",
        "point_of_interaction.transaction_data.qr_code",
        "qrCode",
    )
    qr_image_paths: ClassVar[tuple[str, ...]] = (
        "pix.qrCodeImage",
        "pix.qrcodeImage",
        "pix.qrCodeBase64",
        "point_of_interaction.transaction_data.qr_code_base64",
        "qrCodeImage",
    )

    def headers(self, intent: PaymentIntent) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "X-Public-Key": self.public_key,
            "X-Idempotency-Key": intent.external_id,
        }

    def build_payload(self, intent: PaymentIntent, description: str) -> dict[str, Any]:
        customer: dict[str, Any] = {
            "name": intent.customer.name,
            "email": intent.customer.email,
            "document": {"number": intent.customer.document, "type": "cpf"},
        }
        if intent.customer.phone:
            customer["phone"] = intent.customer.phone

        payload: dict[str, Any] = {
            "amount": to_cents(intent.amount),
            "paymentMethod": GATEWAY_METHODS[intent.payment_method],
            "description": f"{description} ({METHOD_LABELS[intent.payment_method]})",
            "externalRef": intent.external_id,
            "customer": customer,
        }
        if intent.card is not None:
            payload["card"] = {
                "number": intent.card.number,
                "holderName": intent.card.holder_name,
                "expirationMonth": intent.card.expiration_month,
                "expirationYear": intent.card.expiration_year,
                "cvv": intent.card.cvv,
            }
        return payload


PROVIDERS: dict[str, type[BaseProvider]] = {
    ExpfyPayProvider.name: ExpfyPayProvider,
    BearerTokenProvider.name: BearerTokenProvider,
}


def build_provider(config: ProxySettings) -> BaseProvider:
    """Resolve the configured provider, failing with `ConfigError` when unusable."""

    provider_cls = PROVIDERS.get((config.gateway_provider or "").strip().lower())
    if provider_cls is None:
        raise ConfigError(f"unknown payment gateway provider: {config.gateway_provider}")

    missing = [
        env
        for env, value in (
            ("GATEWAY_BASE_URL", config.gateway_base_url),
            ("GATEWAY_PUBLIC_KEY", config.gateway_public_key),
            ("GATEWAY_SECRET_KEY", config.gateway_secret_key),
        )
        if not (value or "").strip()
    ]
    if missing:
        raise ConfigError(f"payment gateway is not configured: {', '.join(missing)} missing")

    base_url = config.gateway_base_url.strip()
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError("payment gateway is not configured: GATEWAY_BASE_URL must be an http(s) URL")

    return provider_cls(
        base_url=base_url,
        public_key=config.gateway_public_key.strip(),
        secret_key=config.gateway_secret_key.strip(),
        endpoint=config.gateway_payments_endpoint or None,
    )
