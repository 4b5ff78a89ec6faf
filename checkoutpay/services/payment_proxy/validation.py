"""Input validation and normalization for checkout payment requests.

`parse_payment_request` applies the checks in a fixed order so the checkout UI
always sees the first problem: missing fields, CPF, card token, payment
method, then amount. Nothing here touches the network.
"""

import base64
import json
import re
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable

from checkoutpay.services.payment_proxy.errors import ValidationError
from checkoutpay.services.payment_proxy.schemas import CardDetails, NormalizedCustomer, PaymentIntent

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("1000000")
REQUIRED_FIELDS = ("paymentMethod", "amount", "customerData")
REQUIRED_CUSTOMER_FIELDS = ("name", "email")
CARD_TOKEN_FIELDS = ("number", "holderName", "expiration", "cvv")
_EXPIRATION_RE = re.compile(r"^\d{1,2}/(\d{2}|\d{4})$")
_PLAIN_AMOUNT_RE = re.compile(r"^\d+(\.\d{1,2})?$")
_BR_AMOUNT_RE = re.compile(r"^(\d{1,3}(\.\d{3})+,\d{1,2}|\d+(,\d{1,2})?)$")


def digits_only(value: Any) -> str:
    """Strip everything but digits (CPF masks, phone punctuation)."""

    if value is None:
        return ""
    return re.sub(r"\D", "", str(value))


def is_cpf_valid(cpf: Any) -> bool:
    """Check the two CPF verification digits.

    Each digit is `(sum * 10) % 11` over the preceding digits weighted from
    10 (or 11) down to 2, with 10 mapped to 0. Repeated-digit sequences pass
    the arithmetic but are never issued, so they are rejected.
    """

    digits = digits_only(cpf)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False

    numbers = [int(d) for d in digits]
    for position in (9, 10):
        total = sum(n * (position + 1 - i) for i, n in enumerate(numbers[:position]))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != numbers[position]:
            return False
    return True


def normalize_amount(value: Any) -> Decimal:
    """Parse a currency amount in major units into a 2-place Decimal.

    Accepts JSON numbers and strings in plain `1234.56` or Brazilian
    `1.234,56` / `67,90` notation (an optional `R$` prefix is ignored).
    Strings matching neither, such as `1,234.56` or `1.234`, are rejected
    rather than guessed.
    """

    if value is None or isinstance(value, bool):
        raise ValidationError("invalid amount")
    if isinstance(value, (int, float)):
        raw = str(value)
    elif isinstance(value, str):
        raw = value.replace("R$", "").replace(" ", "").strip()
        if _BR_AMOUNT_RE.match(raw) and not _PLAIN_AMOUNT_RE.match(raw):
            raw = raw.replace(".", "").replace(",", ".")
        elif not _PLAIN_AMOUNT_RE.match(raw):
            raise ValidationError("invalid amount")
    else:
        raise ValidationError("invalid amount")

    try:
        amount = Decimal(raw)
        if not amount.is_finite() or amount > MAX_AMOUNT:
            raise ValidationError("invalid amount")
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError("invalid amount") from exc

    if amount <= 0:
        raise ValidationError("invalid amount: must be greater than zero")
    return amount


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def decode_card_token(token: Any) -> CardDetails:
    """Decode the base64 JSON card token built by the checkout page."""

    if not isinstance(token, str) or not token.strip():
        raise ValidationError("missing card token for CARD payment")

    try:
        raw = base64.b64decode(token.strip(), validate=True)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            # btoa() output is Latin-1, accented holder names land here
            text = raw.decode("latin-1")
        decoded = json.loads(text)
    except ValueError as exc:
        raise ValidationError("invalid card token") from exc

    if not isinstance(decoded, dict):
        raise ValidationError("invalid card token")
    values = {}
    for field in CARD_TOKEN_FIELDS:
        item = decoded.get(field)
        if isinstance(item, int) and not isinstance(item, bool):
            item = str(item)
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"invalid card token: missing {field}")
        values[field] = item.strip()

    number = re.sub(r"\s", "", values["number"])
    if not number.isdigit():
        raise ValidationError("invalid card token: card number must be numeric")
    if not _EXPIRATION_RE.match(values["expiration"]):
        raise ValidationError("invalid card token: expiration must be MM/YY")

    return CardDetails(
        number=number,
        holder_name=values["holderName"],
        expiration=values["expiration"],
        cvv=values["cvv"],
    )


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_payment_request(body: Any, clock: Callable[[], float] = time.time) -> PaymentIntent:
    """Validate a `/process-payment` body and build the normalized intent."""

    if not isinstance(body, dict):
        raise ValidationError("invalid JSON body")

    missing = [field for field in REQUIRED_FIELDS if _is_blank(body.get(field))]
    customer_data = body.get("customerData")
    if isinstance(customer_data, dict):
        missing += [
            f"customerData.{field}"
            for field in REQUIRED_CUSTOMER_FIELDS
            if _is_blank(customer_data.get(field))
        ]
    if missing:
        raise ValidationError(f"missing fields: {', '.join(missing)}")
    if not isinstance(customer_data, dict):
        raise ValidationError("invalid customerData")

    document = digits_only(customer_data.get("cpf"))
    if not is_cpf_valid(document):
        raise ValidationError("invalid CPF: please check the number")

    method = str(body["paymentMethod"]).strip().upper()
    card = None
    if method == "CARD":
        card = decode_card_token(body.get("cardToken"))
    elif method != "PIX":
        raise ValidationError("unsupported payment method")

    amount = normalize_amount(body["amount"])

    external_id = body.get("externalId")
    if _is_blank(external_id):
        external_id = f"ORDER_{method}_{int(clock() * 1000)}"

    return PaymentIntent(
        payment_method=method,
        amount=amount,
        customer=NormalizedCustomer(
            name=str(customer_data["name"]).strip(),
            email=str(customer_data["email"]).strip(),
            document=document,
            phone=digits_only(customer_data.get("phone")) or None,
        ),
        card=card,
        external_id=str(external_id).strip(),
    )
