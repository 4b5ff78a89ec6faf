"""Request/response shapes for the payment proxy."""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PaymentMethod = Literal["PIX", "CARD"]


class NormalizedCustomer(BaseModel):
    """Customer fields as forwarded to the gateway (digits-only document/phone)."""

    name: str
    email: str
    document: str
    phone: str | None = None


class CardDetails(BaseModel):
    """Card fields decoded from the checkout `cardToken`."""

    number: str
    holder_name: str
    expiration: str
    cvv: str

    @property
    def expiration_month(self) -> str:
        return self.expiration.split("/")[0].strip().zfill(2)

    @property
    def expiration_year(self) -> str:
        year = self.expiration.split("/")[1].strip()
        return f"20{year}" if len(year) == 2 else year


class PaymentIntent(BaseModel):
    """Validated payment request handed to a provider strategy."""

    payment_method: PaymentMethod
    amount: Decimal = Field(gt=0)
    customer: NormalizedCustomer
    card: CardDetails | None = None
    external_id: str


class PaymentResult(BaseModel):
    """Normalized response returned to the checkout UI."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    transaction_id: str | None = Field(default=None, alias="transactionId")
    method: PaymentMethod | None = None
    status: str | None = None
    qr_code: str | None = Field(default=None, alias="qrCode")
    qr_code_image: str | None = Field(default=None, alias="qrCodeImage")
    error: str | None = None

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
