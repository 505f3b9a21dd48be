"""Payment API schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payportal.core.config import settings

Currency = Literal["ZAR", "EUR", "GBP", "USD", "AUD", "CAD", "CHF", "JPY"]


class PaymentCreate(BaseModel):
    """Customer-submitted SWIFT payment instruction."""

    amount: Decimal = Field(gt=0, le=settings.payment_amount_ceiling, decimal_places=2)
    currency: Currency
    payment_provider: Literal["SWIFT"] = "SWIFT"
    recipient_name: str = Field(min_length=2, max_length=100)
    recipient_bank_name: str = Field(min_length=2, max_length=100)
    recipient_account_number: str
    swift_code: str
    reference: str = Field(default="", max_length=140)

    @field_validator("recipient_account_number")
    @classmethod
    def _account_or_iban(cls, value: str) -> str:
        value = value.strip().upper()
        if 15 <= len(value) <= 34:
            head, rest = value[:4], value[4:]
            if head[:2].isalpha() and head[2:].isdigit() and rest.isalnum():
                return value
        elif value.isdigit() and 7 <= len(value) <= 20:
            return value
        raise ValueError("Account number must be a valid IBAN (15-34 chars) or 7-20 digits")

    @field_validator("swift_code")
    @classmethod
    def _swift_format(cls, value: str) -> str:
        value = value.strip().upper()
        if len(value) in (8, 11) and value[:6].isalpha() and value.isalnum():
            return value
        raise ValueError("SWIFT code must be 8 or 11 characters")


class PaymentActionRequest(BaseModel):
    """Body accepted by the verify and send endpoints."""

    confirm_swift: str | None = None
    password: str | None = None
    totp_code: str | None = None


class PaymentResponse(BaseModel):
    """Customer-facing view of a payment."""

    payment_id: str
    reference_number: str
    amount: Decimal
    currency: str
    recipient_name: str
    recipient_bank_name: str
    status: str
    sent_to_swift: bool
    acknowledged: bool
    created_at: datetime
    verified_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class QueuedPaymentResponse(BaseModel):
    """Employee work-queue entry with masked beneficiary details."""

    payment_id: str
    amount: Decimal
    currency: str
    recipient_name: str
    recipient_bank_name: str
    recipient_account: str
    swift_code: str
    status: str
    sent_to_swift: bool
    requires_step_up: bool
    created_at: datetime


class PaymentActionResponse(BaseModel):
    message: str
    payment_id: str
    status: str
    sent_to_swift: bool
    csrf_token: str
