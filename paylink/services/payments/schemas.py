"""API request/response schemas for payments endpoints."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from paylink.common.state_machine import PaymentStatus


class Currency(str, Enum):
    KES = "KES"
    USD = "USD"


class PaymentMethod(str, Enum):
    MOBILE_MONEY = "MOBILE_MONEY"


class UserRef(BaseModel):
    """Identity projection attached to a request once its token validates."""

    id: str
    phone_number: str
    email: str


class PaymentCreateRequest(BaseModel):
    """Payment initiation payload."""

    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: Currency
    payment_method: PaymentMethod
    customer_phone: str = Field(pattern=r"^\+?[1-9]\d{1,14}$")
    customer_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UpdateStatusRequest(BaseModel):
    status: PaymentStatus
    provider_transaction_id: str | None = Field(default=None, min_length=1)


class WebhookRequest(BaseModel):
    """Provider callback body. `timestamp` is kept for audit only."""

    payment_reference: str = Field(min_length=1)
    status: PaymentStatus
    provider_transaction_id: str = Field(min_length=1)
    timestamp: datetime


class WebhookResponse(BaseModel):
    success: bool
    message: str
    payment_reference: str


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    amount: float
    currency: Currency
    payment_method: PaymentMethod
    customer_phone: str
    customer_email: str
    status: PaymentStatus
    provider_transaction_id: str | None = None
    created_at: datetime
    updated_at: datetime


class TimelineEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_state: PaymentStatus | None
    to_state: PaymentStatus
    reason: str
    provider_transaction_id: str | None = None
    created_at: datetime
