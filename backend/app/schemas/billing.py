"""Pydantic v2 request/response schemas for billing endpoints.

Amounts are in major currency units (e.g. ``25.00``) on both sides of the API.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# --- Request schemas ---


class CustomerUpdateRequest(BaseModel):
    """Fields to change on the Stripe customer."""

    name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    address: dict[str, str] | None = None  # line1, city, state, postal_code, country
    metadata: dict[str, str] | None = None


class PaymentIntentCreateRequest(BaseModel):
    """Request to create a payment intent."""

    amount: Decimal = Field(..., ge=Decimal("0.50"), max_digits=10, decimal_places=2)
    currency: str = Field(..., pattern="^[A-Za-z]{3}$")
    payment_method_types: list[str] | None = None
    description: str | None = Field(None, max_length=500)
    metadata: dict[str, str] | None = None


class PaymentIntentConfirmRequest(BaseModel):
    """Request to confirm a payment intent server-side."""

    payment_intent_id: str = Field(..., min_length=1)
    payment_method_id: str | None = None
    return_url: str | None = None


class RefundRequest(BaseModel):
    """Request to fully refund a succeeded payment."""

    payment_intent_id: str = Field(..., min_length=1)
    reason: str | None = Field(None, pattern="^(duplicate|fraudulent|requested_by_customer)$")


class PaymentMethodCreateRequest(BaseModel):
    """Create a payment method from a client-side token (e.g. ``tok_visa``)."""

    type: str = Field("card", min_length=1)
    token: str = Field(..., min_length=1)
    set_as_default: bool = False


class PaymentMethodAttachRequest(BaseModel):
    """Attach an existing Stripe payment method."""

    payment_method_id: str = Field(..., min_length=1)
    set_as_default: bool = False


class SetupIntentCreateRequest(BaseModel):
    payment_method_types: list[str] | None = None


class SetupIntentConfirmRequest(BaseModel):
    setup_intent_id: str = Field(..., min_length=1)
    payment_method_id: str | None = None
    set_as_default: bool = False


class SubscriptionCreateRequest(BaseModel):
    """Subscribe to a price, paying with an explicit or the default payment method."""

    price_id: str = Field(..., min_length=1)
    payment_method_id: str | None = None


class SubscriptionUpdateRequest(BaseModel):
    price_id: str = Field(..., min_length=1)


class SubscriptionCancelRequest(BaseModel):
    """Cancel at period end unless ``immediately`` is set."""

    immediately: bool = False


# --- Response schemas ---


class CustomerResponse(BaseModel):
    """Customer reference for the authenticated user."""

    customer_id: str
    created: bool
    message: str


class RemoteObjectResponse(BaseModel):
    """A Stripe object passed through to the caller."""

    id: str
    object: str | None = None
    data: dict[str, Any]


class RemoteListResponse(BaseModel):
    data: list[dict[str, Any]]


class PaymentResponse(BaseModel):
    """A mirrored payment."""

    id: uuid.UUID
    stripe_payment_id: str
    status: str
    amount: Decimal
    currency: str
    payment_method_type: str | None = None
    metadata: dict[str, Any] | None = Field(None, validation_alias="payment_metadata")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentHistoryResponse(BaseModel):
    """Paginated list of payments, newest first."""

    items: list[PaymentResponse]
    total: int


class PaymentIntentResponse(BaseModel):
    """Payment intent details the client needs to complete payment."""

    payment_intent_id: str
    client_secret: str | None = None
    status: str
    amount: Decimal
    currency: str


class PaymentConfirmResponse(BaseModel):
    payment_intent_id: str
    status: str
    client_secret: str | None = None  # set when the client must handle next_action
    next_action: str | None = None
    payment: PaymentResponse


class RefundResponse(BaseModel):
    refund_id: str
    status: str | None = None
    amount: Decimal
    payment: PaymentResponse


class PaymentMethodResponse(BaseModel):
    """A mirrored payment method."""

    id: uuid.UUID
    stripe_payment_method_id: str
    type: str
    last_four: str | None = None
    brand: str | None = None
    is_default: bool

    model_config = ConfigDict(from_attributes=True)


class RemotePaymentMethodResponse(BaseModel):
    """A payment method as listed by Stripe, flagged from the local mirror."""

    id: str
    type: str
    brand: str | None = None
    last_four: str | None = None
    exp_month: int | None = None
    exp_year: int | None = None
    is_default: bool
    tracked: bool


class PaymentMethodListResponse(BaseModel):
    data: list[RemotePaymentMethodResponse]


class SetupIntentResponse(BaseModel):
    setup_intent_id: str
    client_secret: str | None = None
    status: str


class SetupIntentConfirmResponse(BaseModel):
    setup_intent_id: str
    status: str
    payment_method: PaymentMethodResponse | None = None


class SubscriptionResponse(BaseModel):
    """A mirrored subscription."""

    id: uuid.UUID
    stripe_subscription_id: str
    stripe_price_id: str | None = None
    payment_method_id: str | None = None
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at: datetime | None = None
    latest_invoice_id: str | None = None
    latest_payment_intent_id: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionCreateResponse(BaseModel):
    """A new subscription plus, when available, the payment the client must confirm."""

    subscription: SubscriptionResponse
    client_secret: str | None = None
    payment_intent_status: str | None = None
    invoice_lookup: str  # "ok" or "unavailable"
