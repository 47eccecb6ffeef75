"""Builders for test users and Stripe-shaped payloads.

Stripe objects are plain dicts; the application reads them with bracket
access, exactly as it reads ``stripe.StripeObject`` instances.
"""

import hashlib
import hmac
import json
import time
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import create_token_pair
from app.auth.passwords import hash_password
from app.models.user import User

WEBHOOK_SECRET = "whsec_test_secret"

PERIOD_START = 1700000000
PERIOD_END = 1702592000


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def create_user(
    db_session: AsyncSession,
    stripe_customer_id: str | None = None,
    is_active: bool = True,
    **overrides,
) -> User:
    """Insert a user directly in the DB."""
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=overrides.pop("email", f"user-{unique}@test.com"),
        hashed_password=hash_password(overrides.pop("password", "testpass123")),
        name=overrides.pop("name", "Test User"),
        is_active=is_active,
        stripe_customer_id=stripe_customer_id,
        **overrides,
    )
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


def headers_for(user: User) -> dict[str, str]:
    tokens = create_token_pair(str(user.id))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


# ---------------------------------------------------------------------------
# Stripe objects
# ---------------------------------------------------------------------------


def make_intent(
    intent_id: str = "pi_test_123",
    status: str = "requires_payment_method",
    amount: int = 2500,
    currency: str = "usd",
    customer: str | None = "cus_test_123",
    **fields,
) -> dict:
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "status": status,
        "amount": amount,
        "currency": currency,
        "customer": customer,
        "client_secret": f"{intent_id}_secret_abc",
        "payment_method": None,
        "payment_method_types": ["card"],
        "metadata": {},
    }
    intent.update(fields)
    return intent


def make_card(
    pm_id: str = "pm_test_123",
    customer: str | None = "cus_test_123",
    last4: str = "4242",
    brand: str = "visa",
) -> dict:
    return {
        "id": pm_id,
        "object": "payment_method",
        "type": "card",
        "customer": customer,
        "card": {"last4": last4, "brand": brand, "exp_month": 12, "exp_year": 2030},
    }


def make_subscription(
    sub_id: str = "sub_test_123",
    price_id: str = "price_basic",
    status: str = "active",
    customer: str = "cus_test_123",
    latest_invoice: str | None = "in_test_123",
    cancel_at: int | None = None,
    item_level_period: bool = True,
) -> dict:
    """A subscription; newer API versions carry period bounds on the item."""
    item = {"id": "si_test_123", "price": {"id": price_id}}
    sub = {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "latest_invoice": latest_invoice,
        "cancel_at": cancel_at,
        "cancel_at_period_end": cancel_at is not None,
        "default_payment_method": None,
        "items": {"data": [item]},
    }
    period = {"current_period_start": PERIOD_START, "current_period_end": PERIOD_END}
    if item_level_period:
        item.update(period)
    else:
        sub.update(period)
    return sub


def make_invoice(
    invoice_id: str = "in_test_123",
    subscription: str | None = "sub_test_123",
    payment_intent: str | dict | None = "pi_invoice_123",
    amount_paid: int = 1500,
    customer: str = "cus_test_123",
    legacy_fields: bool = True,
    line_period_end: int | None = PERIOD_END,
) -> dict:
    """An invoice in either the legacy or the nested (``parent``/``payments``) shape."""
    invoice = {
        "id": invoice_id,
        "object": "invoice",
        "customer": customer,
        "amount_paid": amount_paid,
        "currency": "usd",
        "period_end": PERIOD_START,
        "lines": {"data": [{"period": {"start": PERIOD_START, "end": line_period_end}}]},
    }
    if legacy_fields:
        invoice["subscription"] = subscription
        invoice["payment_intent"] = payment_intent
    else:
        invoice["parent"] = {"subscription_details": {"subscription": subscription}}
        invoice["payments"] = {"data": [{"payment": {"payment_intent": payment_intent}}]}
    return invoice


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


def make_event(event_type: str, data_object: dict, event_id: str | None = None) -> dict:
    """Build a Stripe event as delivered to the webhook endpoint."""
    return {
        "id": event_id or f"evt_test_{uuid.uuid4().hex[:8]}",
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe does (HMAC-SHA256)."""
    ts = timestamp if timestamp is not None else int(time.time())
    signed = f"{ts}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def signed_request(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[str, dict[str, str]]:
    """Return ``(body, headers)`` for posting ``event`` to the webhook endpoint."""
    payload = json.dumps(event)
    return payload, {"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"}
