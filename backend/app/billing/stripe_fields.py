"""Helpers for reading Stripe objects and converting amounts and timestamps.

Stripe objects are read with bracket notation throughout. That avoids the
collision between ``subscription.items`` and the mapping ``.items()`` method,
and lets plain dicts stand in for Stripe objects.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

MINOR_UNITS_PER_MAJOR = 100


def field(obj: Any, key: str, default: Any = None) -> Any:
    """Return ``obj[key]``, or ``default`` when the key is missing or null."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def object_id(value: Any) -> str | None:
    """Return the id of a reference that may be a bare id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return field(value, "id")


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (e.g. 25.00) to Stripe minor units (2500)."""
    return int((Decimal(amount) * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | None) -> Decimal:
    """Convert Stripe minor units back to a two-decimal major-unit amount."""
    return (Decimal(amount or 0) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


def ts_to_naive(ts: int | None) -> datetime | None:
    """Convert a Stripe Unix timestamp to a naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def first_item(stripe_sub: Any) -> Any:
    """Return the first subscription item, or None."""
    data = field(field(stripe_sub, "items"), "data") or []
    return data[0] if data else None


def subscription_price_id(stripe_sub: Any) -> str | None:
    """Extract the first price ID from a subscription's items."""
    return object_id(field(first_item(stripe_sub), "price"))


def subscription_period(stripe_sub: Any) -> tuple[datetime | None, datetime | None]:
    """Current period bounds of a subscription.

    Newer API versions moved ``current_period_start``/``current_period_end``
    from the subscription onto each subscription item.
    """
    item = first_item(stripe_sub)
    start = field(stripe_sub, "current_period_start", field(item, "current_period_start"))
    end = field(stripe_sub, "current_period_end", field(item, "current_period_end"))
    return ts_to_naive(start), ts_to_naive(end)


def invoice_subscription_id(invoice: Any) -> str | None:
    """Subscription referenced by an invoice (legacy field, then ``parent`` details)."""
    legacy = object_id(field(invoice, "subscription"))
    if legacy:
        return legacy
    details = field(field(invoice, "parent"), "subscription_details")
    return object_id(field(details, "subscription"))


# Invoices no longer carry ``payment_intent``; it is reached through the
# invoice's payments, which only appear when expanded.
INVOICE_INTENT_EXPAND = ["payments.data.payment.payment_intent", "confirmation_secret"]


def invoice_payment_intent(invoice: Any) -> Any:
    """Payment intent of an invoice: an id, an expanded object, or None.

    Falls back to the first entry of ``invoice.payments`` on API versions
    where the top-level field was removed.
    """
    legacy = field(invoice, "payment_intent")
    if legacy:
        return legacy
    payments = field(field(invoice, "payments"), "data") or []
    for invoice_payment in payments:
        intent = field(field(invoice_payment, "payment"), "payment_intent")
        if intent:
            return intent
    return None


def invoice_client_secret(invoice: Any, intent: Any = None) -> str | None:
    """Client secret for confirming an invoice payment on the client.

    Taken from the expanded payment intent when present, otherwise from the
    invoice's ``confirmation_secret``.
    """
    return field(intent, "client_secret") or field(field(invoice, "confirmation_secret"), "client_secret")


def invoice_period_end(invoice: Any) -> datetime | None:
    """End of the service period an invoice bills for.

    Prefers the first line's period, which is the subscription period being
    paid for; falls back to the invoice's own ``period_end``.
    """
    lines = field(field(invoice, "lines"), "data") or []
    if lines:
        line_end = field(field(lines[0], "period"), "end")
        if line_end is not None:
            return ts_to_naive(line_end)
    return ts_to_naive(field(invoice, "period_end"))


def card_details(payment_method: Any) -> tuple[str | None, str | None]:
    """Return ``(last_four, brand)`` for card payment methods."""
    card = field(payment_method, "card")
    return field(card, "last4"), field(card, "brand")
