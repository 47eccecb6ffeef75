"""Subscription service — create, change, cancel, and mirror Stripe subscriptions."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.errors import ForbiddenError
from app.billing.results import BestEffort, best_effort
from app.billing.stripe_client import StripeGateway
from app.billing.stripe_fields import (
    INVOICE_INTENT_EXPAND,
    field,
    first_item,
    invoice_client_secret,
    invoice_payment_intent,
    object_id,
    subscription_period,
    subscription_price_id,
    ts_to_naive,
)
from app.models.subscription import Subscription
from app.models.user import User
from app.services.customer_service import ensure_stripe_customer
from app.services.mirror import find_by, get_or_create
from app.services.payment_method_service import resolve_payment_method

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionCheckout:
    """Result of creating a subscription.

    ``invoice`` is the best-effort lookup of the first invoice; when it is
    unavailable the subscription is still created and mirrored, and the
    caller simply gets no client secret.
    """

    subscription: Subscription
    invoice: BestEffort[Any]
    client_secret: str | None = None
    payment_intent_status: str | None = None


async def get_subscription_by_stripe_subscription(
    db: AsyncSession, stripe_subscription_id: str
) -> Subscription | None:
    """Look up subscription by Stripe subscription ID (used by webhooks)."""
    return await find_by(db, Subscription, Subscription.stripe_subscription_id, stripe_subscription_id)


def apply_stripe_subscription(subscription: Subscription, stripe_sub: Any) -> Subscription:
    """Copy status, price, period bounds, cancel_at and invoice refs onto the local row."""
    period_start, period_end = subscription_period(stripe_sub)
    subscription.status = field(stripe_sub, "status", subscription.status)
    subscription.stripe_price_id = subscription_price_id(stripe_sub) or subscription.stripe_price_id
    subscription.current_period_start = period_start or subscription.current_period_start
    subscription.current_period_end = period_end or subscription.current_period_end
    subscription.cancel_at = ts_to_naive(field(stripe_sub, "cancel_at"))
    subscription.latest_invoice_id = (
        object_id(field(stripe_sub, "latest_invoice")) or subscription.latest_invoice_id
    )
    subscription.payment_method_id = (
        object_id(field(stripe_sub, "default_payment_method")) or subscription.payment_method_id
    )
    return subscription


async def mirror_subscription(
    db: AsyncSession, user_id: uuid.UUID, stripe_sub: Any
) -> tuple[Subscription, bool]:
    """Create or refresh the local row for ``stripe_sub``. Returns ``(row, created)``."""
    subscription, created = await get_or_create(
        db,
        Subscription,
        Subscription.stripe_subscription_id,
        stripe_sub["id"],
        defaults={"user_id": user_id, "status": field(stripe_sub, "status", "incomplete")},
    )
    if subscription.user_id != user_id:
        raise ForbiddenError()

    apply_stripe_subscription(subscription, stripe_sub)
    await db.flush()
    logger.info(
        "Mirrored subscription %s: status=%s, period_end=%s",
        subscription.stripe_subscription_id,
        subscription.status,
        subscription.current_period_end,
    )
    return subscription, created


async def create_subscription(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    price_id: str,
    payment_method_id: str | None = None,
) -> SubscriptionCheckout:
    """Subscribe the user to ``price_id`` and surface any payment needing confirmation."""
    customer_id, _ = await ensure_stripe_customer(db, gateway, user)
    method_id = await resolve_payment_method(db, gateway, user, customer_id, payment_method_id)

    stripe_sub = await gateway.create_subscription(
        {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "default_payment_method": method_id,
            "payment_behavior": "allow_incomplete",
            "metadata": {"user_id": str(user.id)},
        }
    )

    invoice_id = object_id(field(stripe_sub, "latest_invoice"))
    if invoice_id:
        invoice = await best_effort(
            gateway.retrieve_invoice(invoice_id, expand=INVOICE_INTENT_EXPAND),
            f"invoice {invoice_id} for subscription {stripe_sub['id']}",
        )
    else:
        invoice = BestEffort.unavailable("Subscription has no invoice yet")

    intent = invoice_payment_intent(invoice.value) if invoice.available else None

    subscription, _ = await mirror_subscription(db, user.id, stripe_sub)
    subscription.payment_method_id = method_id
    subscription.latest_payment_intent_id = object_id(intent)
    await db.flush()

    return SubscriptionCheckout(
        subscription=subscription,
        invoice=invoice,
        client_secret=invoice_client_secret(invoice.value, intent),
        payment_intent_status=field(intent, "status"),
    )


async def retrieve_owned_subscription(
    gateway: StripeGateway, user: User, stripe_subscription_id: str
) -> Any:
    """Fetch a remote subscription, rejecting ones billed to another customer."""
    stripe_sub = await gateway.retrieve_subscription(stripe_subscription_id)
    owner = object_id(field(stripe_sub, "customer"))
    if owner is None or owner != user.stripe_customer_id:
        raise ForbiddenError()
    return stripe_sub


async def get_subscription(
    db: AsyncSession, gateway: StripeGateway, user: User, stripe_subscription_id: str
) -> Subscription:
    """Refresh the local row from Stripe and return it."""
    stripe_sub = await retrieve_owned_subscription(gateway, user, stripe_subscription_id)
    subscription, _ = await mirror_subscription(db, user.id, stripe_sub)
    return subscription


async def change_subscription_price(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    stripe_subscription_id: str,
    price_id: str,
) -> Subscription:
    """Swap the subscription's price, prorating the difference."""
    stripe_sub = await retrieve_owned_subscription(gateway, user, stripe_subscription_id)
    item = first_item(stripe_sub)

    item_change: dict[str, Any] = {"price": price_id}
    if item is not None:
        item_change["id"] = item["id"]
    updated = await gateway.update_subscription(
        stripe_subscription_id,
        {"items": [item_change], "proration_behavior": "create_prorations"},
    )
    subscription, _ = await mirror_subscription(db, user.id, updated)
    return subscription


async def cancel_subscription(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    stripe_subscription_id: str,
    immediately: bool = False,
) -> Subscription:
    """Stop auto-renewal at period end (default) or cancel now; never prorated."""
    await retrieve_owned_subscription(gateway, user, stripe_subscription_id)

    if immediately:
        updated = await gateway.cancel_subscription(stripe_subscription_id)
    else:
        updated = await gateway.update_subscription(
            stripe_subscription_id,
            {"cancel_at_period_end": True, "proration_behavior": "none"},
        )
    subscription, _ = await mirror_subscription(db, user.id, updated)
    return subscription
