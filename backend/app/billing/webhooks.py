"""Stripe webhook event handlers — reconcile the local mirror from processor events.

Each handler is an idempotent conditional update keyed by a Stripe ID. When
no local row matches, the handler logs and returns without side effects.
Only creation-type events (subscription created, payment method attached)
may insert a row, attributed to the user that owns the event's customer.
"""

import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.results import best_effort
from app.billing.stripe_client import StripeGateway
from app.billing.stripe_fields import (
    INVOICE_INTENT_EXPAND,
    field,
    from_minor_units,
    invoice_payment_intent,
    invoice_period_end,
    invoice_subscription_id,
    object_id,
    subscription_price_id,
)
from app.models.payment import PaymentStatus
from app.models.payment_method import PaymentMethod
from app.models.subscription import SubscriptionStatus
from app.models.user import User
from app.services.mirror import find_by
from app.services.payment_method_service import mirror_payment_method
from app.services.payment_service import get_payment_by_stripe_id, record_payment
from app.services.subscription_service import (
    apply_stripe_subscription,
    get_subscription_by_stripe_subscription,
    mirror_subscription,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[AsyncSession, Any, StripeGateway], Awaitable[None]]


class WebhookEventType(str, enum.Enum):
    """Stripe event types this service reconciles. Anything else is acknowledged and ignored."""

    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PAYMENT_METHOD_ATTACHED = "payment_method.attached"
    PAYMENT_METHOD_DETACHED = "payment_method.detached"


def _event_object(event: Any) -> Any:
    return event["data"]["object"]


def _first_method_type(intent: Any) -> str | None:
    types = field(intent, "payment_method_types") or []
    return types[0] if types else None


async def _user_for_customer(db: AsyncSession, customer_id: str | None) -> User | None:
    if not customer_id:
        return None
    return await find_by(db, User, User.stripe_customer_id, customer_id)


# ---------------------------------------------------------------------------
# Payment intents
# ---------------------------------------------------------------------------


async def handle_payment_intent_succeeded(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle payment_intent.succeeded — mark the payment succeeded."""
    intent = _event_object(event)
    payment = await get_payment_by_stripe_id(db, intent["id"])
    if payment is None:
        logger.warning("No local payment found for payment intent %s (succeeded)", intent["id"])
        return

    payment.status = PaymentStatus.SUCCEEDED.value
    payment.payment_method_type = _first_method_type(intent)
    await db.flush()
    logger.info("Payment intent succeeded: %s (amount %s)", intent["id"], payment.amount)


async def handle_payment_intent_failed(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle payment_intent.payment_failed — mark the payment failed."""
    intent = _event_object(event)
    payment = await get_payment_by_stripe_id(db, intent["id"])
    if payment is None:
        logger.warning("No local payment found for payment intent %s (failed)", intent["id"])
        return

    payment.status = PaymentStatus.FAILED.value
    payment.payment_method_type = _first_method_type(intent)
    await db.flush()
    logger.warning(
        "Payment intent failed: %s (%s)",
        intent["id"],
        field(field(intent, "last_payment_error"), "message"),
    )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


async def handle_invoice_paid(db: AsyncSession, event: Any, gateway: StripeGateway) -> None:
    """Handle invoice.paid — activate the subscription and record the payment."""
    invoice = _event_object(event)
    subscription_id = invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info("Invoice %s has no subscription (one-time), skipping", invoice["id"])
        return

    subscription = await get_subscription_by_stripe_subscription(db, subscription_id)
    if subscription is None:
        logger.warning(
            "No local subscription found for Stripe subscription %s (invoice %s)",
            subscription_id,
            invoice["id"],
        )
        return

    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.current_period_end = invoice_period_end(invoice) or subscription.current_period_end
    subscription.latest_invoice_id = invoice["id"]

    intent_ref = invoice_payment_intent(invoice)
    if intent_ref is None:
        # Event payloads omit the invoice's payments; fetch them expanded
        lookup = await best_effort(
            gateway.retrieve_invoice(invoice["id"], expand=INVOICE_INTENT_EXPAND),
            f"payments for invoice {invoice['id']}",
        )
        intent_ref = invoice_payment_intent(lookup.value) if lookup.available else None
    intent_id = object_id(intent_ref)
    if intent_id:
        method_type = _first_method_type(intent_ref) if not isinstance(intent_ref, str) else None
        if method_type is None:
            lookup = await best_effort(
                gateway.retrieve_payment_intent(intent_id),
                f"payment intent {intent_id} for invoice {invoice['id']}",
            )
            method_type = _first_method_type(lookup.value) if lookup.available else None

        subscription.latest_payment_intent_id = intent_id
        await record_payment(
            db,
            subscription.user_id,
            intent_id,
            amount=from_minor_units(field(invoice, "amount_paid")),
            currency=field(invoice, "currency", ""),
            status=PaymentStatus.SUCCEEDED,
            payment_method_type=method_type,
        )

    await db.flush()
    logger.info(
        "Invoice paid: subscription %s active (invoice %s, amount %s)",
        subscription_id,
        invoice["id"],
        from_minor_units(field(invoice, "amount_paid")),
    )


async def handle_invoice_payment_failed(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle invoice.payment_failed — mark subscription as past_due."""
    invoice = _event_object(event)
    subscription_id = invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info("Invoice %s has no subscription (one-time), skipping payment failure", invoice["id"])
        return

    subscription = await get_subscription_by_stripe_subscription(db, subscription_id)
    if subscription is None:
        logger.warning(
            "No local subscription found for Stripe subscription %s (payment failed)",
            subscription_id,
        )
        return

    subscription.status = SubscriptionStatus.PAST_DUE.value
    await db.flush()
    logger.warning("Payment failed: subscription %s marked as past_due (invoice %s)", subscription_id, invoice["id"])


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


async def handle_subscription_created(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle customer.subscription.created — mirror it if this service has not yet."""
    stripe_sub = _event_object(event)

    if await get_subscription_by_stripe_subscription(db, stripe_sub["id"]) is not None:
        logger.info("Subscription %s already mirrored, skipping create event", stripe_sub["id"])
        return

    customer_id = object_id(field(stripe_sub, "customer"))
    user = await _user_for_customer(db, customer_id)
    if user is None:
        logger.warning(
            "No local user found for Stripe customer %s (subscription %s)",
            customer_id,
            stripe_sub["id"],
        )
        return

    subscription, created = await mirror_subscription(db, user.id, stripe_sub)
    logger.info(
        "Subscription created: %s for user %s (status=%s, new_row=%s)",
        stripe_sub["id"],
        user.id,
        subscription.status,
        created,
    )


async def handle_subscription_updated(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle customer.subscription.updated — sync status, period, and cancel_at."""
    stripe_sub = _event_object(event)
    subscription = await get_subscription_by_stripe_subscription(db, stripe_sub["id"])
    if subscription is None:
        logger.warning("No local subscription found for Stripe subscription %s (update)", stripe_sub["id"])
        return

    apply_stripe_subscription(subscription, stripe_sub)
    await db.flush()
    logger.info(
        "Subscription updated: %s → status=%s, price=%s",
        stripe_sub["id"],
        subscription.status,
        subscription_price_id(stripe_sub),
    )


async def handle_subscription_deleted(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle customer.subscription.deleted — record the cancellation; the row is kept."""
    stripe_sub = _event_object(event)
    subscription = await get_subscription_by_stripe_subscription(db, stripe_sub["id"])
    if subscription is None:
        logger.warning("No local subscription found for Stripe subscription %s (delete event)", stripe_sub["id"])
        return

    apply_stripe_subscription(subscription, stripe_sub)
    await db.flush()
    logger.info(
        "Subscription deleted: %s (status=%s, canceled_at=%s)",
        stripe_sub["id"],
        subscription.status,
        field(stripe_sub, "canceled_at"),
    )


# ---------------------------------------------------------------------------
# Payment methods
# ---------------------------------------------------------------------------


async def handle_payment_method_attached(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle payment_method.attached — mirror the method as non-default if untracked."""
    stripe_pm = _event_object(event)

    if await find_by(db, PaymentMethod, PaymentMethod.stripe_payment_method_id, stripe_pm["id"]) is not None:
        logger.info("Payment method %s already mirrored, skipping attach event", stripe_pm["id"])
        return

    customer_id = object_id(field(stripe_pm, "customer"))
    user = await _user_for_customer(db, customer_id)
    if user is None:
        logger.warning(
            "No local user found for Stripe customer %s (payment method %s)",
            customer_id,
            stripe_pm["id"],
        )
        return

    await mirror_payment_method(db, user, stripe_pm)
    logger.info(
        "Payment method attached: %s for user %s (type=%s)",
        stripe_pm["id"],
        user.id,
        field(stripe_pm, "type"),
    )


async def handle_payment_method_detached(
    db: AsyncSession, event: Any, gateway: StripeGateway
) -> None:
    """Handle payment_method.detached — drop the local row if present."""
    stripe_pm = _event_object(event)
    method = await find_by(db, PaymentMethod, PaymentMethod.stripe_payment_method_id, stripe_pm["id"])
    if method is None:
        logger.info("Payment method %s not mirrored, nothing to detach", stripe_pm["id"])
        return

    await db.delete(method)
    await db.flush()
    logger.info("Payment method detached: %s (user %s)", stripe_pm["id"], method.user_id)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

EVENT_HANDLERS: dict[WebhookEventType, EventHandler] = {
    WebhookEventType.PAYMENT_INTENT_SUCCEEDED: handle_payment_intent_succeeded,
    WebhookEventType.PAYMENT_INTENT_FAILED: handle_payment_intent_failed,
    WebhookEventType.INVOICE_PAID: handle_invoice_paid,
    WebhookEventType.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
    WebhookEventType.SUBSCRIPTION_CREATED: handle_subscription_created,
    WebhookEventType.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    WebhookEventType.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    WebhookEventType.PAYMENT_METHOD_ATTACHED: handle_payment_method_attached,
    WebhookEventType.PAYMENT_METHOD_DETACHED: handle_payment_method_detached,
}


def resolve_handler(event_type: str) -> EventHandler | None:
    """Return the handler for ``event_type``, or None for types this service ignores."""
    try:
        kind = WebhookEventType(event_type)
    except ValueError:
        return None
    return EVENT_HANDLERS[kind]
