"""Payment service — payment intents, confirmation, refunds, and the Payment mirror."""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.errors import BillingValidationError, ForbiddenError
from app.billing.stripe_client import StripeGateway
from app.billing.stripe_fields import (
    field,
    from_minor_units,
    object_id,
    to_minor_units,
)
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.services.customer_service import ensure_stripe_customer
from app.services.mirror import find_by, get_or_create
from app.services.payment_method_service import resolve_payment_method

logger = logging.getLogger(__name__)

MINIMUM_AMOUNT = Decimal("0.50")

# Intent statuses from which a server-side confirmation is allowed
CONFIRMABLE_STATUSES = frozenset({"requires_payment_method", "requires_confirmation"})


def _first_method_type(intent: Any) -> str | None:
    types = field(intent, "payment_method_types") or []
    return types[0] if types else None


def assert_owns_intent(intent: Any, user: User) -> None:
    """Reject intents that belong to someone else.

    An intent with a customer must match the user's customer reference; an
    intent without one must carry the user's id in its metadata.
    """
    intent_customer = object_id(field(intent, "customer"))
    if intent_customer:
        if intent_customer != user.stripe_customer_id:
            raise ForbiddenError()
        return
    if field(field(intent, "metadata"), "user_id") != str(user.id):
        raise ForbiddenError()


async def get_payment_by_stripe_id(db: AsyncSession, stripe_payment_id: str) -> Payment | None:
    """Look up a payment by Stripe payment intent ID (used by webhooks)."""
    return await find_by(db, Payment, Payment.stripe_payment_id, stripe_payment_id)


async def record_payment(
    db: AsyncSession,
    user_id: uuid.UUID,
    stripe_payment_id: str,
    *,
    amount: Decimal,
    currency: str,
    status: PaymentStatus,
    payment_method_type: str | None = None,
) -> Payment:
    """Upsert the Payment row keyed by ``stripe_payment_id``.

    Applying the same values twice leaves a single, unchanged row.
    """
    payment, created = await get_or_create(
        db,
        Payment,
        Payment.stripe_payment_id,
        stripe_payment_id,
        defaults={
            "user_id": user_id,
            "amount": amount,
            "currency": currency,
            "status": status.value,
            "payment_method_type": payment_method_type,
        },
    )
    if not created:
        payment.status = status.value
        if payment_method_type:
            payment.payment_method_type = payment_method_type
        await db.flush()
    return payment


async def record_payment_from_intent(
    db: AsyncSession, user_id: uuid.UUID, intent: Any, status: PaymentStatus | None = None
) -> Payment:
    """Upsert the Payment row from a Stripe payment intent object."""
    return await record_payment(
        db,
        user_id,
        intent["id"],
        amount=from_minor_units(field(intent, "amount")),
        currency=field(intent, "currency", ""),
        status=status or PaymentStatus.from_intent_status(field(intent, "status")),
        payment_method_type=_first_method_type(intent),
    )


async def create_payment_intent(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    amount: Decimal,
    currency: str,
    payment_method_types: list[str] | None = None,
    description: str | None = None,
    metadata: dict[str, str] | None = None,
) -> tuple[Any, Payment]:
    """Create a remote payment intent and record the pending Payment locally."""
    if amount < MINIMUM_AMOUNT:
        raise BillingValidationError(f"Amount must be at least {MINIMUM_AMOUNT}")
    currency = currency.lower()

    customer_id, _ = await ensure_stripe_customer(db, gateway, user)
    params: dict[str, Any] = {
        "amount": to_minor_units(amount),
        "currency": currency,
        "customer": customer_id,
        "metadata": {**(metadata or {}), "user_id": str(user.id)},
    }
    if payment_method_types:
        params["payment_method_types"] = payment_method_types
    else:
        params["automatic_payment_methods"] = {"enabled": True}
    if description:
        params["description"] = description

    intent = await gateway.create_payment_intent(params)

    payment = await record_payment(
        db,
        user.id,
        intent["id"],
        amount=amount,
        currency=currency,
        status=PaymentStatus.from_intent_status(field(intent, "status")),
        payment_method_type=payment_method_types[0] if payment_method_types else None,
    )
    logger.info("Recorded payment %s for user %s (%s %s)", intent["id"], user.id, amount, currency)
    return intent, payment


async def confirm_payment_intent(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    payment_intent_id: str,
    payment_method_id: str | None = None,
    return_url: str | None = None,
) -> tuple[Any, Payment]:
    """Confirm a payment intent server-side on behalf of its owner."""
    intent = await gateway.retrieve_payment_intent(payment_intent_id)
    assert_owns_intent(intent, user)

    status = field(intent, "status")
    if status not in CONFIRMABLE_STATUSES:
        raise BillingValidationError(f"Payment intent cannot be confirmed from status '{status}'")

    customer_id, _ = await ensure_stripe_customer(db, gateway, user)
    method_id = await resolve_payment_method(db, gateway, user, customer_id, payment_method_id)

    changes: dict[str, Any] = {}
    if not field(intent, "customer"):
        changes["customer"] = customer_id
    if not field(intent, "payment_method"):
        changes["payment_method"] = method_id
    if changes:
        intent = await gateway.update_payment_intent(payment_intent_id, changes)

    params: dict[str, Any] = {"payment_method": method_id}
    if return_url:
        params["return_url"] = return_url
    intent = await gateway.confirm_payment_intent(payment_intent_id, params)

    payment = await record_payment_from_intent(db, user.id, intent)
    logger.info("Confirmed payment intent %s: status=%s", payment_intent_id, field(intent, "status"))
    return intent, payment


def _amount_refunded(intent: Any) -> int:
    """Minor units already refunded, from the intent or its expanded latest charge."""
    refunded = field(intent, "amount_refunded")
    if refunded is not None:
        return refunded
    return field(field(intent, "latest_charge"), "amount_refunded", 0)


async def refund_payment(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    payment_intent_id: str,
    reason: str | None = None,
) -> tuple[Any, Payment]:
    """Fully refund a succeeded payment and mark the local row refunded."""
    intent = await gateway.retrieve_payment_intent(payment_intent_id, expand=["latest_charge"])
    assert_owns_intent(intent, user)

    if field(intent, "status") != "succeeded":
        raise BillingValidationError("Only succeeded payments can be refunded")
    if _amount_refunded(intent) >= field(intent, "amount", 0):
        raise BillingValidationError("Payment has already been fully refunded")

    params: dict[str, Any] = {"payment_intent": payment_intent_id}
    if reason:
        params["reason"] = reason
    refund = await gateway.create_refund(params)

    payment = await record_payment_from_intent(db, user.id, intent, status=PaymentStatus.REFUNDED)
    refunded_at = field(refund, "created")
    payment.payment_metadata = {
        **(payment.payment_metadata or {}),
        "refund_id": refund["id"],
        "refund_status": field(refund, "status"),
        "refund_amount": str(from_minor_units(field(refund, "amount"))),
        "refund_reason": field(refund, "reason", reason),
        "refunded_at": (
            datetime.fromtimestamp(refunded_at, tz=timezone.utc) if refunded_at else datetime.now(timezone.utc)
        ).isoformat(),
    }
    await db.flush()
    logger.info("Refunded payment %s (refund %s)", payment_intent_id, refund["id"])
    return refund, payment


async def list_payment_history(
    db: AsyncSession, user: User, skip: int = 0, limit: int = 20
) -> tuple[list[Payment], int]:
    """Return one page of the user's payments, newest first, and the total count."""
    total_result = await db.execute(
        select(func.count()).select_from(Payment).where(Payment.user_id == user.id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Payment)
        .where(Payment.user_id == user.id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total
