"""Payment method service — attach, detach, default selection, and local mirroring."""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.errors import BillingValidationError, ForbiddenError, NotFoundError
from app.billing.stripe_client import StripeGateway
from app.billing.stripe_fields import card_details, field, object_id
from app.models.payment_method import PaymentMethod
from app.models.user import User
from app.services.customer_service import ensure_stripe_customer, require_customer_id
from app.services.mirror import get_or_create

logger = logging.getLogger(__name__)

SETUP_CONFIRMABLE_STATUSES = frozenset({"requires_payment_method", "requires_confirmation"})


async def get_user_payment_method(
    db: AsyncSession, user: User, stripe_payment_method_id: str
) -> PaymentMethod | None:
    """Look up one of the user's mirrored payment methods by Stripe ID."""
    result = await db.execute(
        select(PaymentMethod).where(
            PaymentMethod.user_id == user.id,
            PaymentMethod.stripe_payment_method_id == stripe_payment_method_id,
        )
    )
    return result.scalar_one_or_none()


async def get_default_payment_method(db: AsyncSession, user: User) -> PaymentMethod | None:
    result = await db.execute(
        select(PaymentMethod).where(
            PaymentMethod.user_id == user.id,
            PaymentMethod.is_default.is_(True),
        )
    )
    return result.scalars().first()


async def mirror_payment_method(db: AsyncSession, user: User, stripe_pm: Any) -> PaymentMethod:
    """Create or refresh the local row for a Stripe payment method owned by ``user``."""
    last_four, brand = card_details(stripe_pm)
    method, created = await get_or_create(
        db,
        PaymentMethod,
        PaymentMethod.stripe_payment_method_id,
        stripe_pm["id"],
        defaults={
            "user_id": user.id,
            "type": field(stripe_pm, "type", "card"),
            "last_four": last_four,
            "brand": brand,
            "is_default": False,
        },
    )
    if method.user_id != user.id:
        raise ForbiddenError()

    if not created:
        method.type = field(stripe_pm, "type", method.type)
        method.last_four = last_four
        method.brand = brand
        await db.flush()
    else:
        logger.info("Mirrored payment method %s for user %s", method.stripe_payment_method_id, user.id)
    return method


async def _mark_default(db: AsyncSession, user: User, method: PaymentMethod) -> None:
    """Clear every default the user has, then set ``method`` as the only one."""
    await db.execute(
        update(PaymentMethod)
        .where(PaymentMethod.user_id == user.id)
        .values(is_default=False)
    )
    method.is_default = True
    await db.flush()


async def set_default_payment_method(
    db: AsyncSession, gateway: StripeGateway, user: User, stripe_payment_method_id: str
) -> PaymentMethod:
    """Make a tracked payment method the user's default, remotely and locally.

    The remote customer is updated first so a processor failure leaves the
    local defaults untouched.
    """
    method = await get_user_payment_method(db, user, stripe_payment_method_id)
    if method is None:
        raise NotFoundError("Payment method not found")

    customer_id = require_customer_id(user)
    await gateway.set_default_payment_method(customer_id, stripe_payment_method_id)
    await _mark_default(db, user, method)
    logger.info("Payment method %s is now the default for user %s", stripe_payment_method_id, user.id)
    return method


async def ensure_attached(gateway: StripeGateway, payment_method_id: str, customer_id: str) -> Any:
    """Attach the payment method to the customer unless it already is.

    Raises:
        ForbiddenError: The method is attached to a different customer.
    """
    stripe_pm = await gateway.retrieve_payment_method(payment_method_id)
    owner = object_id(field(stripe_pm, "customer"))
    if owner is None:
        return await gateway.attach_payment_method(payment_method_id, customer_id)
    if owner != customer_id:
        raise ForbiddenError()
    return stripe_pm


async def resolve_payment_method(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    customer_id: str,
    payment_method_id: str | None,
) -> str:
    """Pick the payment method for a charge: explicit, else the local default.

    An explicit method is attached to the customer when needed and mirrored.
    """
    if payment_method_id:
        stripe_pm = await ensure_attached(gateway, payment_method_id, customer_id)
        await mirror_payment_method(db, user, stripe_pm)
        return payment_method_id

    default = await get_default_payment_method(db, user)
    if default is None:
        raise BillingValidationError("No payment method provided and no default payment method on file")
    return default.stripe_payment_method_id


async def create_payment_method(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    method_type: str,
    token: str,
    set_as_default: bool = False,
) -> PaymentMethod:
    """Create a payment method from a client token and attach it to the user's customer."""
    customer_id, _ = await ensure_stripe_customer(db, gateway, user)
    stripe_pm = await gateway.create_payment_method(
        {"type": method_type, method_type: {"token": token}}
    )
    stripe_pm = await gateway.attach_payment_method(stripe_pm["id"], customer_id)
    method = await mirror_payment_method(db, user, stripe_pm)
    if set_as_default:
        method = await set_default_payment_method(db, gateway, user, method.stripe_payment_method_id)
    return method


async def attach_payment_method(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    payment_method_id: str,
    set_as_default: bool = False,
) -> PaymentMethod:
    """Attach an existing Stripe payment method to the user and mirror it."""
    customer_id, _ = await ensure_stripe_customer(db, gateway, user)
    stripe_pm = await ensure_attached(gateway, payment_method_id, customer_id)
    method = await mirror_payment_method(db, user, stripe_pm)
    if set_as_default:
        method = await set_default_payment_method(db, gateway, user, payment_method_id)
    return method


async def detach_payment_method(
    db: AsyncSession, gateway: StripeGateway, user: User, payment_method_id: str
) -> None:
    """Detach remotely and delete the local row.

    Only methods this service tracks for the user can be detached.
    """
    method = await get_user_payment_method(db, user, payment_method_id)
    if method is None:
        raise NotFoundError("Payment method not found")

    await gateway.detach_payment_method(payment_method_id)
    await db.delete(method)
    await db.flush()
    logger.info("Detached payment method %s from user %s", payment_method_id, user.id)


async def list_payment_methods(
    db: AsyncSession, gateway: StripeGateway, user: User
) -> list[dict[str, Any]]:
    """List the customer's remote card methods.

    ``is_default`` comes from the local mirror only; methods without a local
    row are never reported as default.
    """
    if not user.stripe_customer_id:
        return []

    remote = await gateway.list_payment_methods(user.stripe_customer_id)
    result = await db.execute(select(PaymentMethod).where(PaymentMethod.user_id == user.id))
    local = {m.stripe_payment_method_id: m for m in result.scalars().all()}

    methods = []
    for stripe_pm in remote:
        last_four, brand = card_details(stripe_pm)
        card = field(stripe_pm, "card")
        tracked = local.get(stripe_pm["id"])
        methods.append(
            {
                "id": stripe_pm["id"],
                "type": field(stripe_pm, "type", "card"),
                "brand": brand,
                "last_four": last_four,
                "exp_month": field(card, "exp_month"),
                "exp_year": field(card, "exp_year"),
                "is_default": bool(tracked and tracked.is_default),
                "tracked": tracked is not None,
            }
        )
    return methods


async def create_setup_intent(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    payment_method_types: list[str] | None = None,
) -> Any:
    """Create a setup intent for saving a payment method off-session."""
    customer_id, _ = await ensure_stripe_customer(db, gateway, user)
    params: dict[str, Any] = {
        "customer": customer_id,
        "usage": "off_session",
        "metadata": {"user_id": str(user.id)},
    }
    if payment_method_types:
        params["payment_method_types"] = payment_method_types
    else:
        params["automatic_payment_methods"] = {"enabled": True}
    return await gateway.create_setup_intent(params)


async def confirm_setup_intent(
    db: AsyncSession,
    gateway: StripeGateway,
    user: User,
    setup_intent_id: str,
    payment_method_id: str | None = None,
    set_as_default: bool = False,
) -> tuple[Any, PaymentMethod | None]:
    """Confirm a setup intent and mirror the payment method it saved.

    Returns ``(setup_intent, mirrored_method_or_None)``.
    """
    setup_intent = await gateway.retrieve_setup_intent(setup_intent_id)
    owner = object_id(field(setup_intent, "customer"))
    if owner is None or owner != user.stripe_customer_id:
        raise ForbiddenError()

    status = field(setup_intent, "status")
    if status in SETUP_CONFIRMABLE_STATUSES:
        params = {"payment_method": payment_method_id} if payment_method_id else {}
        setup_intent = await gateway.confirm_setup_intent(setup_intent_id, params)
    elif status != "succeeded":
        raise BillingValidationError(f"Setup intent cannot be confirmed from status '{status}'")

    method = None
    saved_pm_id = object_id(field(setup_intent, "payment_method"))
    if field(setup_intent, "status") == "succeeded" and saved_pm_id:
        stripe_pm = await gateway.retrieve_payment_method(saved_pm_id)
        method = await mirror_payment_method(db, user, stripe_pm)
        if set_as_default:
            method = await set_default_payment_method(db, gateway, user, saved_pm_id)
    return setup_intent, method
