"""Customer service — link local users to Stripe customers."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.errors import NotFoundError
from app.billing.stripe_client import StripeGateway
from app.models.user import User

logger = logging.getLogger(__name__)


async def ensure_stripe_customer(
    db: AsyncSession, gateway: StripeGateway, user: User
) -> tuple[str, bool]:
    """Ensure the user has a Stripe customer. Create one if missing.

    Returns ``(customer_id, created)``. A new reference is committed at once,
    so it survives a failure later in the request. Calling it again for the
    same user returns the stored reference unchanged.
    """
    if user.stripe_customer_id:
        return user.stripe_customer_id, False

    customer = await gateway.create_customer(
        email=user.email,
        name=user.name or user.email,
        user_id=str(user.id),
    )
    user.stripe_customer_id = customer["id"]
    # Persist the link before any further remote call
    await db.commit()
    logger.info("Linked Stripe customer %s to user %s", customer["id"], user.id)
    return customer["id"], True


def require_customer_id(user: User) -> str:
    """Return the user's customer reference or raise ``NotFoundError``."""
    if not user.stripe_customer_id:
        raise NotFoundError("No customer ID found. Create one first.")
    return user.stripe_customer_id


async def update_stripe_customer(
    db: AsyncSession, gateway: StripeGateway, user: User, changes: dict
):
    """Update the remote customer and copy name/email back onto the user."""
    customer_id = require_customer_id(user)
    customer = await gateway.update_customer(customer_id, changes)

    if "name" in changes:
        user.name = changes["name"]
    if "email" in changes:
        user.email = changes["email"]
    await db.flush()
    return customer
