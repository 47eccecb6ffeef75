"""Subscriptions API router — subscribe, inspect, change price, and cancel."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import StripeGateway, get_current_active_user, get_db, get_stripe_gateway
from app.models.user import User
from app.schemas.billing import (
    SubscriptionCancelRequest,
    SubscriptionCreateRequest,
    SubscriptionCreateResponse,
    SubscriptionResponse,
    SubscriptionUpdateRequest,
)
from app.services import subscription_service

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


@router.post(
    "",
    response_model=SubscriptionCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Subscribe to a price",
)
async def create_subscription(
    body: SubscriptionCreateRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionCreateResponse:
    """Create the subscription.

    When the first invoice cannot be fetched the subscription is still
    returned, with ``invoice_lookup`` set to ``"unavailable"`` and no client
    secret.
    """
    checkout = await subscription_service.create_subscription(
        db, gateway, current_user, body.price_id, body.payment_method_id
    )
    return SubscriptionCreateResponse(
        subscription=SubscriptionResponse.model_validate(checkout.subscription),
        client_secret=checkout.client_secret,
        payment_intent_status=checkout.payment_intent_status,
        invoice_lookup=checkout.invoice.state,
    )


@router.get("/{subscription_id}", response_model=SubscriptionResponse, summary="Get a subscription")
async def get_subscription(
    subscription_id: str,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
):
    return await subscription_service.get_subscription(db, gateway, current_user, subscription_id)


@router.post(
    "/{subscription_id}/update",
    response_model=SubscriptionResponse,
    summary="Change a subscription's price",
)
async def update_subscription(
    subscription_id: str,
    body: SubscriptionUpdateRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
):
    return await subscription_service.change_subscription_price(
        db, gateway, current_user, subscription_id, body.price_id
    )


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse, summary="Cancel a subscription")
async def cancel_subscription(
    subscription_id: str,
    body: SubscriptionCancelRequest | None = None,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
):
    """Cancel at the end of the current period, or immediately when requested."""
    immediately = body.immediately if body else False
    return await subscription_service.cancel_subscription(
        db, gateway, current_user, subscription_id, immediately=immediately
    )
