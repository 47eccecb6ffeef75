"""Payment methods API router — save, list, attach, detach, and default selection."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import StripeGateway, get_current_active_user, get_db, get_stripe_gateway
from app.billing.stripe_fields import field
from app.models.user import User
from app.schemas.auth import MessageResponse
from app.schemas.billing import (
    PaymentMethodAttachRequest,
    PaymentMethodCreateRequest,
    PaymentMethodListResponse,
    PaymentMethodResponse,
    RemotePaymentMethodResponse,
    SetupIntentConfirmRequest,
    SetupIntentConfirmResponse,
    SetupIntentCreateRequest,
    SetupIntentResponse,
)
from app.services import payment_method_service

router = APIRouter(prefix="/api/v1/payment-methods", tags=["payment-methods"])


@router.post(
    "",
    response_model=PaymentMethodResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a card from a client token",
)
async def create_payment_method(
    body: PaymentMethodCreateRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
):
    return await payment_method_service.create_payment_method(
        db, gateway, current_user, body.type, body.token, set_as_default=body.set_as_default
    )


@router.post("/setup-intent", response_model=SetupIntentResponse, summary="Start saving a payment method")
async def create_setup_intent(
    body: SetupIntentCreateRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> SetupIntentResponse:
    setup_intent = await payment_method_service.create_setup_intent(
        db, gateway, current_user, body.payment_method_types
    )
    return SetupIntentResponse(
        setup_intent_id=setup_intent["id"],
        client_secret=field(setup_intent, "client_secret"),
        status=field(setup_intent, "status", "requires_payment_method"),
    )


@router.post(
    "/setup-intent/confirm",
    response_model=SetupIntentConfirmResponse,
    summary="Confirm a setup intent and mirror the saved method",
)
async def confirm_setup_intent(
    body: SetupIntentConfirmRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> SetupIntentConfirmResponse:
    setup_intent, method = await payment_method_service.confirm_setup_intent(
        db,
        gateway,
        current_user,
        body.setup_intent_id,
        payment_method_id=body.payment_method_id,
        set_as_default=body.set_as_default,
    )
    return SetupIntentConfirmResponse(
        setup_intent_id=setup_intent["id"],
        status=field(setup_intent, "status"),
        payment_method=PaymentMethodResponse.model_validate(method) if method else None,
    )


@router.get("", response_model=PaymentMethodListResponse, summary="List saved cards")
async def list_payment_methods(
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> PaymentMethodListResponse:
    """List the customer's cards. ``is_default`` reflects the local mirror only."""
    methods = await payment_method_service.list_payment_methods(db, gateway, current_user)
    return PaymentMethodListResponse(data=[RemotePaymentMethodResponse(**m) for m in methods])


@router.post("/attach", response_model=PaymentMethodResponse, summary="Attach an existing payment method")
async def attach_payment_method(
    body: PaymentMethodAttachRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
):
    return await payment_method_service.attach_payment_method(
        db, gateway, current_user, body.payment_method_id, set_as_default=body.set_as_default
    )


@router.post("/{payment_method_id}/detach", response_model=MessageResponse, summary="Detach a payment method")
async def detach_payment_method(
    payment_method_id: str,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    await payment_method_service.detach_payment_method(db, gateway, current_user, payment_method_id)
    return MessageResponse(message="Payment method detached")


@router.post(
    "/{payment_method_id}/default",
    response_model=PaymentMethodResponse,
    summary="Make a payment method the default",
)
async def set_default_payment_method(
    payment_method_id: str,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
):
    return await payment_method_service.set_default_payment_method(
        db, gateway, current_user, payment_method_id
    )
