"""Payments API router — payment intents, confirmation, refunds, and history."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import StripeGateway, get_current_active_user, get_db, get_stripe_gateway
from app.billing.stripe_fields import field, from_minor_units
from app.models.user import User
from app.schemas.billing import (
    PaymentConfirmResponse,
    PaymentHistoryResponse,
    PaymentIntentConfirmRequest,
    PaymentIntentCreateRequest,
    PaymentIntentResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
)
from app.services import payment_service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post("/intent", response_model=PaymentIntentResponse, summary="Create a payment intent")
async def create_payment_intent(
    body: PaymentIntentCreateRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> PaymentIntentResponse:
    """Create a payment intent and record it as a pending payment."""
    intent, payment = await payment_service.create_payment_intent(
        db,
        gateway,
        current_user,
        amount=body.amount,
        currency=body.currency,
        payment_method_types=body.payment_method_types,
        description=body.description,
        metadata=body.metadata,
    )
    return PaymentIntentResponse(
        payment_intent_id=intent["id"],
        client_secret=field(intent, "client_secret"),
        status=payment.status,
        amount=payment.amount,
        currency=payment.currency,
    )


@router.post("/confirm", response_model=PaymentConfirmResponse, summary="Confirm a payment intent")
async def confirm_payment_intent(
    body: PaymentIntentConfirmRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> PaymentConfirmResponse:
    intent, payment = await payment_service.confirm_payment_intent(
        db,
        gateway,
        current_user,
        body.payment_intent_id,
        payment_method_id=body.payment_method_id,
        return_url=body.return_url,
    )
    next_action = field(intent, "next_action")
    return PaymentConfirmResponse(
        payment_intent_id=intent["id"],
        status=field(intent, "status"),
        client_secret=field(intent, "client_secret") if next_action else None,
        next_action=field(next_action, "type"),
        payment=PaymentResponse.model_validate(payment),
    )


@router.post("/refund", response_model=RefundResponse, summary="Refund a payment")
async def refund_payment(
    body: RefundRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RefundResponse:
    refund, payment = await payment_service.refund_payment(
        db, gateway, current_user, body.payment_intent_id, reason=body.reason
    )
    return RefundResponse(
        refund_id=refund["id"],
        status=field(refund, "status"),
        amount=from_minor_units(field(refund, "amount")),
        payment=PaymentResponse.model_validate(payment),
    )


@router.get("/history", response_model=PaymentHistoryResponse, summary="List own payments")
async def payment_history(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> PaymentHistoryResponse:
    """Return the user's payments, newest first."""
    payments, total = await payment_service.list_payment_history(db, current_user, skip, limit)
    return PaymentHistoryResponse(
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=total,
    )
