"""Stripe webhook endpoint — receives and reconciles Stripe events.

No bearer credential is used here; the ``Stripe-Signature`` header is the
only authentication.
"""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import StripeGateway, get_db, get_stripe_gateway
from app.billing.webhooks import resolve_handler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=None)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> dict[str, str] | JSONResponse:
    """Receive and process Stripe webhook events."""
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    # 2. Verify signature
    try:
        event = gateway.construct_event(payload, sig_header)
    except stripe.SignatureVerificationError:
        logger.warning("Webhook signature verification failed")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid signature"})
    except ValueError:
        logger.warning("Invalid webhook payload")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid payload"})

    # 3. Dispatch to handler
    handler = resolve_handler(event["type"])
    if handler is None:
        logger.info("Ignoring unhandled webhook event type: %s (id=%s)", event["type"], event["id"])
        return {"status": "ignored"}

    logger.info("Processing webhook event: %s (id=%s)", event["type"], event["id"])

    try:
        await handler(db, event, gateway)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Error processing webhook event %s", event["id"])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from e

    return {"status": "processed"}
