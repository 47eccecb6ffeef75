"""Customers API router — link the authenticated user to a Stripe customer."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import StripeGateway, get_current_active_user, get_db, get_stripe_gateway, to_plain
from app.models.user import User
from app.schemas.billing import CustomerResponse, CustomerUpdateRequest, RemoteObjectResponse
from app.services.customer_service import (
    ensure_stripe_customer,
    require_customer_id,
    update_stripe_customer,
)

router = APIRouter(prefix="/api/v1/customers", tags=["customers"])


def _customer_object(customer) -> RemoteObjectResponse:
    return RemoteObjectResponse(id=customer["id"], object="customer", data=to_plain(customer))


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    response: Response,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> CustomerResponse:
    """Create the user's Stripe customer, or return the existing one with 200."""
    customer_id, created = await ensure_stripe_customer(db, gateway, current_user)
    if not created:
        response.status_code = status.HTTP_200_OK
    return CustomerResponse(
        customer_id=customer_id,
        created=created,
        message="Customer created" if created else "Customer already exists",
    )


@router.get("/me", response_model=RemoteObjectResponse)
async def get_customer(
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteObjectResponse:
    customer = await gateway.retrieve_customer(require_customer_id(current_user))
    return _customer_object(customer)


@router.put("/me", response_model=RemoteObjectResponse)
async def update_customer(
    body: CustomerUpdateRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteObjectResponse:
    """Update the remote customer; name and email are copied to the local user."""
    changes = body.model_dump(exclude_none=True)
    customer = await update_stripe_customer(db, gateway, current_user, changes)
    return _customer_object(customer)
