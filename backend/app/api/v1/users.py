"""Users API router — profile, account updates, and deactivation.

Users may only read and modify their own account.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db
from app.models.payment import Payment
from app.models.payment_method import PaymentMethod
from app.models.subscription import Subscription
from app.models.user import User
from app.schemas.auth import MessageResponse, UserResponse
from app.schemas.billing import PaymentMethodResponse, PaymentResponse, SubscriptionResponse
from app.schemas.user import UserProfileResponse, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def _ensure_self(user_id: uuid.UUID, current_user: User) -> None:
    if user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not allowed to access this resource",
        )


@router.get("/me", response_model=UserProfileResponse, summary="Get own profile with billing records")
async def get_profile(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> UserProfileResponse:
    """Return the user with their payments, payment methods, and subscriptions."""
    payments = await db.execute(
        select(Payment)
        .where(Payment.user_id == current_user.id)
        .order_by(Payment.created_at.desc())
    )
    methods = await db.execute(
        select(PaymentMethod)
        .where(PaymentMethod.user_id == current_user.id)
        .order_by(PaymentMethod.created_at)
    )
    subscriptions = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == current_user.id)
        .order_by(Subscription.created_at.desc())
    )

    return UserProfileResponse(
        **UserResponse.model_validate(current_user).model_dump(),
        payments=[PaymentResponse.model_validate(p) for p in payments.scalars().all()],
        payment_methods=[PaymentMethodResponse.model_validate(m) for m in methods.scalars().all()],
        subscriptions=[SubscriptionResponse.model_validate(s) for s in subscriptions.scalars().all()],
    )


@router.get("/{user_id}", response_model=UserResponse, summary="Get a user")
async def get_user(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
) -> User:
    _ensure_self(user_id, current_user)
    return current_user


@router.put("/{user_id}", response_model=UserResponse, summary="Update a user")
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Update name and/or email. Raises 409 if the new email is taken."""
    _ensure_self(user_id, current_user)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in changes and changes["email"] != current_user.email:
        taken = await db.execute(select(User.id).where(User.email == changes["email"]))
        if taken.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email already registered",
            )

    for key, value in changes.items():
        setattr(current_user, key, value)
    await db.flush()
    await db.refresh(current_user)
    return current_user


@router.delete("/{user_id}", response_model=MessageResponse, summary="Deactivate a user")
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    """Deactivate the account. Billing records are kept."""
    _ensure_self(user_id, current_user)
    current_user.is_active = False
    await db.flush()
    logger.info("Deactivated user %s", current_user.id)
    return MessageResponse(message="Account deactivated")
