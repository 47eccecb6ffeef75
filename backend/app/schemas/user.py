"""Pydantic v2 schemas for account management endpoints."""

from pydantic import BaseModel, EmailStr, Field

from app.schemas.auth import UserResponse
from app.schemas.billing import PaymentMethodResponse, PaymentResponse, SubscriptionResponse


class UserUpdate(BaseModel):
    """Partial profile update. Only explicitly set fields are changed."""

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None


class UserProfileResponse(UserResponse):
    """Profile together with the user's mirrored billing records."""

    payments: list[PaymentResponse] = []
    payment_methods: list[PaymentMethodResponse] = []
    subscriptions: list[SubscriptionResponse] = []
