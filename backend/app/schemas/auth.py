"""Pydantic v2 request/response schemas for authentication endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Schema for user registration. Either a password or a social ID is required."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)
    password: str | None = Field(None, min_length=8, max_length=128)
    social_id: str | None = Field(None, min_length=1, max_length=255)

    @model_validator(mode="after")
    def _require_credential(self) -> "RegisterRequest":
        if self.password is None and self.social_id is None:
            raise ValueError("password is required unless social_id is provided")
        return self


class LoginRequest(BaseModel):
    """Schema for login via email/password or social ID."""

    email: EmailStr | None = None
    password: str | None = None
    social_id: str | None = None

    @model_validator(mode="after")
    def _require_credential(self) -> "LoginRequest":
        if self.social_id is None and (self.email is None or self.password is None):
            raise ValueError("email and password are required unless social_id is provided")
        return self


class RefreshRequest(BaseModel):
    """Schema for token refresh."""

    refresh_token: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """JWT token pair returned on successful authentication."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Public user profile information."""

    id: uuid.UUID
    email: str
    name: str
    is_active: bool
    stripe_customer_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    """Combined user + tokens returned on register/login."""

    user: UserResponse
    tokens: TokenResponse


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
