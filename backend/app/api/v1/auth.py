"""Auth API router — register, login, refresh, me."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db
from app.auth.jwt import REFRESH_TOKEN, create_token_pair, decode_token
from app.auth.passwords import hash_password, verify_password
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _auth_response(user: User) -> AuthResponse:
    tokens = create_token_pair(str(user.id))
    return AuthResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(**tokens),
    )


# ---------------------------------------------------------------------------
# POST /register
# ---------------------------------------------------------------------------


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    """Register a new user with a password or a social login ID.

    The Stripe customer is created lazily, on first billing use.
    """
    conditions = [User.email == body.email]
    if body.social_id is not None:
        conditions.append(User.social_id == body.social_id)
    result = await db.execute(select(User).where(or_(*conditions)))
    if result.scalars().first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        )

    user = User(
        email=body.email,
        name=body.name,
        hashed_password=hash_password(body.password) if body.password else None,
        social_id=body.social_id,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info("Registered user %s (%s)", user.id, "social" if body.social_id else "password")
    return _auth_response(user)


# ---------------------------------------------------------------------------
# POST /login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    """Authenticate with email and password, or with a social login ID."""
    if body.social_id is not None:
        result = await db.execute(select(User).where(User.social_id == body.social_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise _unauthorized("Invalid credentials")
    else:
        result = await db.execute(select(User).where(User.email == body.email))
        user = result.scalar_one_or_none()
        # Social-only accounts have no password hash and never match
        if user is None or not verify_password(body.password, user.hashed_password):
            raise _unauthorized("Invalid email or password")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    return _auth_response(user)


# ---------------------------------------------------------------------------
# POST /refresh
# ---------------------------------------------------------------------------


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Exchange a valid refresh token for a new token pair."""
    try:
        payload = decode_token(body.refresh_token)
    except JWTError:
        raise _unauthorized("Invalid or expired refresh token") from None

    if payload.get("type") != REFRESH_TOKEN:
        raise _unauthorized("Invalid token type")

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise _unauthorized("Invalid token payload") from None

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized("User not found or inactive")

    return TokenResponse(**create_token_pair(str(user.id)))


# ---------------------------------------------------------------------------
# GET /me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_active_user)) -> UserResponse:
    """Return the currently authenticated user's profile."""
    return UserResponse.model_validate(current_user)
