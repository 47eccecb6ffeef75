"""FastAPI authentication dependencies for route protection."""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.database import get_db
from app.models.user import User

# Strict bearer — rejects requests without an Authorization header
_bearer_scheme = HTTPBearer(auto_error=False)


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, of the
            wrong type, or the user no longer exists.
    """
    if credentials is None:
        raise _credentials_exception("Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise _credentials_exception() from None

    # Only accept access tokens, not refresh tokens
    if payload.get("type") != "access":
        raise _credentials_exception("Invalid token type")

    sub: str | None = payload.get("sub")
    if sub is None:
        raise _credentials_exception()

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise _credentials_exception() from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _credentials_exception()

    return user


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the user account has been deactivated.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user
