"""Tests for authentication endpoints — register, login, me, refresh."""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import create_token_pair
from app.models.user import User
from factories import create_user

pytestmark = pytest.mark.asyncio


def _email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@test.com"


# ---------------------------------------------------------------------------
# POST /api/v1/auth/register
# ---------------------------------------------------------------------------


class TestRegister:
    """Tests for user registration."""

    async def test_register_with_password(self, client: AsyncClient, gateway) -> None:
        email = _email("newuser")
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": "securepass123", "name": "New User"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == email
        assert data["user"]["is_active"] is True
        assert data["user"]["stripe_customer_id"] is None
        assert data["tokens"]["access_token"]
        assert data["tokens"]["refresh_token"]
        assert data["tokens"]["token_type"] == "bearer"
        # Customers are created lazily, never at registration
        gateway.create_customer.assert_not_called()

    async def test_register_with_social_id(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        email = _email("social")
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": email, "name": "Social User", "social_id": "google-123"},
        )
        assert response.status_code == 201

        result = await db_session.execute(select(User).where(User.email == email))
        user = result.scalar_one()
        assert user.social_id == "google-123"
        assert user.hashed_password is None

    async def test_register_requires_password_or_social_id(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": _email(), "name": "Nobody"},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "Validation failed"

    async def test_register_duplicate_email(self, client: AsyncClient) -> None:
        payload = {"email": _email("dup"), "password": "securepass123", "name": "First"}

        resp1 = await client.post("/api/v1/auth/register", json=payload)
        assert resp1.status_code == 201

        resp2 = await client.post("/api/v1/auth/register", json=payload)
        assert resp2.status_code == 409
        assert "already exists" in resp2.json()["error"].lower()

    async def test_register_duplicate_social_id(self, client: AsyncClient) -> None:
        first = {"email": _email(), "name": "A", "social_id": "github-42"}
        second = {"email": _email(), "name": "B", "social_id": "github-42"}
        assert (await client.post("/api/v1/auth/register", json=first)).status_code == 201
        assert (await client.post("/api/v1/auth/register", json=second)).status_code == 409

    async def test_register_short_password(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": _email(), "password": "short", "name": "Short Pass"},
        )
        assert response.status_code == 422
        assert "password" in response.json()["errors"]

    async def test_register_invalid_email(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "not-an-email", "password": "securepass123", "name": "Bad Email"},
        )
        assert response.status_code == 422
        assert "email" in response.json()["errors"]


# ---------------------------------------------------------------------------
# POST /api/v1/auth/login
# ---------------------------------------------------------------------------


class TestLogin:
    async def test_login_with_password(self, client: AsyncClient, db_session: AsyncSession) -> None:
        user = await create_user(db_session, password="correct-horse")
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": "correct-horse"},
        )
        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(user.id)

    async def test_login_wrong_password(self, client: AsyncClient, test_user: User) -> None:
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "wrong-password"},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}

    async def test_login_unknown_email(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": _email("ghost"), "password": "whatever123"},
        )
        assert response.status_code == 401

    async def test_login_with_social_id(self, client: AsyncClient, db_session: AsyncSession) -> None:
        user = await create_user(db_session, social_id="apple-7")
        response = await client.post("/api/v1/auth/login", json={"social_id": "apple-7"})
        assert response.status_code == 200
        assert response.json()["user"]["email"] == user.email

    async def test_login_unknown_social_id(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/login", json={"social_id": "nope"})
        assert response.status_code == 401

    async def test_login_inactive_user(self, client: AsyncClient, db_session: AsyncSession) -> None:
        user = await create_user(db_session, is_active=False, password="testpass123")
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": "testpass123"},
        )
        assert response.status_code == 403

    async def test_login_requires_credentials(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/login", json={"email": _email()})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# POST /api/v1/auth/refresh and GET /api/v1/auth/me
# ---------------------------------------------------------------------------


class TestRefresh:
    async def test_refresh_returns_new_pair(self, client: AsyncClient, test_user: User) -> None:
        tokens = create_token_pair(str(test_user.id))
        response = await client.post(
            "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert response.status_code == 200
        assert response.json()["access_token"]

    async def test_refresh_rejects_access_token(self, client: AsyncClient, test_user: User) -> None:
        tokens = create_token_pair(str(test_user.id))
        response = await client.post(
            "/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]}
        )
        assert response.status_code == 401

    async def test_refresh_rejects_garbage(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": "garbage"})
        assert response.status_code == 401

    async def test_refresh_rejects_unknown_user(self, client: AsyncClient) -> None:
        tokens = create_token_pair(str(uuid.uuid4()))
        response = await client.post(
            "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert response.status_code == 401


class TestMe:
    async def test_me_returns_profile(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ) -> None:
        response = await client.get("/api/v1/auth/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["email"] == test_user.email

    async def test_me_requires_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}
