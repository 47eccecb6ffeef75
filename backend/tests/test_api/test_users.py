"""Tests for the users API — profile, self-only access, and deactivation."""

import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment
from app.models.payment_method import PaymentMethod
from app.models.subscription import Subscription
from app.models.user import User
from factories import create_user, headers_for

pytestmark = pytest.mark.asyncio


class TestProfile:
    async def test_profile_includes_billing_records(
        self, client: AsyncClient, db_session: AsyncSession, customer_user: User, customer_headers: dict
    ):
        db_session.add_all(
            [
                Payment(
                    user_id=customer_user.id,
                    stripe_payment_id="pi_profile_1",
                    status="succeeded",
                    amount=Decimal("10.00"),
                    currency="usd",
                ),
                PaymentMethod(
                    user_id=customer_user.id,
                    stripe_payment_method_id="pm_profile_1",
                    type="card",
                    last_four="4242",
                    brand="visa",
                    is_default=True,
                ),
                Subscription(
                    user_id=customer_user.id,
                    stripe_subscription_id="sub_profile_1",
                    stripe_price_id="price_basic",
                    status="active",
                    current_period_end=datetime(2030, 1, 1),
                ),
            ]
        )
        await db_session.flush()

        response = await client.get("/api/v1/users/me", headers=customer_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["stripe_customer_id"] == "cus_test_123"
        assert [p["stripe_payment_id"] for p in data["payments"]] == ["pi_profile_1"]
        assert Decimal(data["payments"][0]["amount"]) == Decimal("10.00")
        assert data["payment_methods"][0]["is_default"] is True
        assert data["subscriptions"][0]["status"] == "active"

    async def test_profile_excludes_other_users_records(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers: dict
    ):
        other = await create_user(db_session)
        db_session.add(
            Payment(
                user_id=other.id,
                stripe_payment_id="pi_other",
                status="pending",
                amount=Decimal("5.00"),
                currency="usd",
            )
        )
        await db_session.flush()

        response = await client.get("/api/v1/users/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["payments"] == []


class TestSelfOnlyAccess:
    async def test_get_own_user(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.get(f"/api/v1/users/{test_user.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id"] == str(test_user.id)

    async def test_get_other_user_forbidden(self, client: AsyncClient, db_session: AsyncSession, auth_headers: dict):
        other = await create_user(db_session)
        response = await client.get(f"/api/v1/users/{other.id}", headers=auth_headers)
        assert response.status_code == 403
        assert response.json() == {"error": "You are not allowed to access this resource"}

    async def test_update_other_user_forbidden(self, client: AsyncClient, auth_headers: dict):
        response = await client.put(
            f"/api/v1/users/{uuid.uuid4()}", json={"name": "Hacker"}, headers=auth_headers
        )
        assert response.status_code == 403

    async def test_delete_other_user_forbidden(self, client: AsyncClient, db_session: AsyncSession, auth_headers: dict):
        other = await create_user(db_session)
        response = await client.delete(f"/api/v1/users/{other.id}", headers=auth_headers)
        assert response.status_code == 403
        await db_session.refresh(other)
        assert other.is_active is True


class TestUpdateUser:
    async def test_update_name(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.put(
            f"/api/v1/users/{test_user.id}", json={"name": "Renamed"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

    async def test_update_email_taken(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        other = await create_user(db_session)
        response = await client.put(
            f"/api/v1/users/{test_user.id}", json={"email": other.email}, headers=auth_headers
        )
        assert response.status_code == 409


class TestDeleteUser:
    async def test_delete_deactivates_and_keeps_records(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        user = await create_user(db_session)
        headers = headers_for(user)
        db_session.add(
            Payment(
                user_id=user.id,
                stripe_payment_id="pi_kept",
                status="succeeded",
                amount=Decimal("1.00"),
                currency="usd",
            )
        )
        await db_session.flush()

        response = await client.delete(f"/api/v1/users/{user.id}", headers=headers)
        assert response.status_code == 200
        await db_session.refresh(user)
        assert user.is_active is False
        kept = await db_session.execute(select(Payment).where(Payment.stripe_payment_id == "pi_kept"))
        assert kept.scalar_one_or_none() is not None

        # Deactivated accounts can no longer authenticate
        response = await client.get("/api/v1/users/me", headers=headers)
        assert response.status_code == 403

