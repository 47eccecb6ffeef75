"""Tests for keyed reads and race-tolerant inserts on the mirror tables."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment
from app.services import mirror
from factories import create_user

pytestmark = pytest.mark.asyncio


def _defaults(user_id) -> dict:
    return {
        "user_id": user_id,
        "status": "pending",
        "amount": Decimal("25.00"),
        "currency": "usd",
    }


async def _count(db_session: AsyncSession) -> int:
    result = await db_session.execute(select(func.count()).select_from(Payment))
    return result.scalar_one()


class TestGetOrCreate:
    async def test_creates_then_finds(self, db_session: AsyncSession):
        user = await create_user(db_session)

        first, created = await mirror.get_or_create(
            db_session, Payment, Payment.stripe_payment_id, "pi_1", _defaults(user.id)
        )
        again, created_again = await mirror.get_or_create(
            db_session, Payment, Payment.stripe_payment_id, "pi_1", _defaults(user.id)
        )

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert await _count(db_session) == 1

    async def test_lost_race_returns_winner(self, db_session: AsyncSession, monkeypatch):
        user = await create_user(db_session)
        winner = Payment(stripe_payment_id="pi_race", **_defaults(user.id))
        db_session.add(winner)
        await db_session.flush()

        real_find_by = mirror.find_by
        calls = []

        async def stale_then_real(*args):
            # The first read misses the concurrent writer's row
            calls.append(args)
            if len(calls) == 1:
                return None
            return await real_find_by(*args)

        monkeypatch.setattr(mirror, "find_by", stale_then_real)

        row, created = await mirror.get_or_create(
            db_session, Payment, Payment.stripe_payment_id, "pi_race", _defaults(user.id)
        )

        assert created is False
        assert row.id == winner.id
        assert len(calls) == 2
        assert await _count(db_session) == 1


class TestFindBy:
    async def test_missing_returns_none(self, db_session: AsyncSession):
        assert await mirror.find_by(db_session, Payment, Payment.stripe_payment_id, "pi_none") is None
