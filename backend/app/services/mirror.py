"""Keyed reads and race-tolerant inserts for the local mirror.

Every mirror table has a UNIQUE remote identifier. The synchronous handlers
and the webhook reconciler can both try to create the row for the same
remote object; whichever insert loses hits the unique constraint inside a
savepoint and falls back to the winner's row.
"""

import logging
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from app.database import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


async def find_by(
    db: AsyncSession, model: type[ModelT], column: InstrumentedAttribute, value: Any
) -> ModelT | None:
    """Return the single row of ``model`` whose ``column`` equals ``value``."""
    result = await db.execute(select(model).where(column == value))
    return result.scalar_one_or_none()


async def get_or_create(
    db: AsyncSession,
    model: type[ModelT],
    column: InstrumentedAttribute,
    value: Any,
    defaults: dict[str, Any],
) -> tuple[ModelT, bool]:
    """Find the row keyed by ``column == value`` or insert it with ``defaults``.

    Returns ``(row, created)``.
    """
    existing = await find_by(db, model, column, value)
    if existing is not None:
        return existing, False

    row = model(**{column.key: value}, **defaults)
    try:
        async with db.begin_nested():
            db.add(row)
            await db.flush()
    except IntegrityError:
        existing = await find_by(db, model, column, value)
        if existing is None:
            raise
        logger.info(
            "Concurrent insert for %s %s lost the race; using existing row",
            model.__tablename__,
            value,
        )
        return existing, False
    return row, True
