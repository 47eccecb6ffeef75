"""Result type for best-effort secondary fetches."""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

import stripe

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BestEffort(Generic[T]):
    """Outcome of a non-critical remote fetch: a value, or the reason it is unavailable."""

    value: T | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.error is None

    @property
    def state(self) -> str:
        return "ok" if self.available else "unavailable"

    @classmethod
    def ok(cls, value: T) -> "BestEffort[T]":
        return cls(value=value)

    @classmethod
    def unavailable(cls, error: str) -> "BestEffort[T]":
        return cls(error=error)


async def best_effort(call: Awaitable[T], description: str) -> BestEffort[T]:
    """Await a remote call; a Stripe failure is logged and returned as ``unavailable``."""
    try:
        return BestEffort.ok(await call)
    except stripe.StripeError as e:
        logger.warning("Best-effort fetch failed (%s): %s", description, e)
        return BestEffort.unavailable(e.user_message or str(e))
