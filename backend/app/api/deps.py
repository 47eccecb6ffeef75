"""Shared API dependencies — single import point for all routers.

Re-exports the database session, authentication, and Stripe gateway
dependencies so that router modules can import everything they need from
one place::

    from app.api.deps import get_current_active_user, get_db, get_stripe_gateway
"""

from typing import Any

from app.auth.dependencies import get_current_active_user, get_current_user
from app.billing.stripe_client import StripeGateway, get_stripe_gateway
from app.database import get_db


def to_plain(stripe_object: Any) -> dict[str, Any]:
    """Turn a Stripe object (or mapping) into a JSON-ready dict."""
    if hasattr(stripe_object, "to_dict"):
        return stripe_object.to_dict()
    return dict(stripe_object)


__all__ = [
    "StripeGateway",
    "get_current_active_user",
    "get_current_user",
    "get_db",
    "get_stripe_gateway",
    "to_plain",
]
