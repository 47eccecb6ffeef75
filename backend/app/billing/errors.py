"""Billing error taxonomy.

Every error carries the HTTP status it maps to and a message that is safe
to show the caller. The API layer turns them into ``{"error": message}``.
"""

import stripe


class BillingError(Exception):
    """Base class for errors scoped to a single billing request."""

    status_code: int = 400
    default_message: str = "Billing request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BillingValidationError(BillingError):
    """A business rule rejected the request before any remote call."""

    status_code = 400
    default_message = "Invalid billing request"


class ForbiddenError(BillingError):
    """The resource belongs to a different customer.

    The message never reveals whether the resource exists.
    """

    status_code = 403
    default_message = "You are not allowed to access this resource"


class NotFoundError(BillingError):
    """The resource is not tracked for the caller."""

    status_code = 404
    default_message = "Resource not found"


class RemoteBillingError(BillingError):
    """Stripe rejected or failed a call. Not retried."""

    status_code = 400
    default_message = "Payment processor request failed"

    @classmethod
    def from_stripe(cls, exc: stripe.StripeError) -> "RemoteBillingError":
        """Relay the processor's own message verbatim."""
        return cls(exc.user_message or str(exc) or None)
