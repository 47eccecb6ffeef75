"""Exception handlers — every error response carries an ``error`` field."""

import logging
from collections import defaultdict

import stripe
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.billing.errors import BillingError, RemoteBillingError

logger = logging.getLogger(__name__)


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Domain errors map to their own status with the user-facing message."""
    logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def stripe_error_handler(request: Request, exc: stripe.StripeError) -> JSONResponse:
    """Relay a processor failure verbatim as a client error. No retry is attempted."""
    logger.warning("Stripe error on %s %s: %s", request.method, request.url.path, exc)
    return await billing_error_handler(request, RemoteBillingError.from_stripe(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report input validation failures as a per-field list of messages."""
    errors: dict[str, list[str]] = defaultdict(list)
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(loc) or "body"].append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Validation failed", "errors": dict(errors)},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillingError, billing_error_handler)
    app.add_exception_handler(stripe.StripeError, stripe_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
