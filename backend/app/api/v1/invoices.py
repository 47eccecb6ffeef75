"""Invoices API router — view and pay the caller's own invoices."""

from fastapi import APIRouter, Depends

from app.api.deps import StripeGateway, get_current_active_user, get_stripe_gateway, to_plain
from app.billing.errors import ForbiddenError
from app.billing.stripe_fields import field, object_id
from app.models.user import User
from app.schemas.billing import RemoteObjectResponse

router = APIRouter(prefix="/api/v1/invoices", tags=["invoices"])


async def _owned_invoice(gateway: StripeGateway, user: User, invoice_id: str):
    invoice = await gateway.retrieve_invoice(invoice_id)
    owner = object_id(field(invoice, "customer"))
    if owner is None or owner != user.stripe_customer_id:
        raise ForbiddenError()
    return invoice


def _invoice_object(invoice) -> RemoteObjectResponse:
    return RemoteObjectResponse(id=invoice["id"], object="invoice", data=to_plain(invoice))


@router.get("/{invoice_id}", response_model=RemoteObjectResponse, summary="Get an invoice")
async def get_invoice(
    invoice_id: str,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteObjectResponse:
    return _invoice_object(await _owned_invoice(gateway, current_user, invoice_id))


@router.post("/{invoice_id}/pay", response_model=RemoteObjectResponse, summary="Pay an open invoice")
async def pay_invoice(
    invoice_id: str,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteObjectResponse:
    """Attempt payment of the invoice now.

    The local subscription is updated when the resulting ``invoice.paid``
    or ``invoice.payment_failed`` event arrives.
    """
    await _owned_invoice(gateway, current_user, invoice_id)
    return _invoice_object(await gateway.pay_invoice(invoice_id))
