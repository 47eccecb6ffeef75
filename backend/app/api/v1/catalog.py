"""Catalog API router — read-only pass-through of Stripe prices and products."""

from fastapi import APIRouter, Depends, Query

from app.api.deps import StripeGateway, get_current_active_user, get_stripe_gateway, to_plain
from app.models.user import User
from app.schemas.billing import RemoteListResponse, RemoteObjectResponse

router = APIRouter(prefix="/api/v1", tags=["catalog"])


def _remote_object(obj) -> RemoteObjectResponse:
    data = to_plain(obj)
    return RemoteObjectResponse(id=data["id"], object=data.get("object"), data=data)


@router.get("/prices", response_model=RemoteListResponse, summary="List active prices")
async def list_prices(
    limit: int = Query(100, ge=1, le=100),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteListResponse:
    prices = await gateway.list_prices(limit=limit)
    return RemoteListResponse(data=[to_plain(p) for p in prices])


@router.get("/prices/{price_id}", response_model=RemoteObjectResponse, summary="Get a price")
async def get_price(
    price_id: str,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteObjectResponse:
    return _remote_object(await gateway.retrieve_price(price_id))


@router.get("/products", response_model=RemoteListResponse, summary="List active products")
async def list_products(
    limit: int = Query(100, ge=1, le=100),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteListResponse:
    products = await gateway.list_products(limit=limit)
    return RemoteListResponse(data=[to_plain(p) for p in products])


@router.get("/products/{product_id}", response_model=RemoteObjectResponse, summary="Get a product")
async def get_product(
    product_id: str,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_active_user),
) -> RemoteObjectResponse:
    return _remote_object(await gateway.retrieve_product(product_id))
