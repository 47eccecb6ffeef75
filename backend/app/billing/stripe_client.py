"""Async Stripe API gateway.

A ``StripeGateway`` is constructed explicitly with its API key and webhook
secret and handed to the code that needs it, instead of configuring the
``stripe`` module globally. Routes obtain one through ``get_stripe_gateway``.
"""

import logging
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from app.config import settings

logger = logging.getLogger(__name__)


class StripeGateway:
    """Thin async wrapper over the Stripe resources this service uses."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        webhook_tolerance: int = 300,
        client: StripeClient | None = None,
    ) -> None:
        self._client = client or StripeClient(api_key, http_client=stripe.HTTPXClient())
        self._webhook_secret = webhook_secret
        self._webhook_tolerance = webhook_tolerance

    # -- Customers ---------------------------------------------------------

    async def create_customer(self, email: str, name: str, user_id: str) -> stripe.Customer:
        """Create a Stripe customer linked back to a local user."""
        logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
        customer = await self._client.v1.customers.create_async(
            params={
                "email": email,
                "name": name,
                "metadata": {"app_user_id": user_id},
            }
        )
        logger.info("Created Stripe customer %s for user %s", customer["id"], user_id)
        return customer

    async def retrieve_customer(self, customer_id: str) -> stripe.Customer:
        return await self._client.v1.customers.retrieve_async(customer_id)

    async def update_customer(self, customer_id: str, params: dict[str, Any]) -> stripe.Customer:
        logger.info("Updating Stripe customer %s (%s)", customer_id, sorted(params))
        return await self._client.v1.customers.update_async(customer_id, params=params)

    async def set_default_payment_method(
        self, customer_id: str, payment_method_id: str
    ) -> stripe.Customer:
        """Point the customer's invoice settings at a default payment method."""
        return await self.update_customer(
            customer_id,
            {"invoice_settings": {"default_payment_method": payment_method_id}},
        )

    # -- Payment methods ---------------------------------------------------

    async def create_payment_method(self, params: dict[str, Any]) -> stripe.PaymentMethod:
        return await self._client.v1.payment_methods.create_async(params=params)

    async def retrieve_payment_method(self, payment_method_id: str) -> stripe.PaymentMethod:
        return await self._client.v1.payment_methods.retrieve_async(payment_method_id)

    async def attach_payment_method(
        self, payment_method_id: str, customer_id: str
    ) -> stripe.PaymentMethod:
        logger.info("Attaching payment method %s to customer %s", payment_method_id, customer_id)
        return await self._client.v1.payment_methods.attach_async(
            payment_method_id, params={"customer": customer_id}
        )

    async def detach_payment_method(self, payment_method_id: str) -> stripe.PaymentMethod:
        logger.info("Detaching payment method %s", payment_method_id)
        return await self._client.v1.payment_methods.detach_async(payment_method_id)

    async def list_payment_methods(
        self, customer_id: str, method_type: str = "card"
    ) -> list[stripe.PaymentMethod]:
        result = await self._client.v1.payment_methods.list_async(
            params={"customer": customer_id, "type": method_type}
        )
        return list(result["data"])

    # -- Payment intents ---------------------------------------------------

    async def create_payment_intent(self, params: dict[str, Any]) -> stripe.PaymentIntent:
        logger.info(
            "Creating payment intent for customer %s: %s %s",
            params.get("customer"),
            params.get("amount"),
            params.get("currency"),
        )
        return await self._client.v1.payment_intents.create_async(params=params)

    async def retrieve_payment_intent(
        self, payment_intent_id: str, expand: list[str] | None = None
    ) -> stripe.PaymentIntent:
        params = {"expand": expand} if expand else None
        return await self._client.v1.payment_intents.retrieve_async(payment_intent_id, params=params)

    async def update_payment_intent(
        self, payment_intent_id: str, params: dict[str, Any]
    ) -> stripe.PaymentIntent:
        return await self._client.v1.payment_intents.update_async(payment_intent_id, params=params)

    async def confirm_payment_intent(
        self, payment_intent_id: str, params: dict[str, Any]
    ) -> stripe.PaymentIntent:
        logger.info("Confirming payment intent %s", payment_intent_id)
        return await self._client.v1.payment_intents.confirm_async(payment_intent_id, params=params)

    # -- Setup intents -----------------------------------------------------

    async def create_setup_intent(self, params: dict[str, Any]) -> stripe.SetupIntent:
        return await self._client.v1.setup_intents.create_async(params=params)

    async def retrieve_setup_intent(self, setup_intent_id: str) -> stripe.SetupIntent:
        return await self._client.v1.setup_intents.retrieve_async(setup_intent_id)

    async def confirm_setup_intent(
        self, setup_intent_id: str, params: dict[str, Any]
    ) -> stripe.SetupIntent:
        logger.info("Confirming setup intent %s", setup_intent_id)
        return await self._client.v1.setup_intents.confirm_async(setup_intent_id, params=params)

    # -- Subscriptions -----------------------------------------------------

    async def create_subscription(self, params: dict[str, Any]) -> stripe.Subscription:
        logger.info("Creating subscription for customer %s", params.get("customer"))
        return await self._client.v1.subscriptions.create_async(params=params)

    async def retrieve_subscription(self, subscription_id: str) -> stripe.Subscription:
        return await self._client.v1.subscriptions.retrieve_async(subscription_id)

    async def update_subscription(
        self, subscription_id: str, params: dict[str, Any]
    ) -> stripe.Subscription:
        logger.info("Updating subscription %s (%s)", subscription_id, sorted(params))
        return await self._client.v1.subscriptions.update_async(subscription_id, params=params)

    async def cancel_subscription(self, subscription_id: str) -> stripe.Subscription:
        """Cancel immediately without proration. Period-end cancellation goes through ``update_subscription``."""
        logger.info("Cancelling subscription %s immediately", subscription_id)
        return await self._client.v1.subscriptions.cancel_async(
            subscription_id, params={"prorate": False}
        )

    # -- Invoices, refunds, catalog ----------------------------------------

    async def retrieve_invoice(
        self, invoice_id: str, expand: list[str] | None = None
    ) -> stripe.Invoice:
        params = {"expand": expand} if expand else None
        return await self._client.v1.invoices.retrieve_async(invoice_id, params=params)

    async def pay_invoice(self, invoice_id: str) -> stripe.Invoice:
        logger.info("Paying invoice %s", invoice_id)
        return await self._client.v1.invoices.pay_async(invoice_id)

    async def create_refund(self, params: dict[str, Any]) -> stripe.Refund:
        logger.info("Creating refund for payment intent %s", params.get("payment_intent"))
        return await self._client.v1.refunds.create_async(params=params)

    async def list_prices(self, limit: int = 100) -> list[stripe.Price]:
        result = await self._client.v1.prices.list_async(
            params={"active": True, "limit": limit, "expand": ["data.product"]}
        )
        return list(result["data"])

    async def retrieve_price(self, price_id: str) -> stripe.Price:
        return await self._client.v1.prices.retrieve_async(price_id, params={"expand": ["product"]})

    async def list_products(self, limit: int = 100) -> list[stripe.Product]:
        result = await self._client.v1.products.list_async(params={"active": True, "limit": limit})
        return list(result["data"])

    async def retrieve_product(self, product_id: str) -> stripe.Product:
        return await self._client.v1.products.retrieve_async(product_id)

    # -- Webhooks ----------------------------------------------------------

    def construct_event(self, payload: bytes, sig_header: str) -> stripe.Event:
        """Verify the signature and build the event (synchronous).

        Raises:
            ValueError: The payload is not valid JSON.
            stripe.SignatureVerificationError: The signature or timestamp is invalid.
        """
        return self._client.construct_event(
            payload,
            sig_header,
            self._webhook_secret,
            tolerance=self._webhook_tolerance,
        )


@lru_cache
def get_stripe_gateway() -> StripeGateway:
    """FastAPI dependency returning the configured gateway."""
    return StripeGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        webhook_tolerance=settings.stripe_webhook_tolerance,
    )
