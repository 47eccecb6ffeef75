"""Unit tests for reading Stripe objects and converting amounts and timestamps."""

from datetime import datetime
from decimal import Decimal

from app.billing.stripe_fields import (
    card_details,
    field,
    from_minor_units,
    invoice_client_secret,
    invoice_payment_intent,
    invoice_period_end,
    invoice_subscription_id,
    object_id,
    subscription_period,
    subscription_price_id,
    to_minor_units,
    ts_to_naive,
)
from factories import PERIOD_END, PERIOD_START, make_card, make_invoice, make_subscription


class TestField:
    def test_missing_and_null_fall_back_to_default(self):
        assert field({"a": None}, "a", "x") == "x"
        assert field({}, "a", "x") == "x"
        assert field(None, "a", "x") == "x"

    def test_present_value(self):
        assert field({"a": 0}, "a", 5) == 0

    def test_object_id_accepts_id_or_object(self):
        assert object_id("cus_1") == "cus_1"
        assert object_id({"id": "cus_1"}) == "cus_1"
        assert object_id(None) is None


class TestAmounts:
    def test_to_minor_units(self):
        assert to_minor_units(Decimal("25.00")) == 2500
        assert to_minor_units(Decimal("0.50")) == 50

    def test_to_minor_units_rounds_half_up(self):
        assert to_minor_units(Decimal("10.005")) == 1001

    def test_from_minor_units(self):
        assert from_minor_units(1500) == Decimal("15.00")
        assert from_minor_units(None) == Decimal("0.00")


class TestTimestamps:
    def test_ts_to_naive(self):
        result = ts_to_naive(PERIOD_START)
        assert isinstance(result, datetime)
        assert result.tzinfo is None
        assert result == datetime(2023, 11, 14, 22, 13, 20)

    def test_ts_to_naive_none(self):
        assert ts_to_naive(None) is None


class TestSubscriptionFields:
    def test_item_level_period(self):
        start, end = subscription_period(make_subscription(item_level_period=True))
        assert start == ts_to_naive(PERIOD_START)
        assert end == ts_to_naive(PERIOD_END)

    def test_subscription_level_period(self):
        start, end = subscription_period(make_subscription(item_level_period=False))
        assert start == ts_to_naive(PERIOD_START)
        assert end == ts_to_naive(PERIOD_END)

    def test_price_id(self):
        assert subscription_price_id(make_subscription(price_id="price_pro")) == "price_pro"
        assert subscription_price_id({"id": "sub_1", "items": {"data": []}}) is None


class TestInvoiceFields:
    def test_legacy_shape(self):
        invoice = make_invoice(subscription="sub_1", payment_intent="pi_1", legacy_fields=True)
        assert invoice_subscription_id(invoice) == "sub_1"
        assert invoice_payment_intent(invoice) == "pi_1"

    def test_nested_shape(self):
        invoice = make_invoice(subscription="sub_2", payment_intent="pi_2", legacy_fields=False)
        assert invoice_subscription_id(invoice) == "sub_2"
        assert invoice_payment_intent(invoice) == "pi_2"

    def test_one_time_invoice(self):
        invoice = make_invoice(subscription=None, payment_intent=None)
        assert invoice_subscription_id(invoice) is None
        assert invoice_payment_intent(invoice) is None

    def test_client_secret_prefers_expanded_intent(self):
        invoice = {"confirmation_secret": {"client_secret": "from_invoice"}}
        assert invoice_client_secret(invoice, {"id": "pi_1", "client_secret": "from_intent"}) == "from_intent"
        assert invoice_client_secret(invoice, "pi_1") == "from_invoice"
        assert invoice_client_secret(None) is None

    def test_period_end_prefers_line(self):
        assert invoice_period_end(make_invoice()) == ts_to_naive(PERIOD_END)

    def test_period_end_falls_back_to_invoice(self):
        invoice = make_invoice(line_period_end=None)
        assert invoice_period_end(invoice) == ts_to_naive(PERIOD_START)


class TestCardDetails:
    def test_card(self):
        assert card_details(make_card(last4="1881", brand="mastercard")) == ("1881", "mastercard")

    def test_non_card(self):
        assert card_details({"id": "pm_1", "type": "sepa_debit"}) == (None, None)
