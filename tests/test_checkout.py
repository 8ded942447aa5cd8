"""Tests for pricing and the checkout flow."""

import threading
from decimal import Decimal

import pytest

from storefront_server.checkout import CheckoutFlow, CheckoutStep, calculate_breakdown
from storefront_server.config import DEFAULT_COUPONS, DEFAULT_SHIPPING_OPTIONS
from storefront_server.models import (
    Coupon,
    CouponKind,
    OrderStatus,
    PaymentOutcome,
    PaymentResult,
    ShippingAddress,
    UserProfile,
)
from storefront_server.payments import compute_signature

from .conftest import GATEWAY_SECRET

VALID_ADDRESS = ShippingAddress(
    full_name="Sam Shopper",
    email="shopper@example.com",
    phone="9876543210",
    address="12 MG Road",
    city="Bengaluru",
    state="Karnataka",
    pincode="560001",
)


@pytest.fixture
def flow(cart):
    return CheckoutFlow(
        cart,
        shipping_options=list(DEFAULT_SHIPPING_OPTIONS),
        coupons=dict(DEFAULT_COUPONS),
        tax_rate=Decimal("0.05"),
        free_shipping_threshold=Decimal("500.00"),
    )


@pytest.fixture
def paying_flow(flow, cart, products):
    cart.add_to_cart(products["p1"], 3)
    assert flow.submit_address(VALID_ADDRESS).success
    return flow


class TestCalculateBreakdown:
    """Pricing rounds every amount to cents, half away from zero."""

    def test_free_shipping_above_threshold(self):
        breakdown = calculate_breakdown(
            subtotal=Decimal("120.00"),
            shipping_fee=Decimal("40.00"),
            tax_rate=Decimal("0.07"),
            free_shipping_threshold=Decimal("50.00"),
        )

        assert breakdown.shipping == Decimal("0.00")
        assert breakdown.tax == Decimal("8.40")
        assert breakdown.grand_total == Decimal("128.40")

    def test_percent_coupon_taxed_after_discount(self):
        breakdown = calculate_breakdown(
            subtotal=Decimal("100.00"),
            shipping_fee=Decimal("40.00"),
            tax_rate=Decimal("0.05"),
            free_shipping_threshold=Decimal("50.00"),
            coupon=DEFAULT_COUPONS["WELCOME10"],
        )

        assert breakdown.discount == Decimal("10.00")
        assert breakdown.tax == Decimal("4.50")
        assert breakdown.grand_total == Decimal("94.50")
        assert breakdown.coupon_code == "WELCOME10"

    def test_shipping_charged_below_threshold(self):
        breakdown = calculate_breakdown(
            subtotal=Decimal("30.00"),
            shipping_fee=Decimal("40.00"),
            tax_rate=Decimal("0.05"),
            free_shipping_threshold=Decimal("50.00"),
        )

        assert breakdown.shipping == Decimal("40.00")
        assert breakdown.tax == Decimal("1.50")
        assert breakdown.grand_total == Decimal("71.50")

    def test_tax_rounds_half_up(self):
        breakdown = calculate_breakdown(
            subtotal=Decimal("10.10"),
            shipping_fee=Decimal("0"),
            tax_rate=Decimal("0.05"),
            free_shipping_threshold=Decimal("500"),
        )

        assert breakdown.tax == Decimal("0.51")

    def test_flat_discount_capped_at_subtotal(self):
        breakdown = calculate_breakdown(
            subtotal=Decimal("60.00"),
            shipping_fee=Decimal("40.00"),
            tax_rate=Decimal("0.05"),
            free_shipping_threshold=Decimal("500.00"),
            coupon=DEFAULT_COUPONS["FLAT100"],
        )

        assert breakdown.discount == Decimal("60.00")
        assert breakdown.tax == Decimal("0.00")
        assert breakdown.grand_total == Decimal("40.00")

    def test_grand_total_identity(self):
        coupon = Coupon(code="ODD7", kind=CouponKind.PERCENT, value=Decimal("7"))
        breakdown = calculate_breakdown(
            subtotal=Decimal("333.33"),
            shipping_fee=Decimal("100.00"),
            tax_rate=Decimal("0.05"),
            free_shipping_threshold=Decimal("500.00"),
            coupon=coupon,
        )

        assert breakdown.grand_total == (
            breakdown.subtotal + breakdown.shipping + breakdown.tax - breakdown.discount
        )


class TestCheckoutOptions:
    def test_defaults_to_first_shipping_option(self, flow):
        assert flow.shipping.id == "standard"

    def test_select_express(self, flow, cart, products):
        cart.add_to_cart(products["p1"], 1)
        assert flow.select_shipping("express").success
        assert flow.breakdown().shipping == Decimal("100.00")

    def test_unknown_shipping_option(self, flow):
        result = flow.select_shipping("teleport")

        assert not result.success
        assert flow.shipping.id == "standard"

    def test_coupon_codes_match_case_insensitively(self, flow):
        assert flow.apply_coupon(" welcome10 ").success
        assert flow.coupon.code == "WELCOME10"

    def test_invalid_coupon(self, flow):
        result = flow.apply_coupon("FREESTUFF")

        assert not result.success
        assert result.message == "Invalid coupon code"
        assert flow.coupon is None

    def test_remove_coupon(self, flow):
        flow.apply_coupon("FLAT100")
        flow.remove_coupon()
        assert flow.breakdown().coupon_code is None

    def test_prefill_from_user(self, flow):
        flow.prefill(
            UserProfile(id="u1", email="a@b.c", user_metadata={"full_name": "Ada Lovelace"})
        )

        assert flow.address.email == "a@b.c"
        assert flow.address.full_name == "Ada Lovelace"


class TestCheckoutSteps:
    """The step machine only moves forward, except payment back to shipping."""

    def test_blank_fields_are_reported(self, flow, cart, products):
        cart.add_to_cart(products["p1"], 1)

        result = flow.submit_address(ShippingAddress(full_name="Sam", email="s@example.com"))

        assert not result.success
        assert flow.step == CheckoutStep.SHIPPING
        assert set(result.errors) == {"phone", "address", "city", "state", "pincode"}
        assert result.errors["pincode"] == "Pincode is required"

    def test_whitespace_counts_as_blank(self, flow, cart, products):
        cart.add_to_cart(products["p1"], 1)

        result = flow.submit_address(VALID_ADDRESS.model_copy(update={"city": "   "}))

        assert result.errors == {"city": "City is required"}

    def test_empty_cart_cannot_proceed(self, flow):
        result = flow.submit_address(VALID_ADDRESS)

        assert not result.success
        assert result.message == "Your cart is empty"
        assert flow.step == CheckoutStep.SHIPPING

    def test_back_from_payment(self, paying_flow):
        assert paying_flow.step == CheckoutStep.PAYMENT
        assert paying_flow.back().success
        assert paying_flow.step == CheckoutStep.SHIPPING
        assert not paying_flow.back().success

    def test_payment_requires_payment_step(self, flow, bridge, cart, products):
        cart.add_to_cart(products["p1"], 1)

        with pytest.raises(ValueError):
            flow.start_payment(bridge)

    def test_start_payment_creates_order_for_grand_total(self, paying_flow, bridge, fake_gateway):
        order = paying_flow.start_payment(bridge)

        assert order.amount == Decimal("71.50")
        assert order.amount_minor == 7150
        assert order.notes["email"] == "shopper@example.com"
        assert order.receipt.startswith("receipt_")
        assert fake_gateway.created[0]["amount"] == 7150

    def test_at_most_one_open_order(self, paying_flow, bridge, fake_gateway, cart):
        first = paying_flow.start_payment(bridge)
        again = paying_flow.start_payment(bridge)

        assert again.id == first.id
        assert len(fake_gateway.created) == 1

        cart.update_quantity("p1", 4)
        replacement = paying_flow.start_payment(bridge)

        assert replacement.id != first.id
        assert bridge.orders.get(first.id).status == OrderStatus.FAILED
        assert bridge.orders.get(replacement.id).status == OrderStatus.CREATED

    def test_unverified_payment_does_not_confirm(self, paying_flow, bridge, cart):
        order = paying_flow.start_payment(bridge)
        result = bridge.complete_payment(order.id, "pay_1", "bad-signature")

        step = paying_flow.confirm(result)

        assert not step.success
        assert paying_flow.step == CheckoutStep.PAYMENT
        assert not cart.is_empty()

    def test_payment_for_other_order_does_not_confirm(self, paying_flow, bridge):
        paying_flow.start_payment(bridge)
        result = PaymentResult(
            outcome=PaymentOutcome.SUCCEEDED, order_id="order_other", message="ok"
        )

        assert not paying_flow.confirm(result).success
        assert paying_flow.step == CheckoutStep.PAYMENT

    def test_confirmation_clears_cart_and_is_terminal(self, paying_flow, bridge, cart):
        order = paying_flow.start_payment(bridge)
        signature = compute_signature(order.id, "pay_1", GATEWAY_SECRET)
        result = bridge.complete_payment(order.id, "pay_1", signature)

        step = paying_flow.confirm(result)

        assert step.success
        assert paying_flow.step == CheckoutStep.CONFIRMATION
        assert cart.is_empty()
        assert paying_flow.breakdown().grand_total == Decimal("71.50")
        assert not paying_flow.back().success
        assert not paying_flow.submit_address(VALID_ADDRESS).success
        assert not paying_flow.apply_coupon("WELCOME10").success
        assert not paying_flow.confirm(result).success
        assert paying_flow.summary()["step"] == "confirmation"

    def test_concurrent_start_payment_creates_one_order(self, paying_flow, bridge, fake_gateway):
        """A double submit while the gateway is slow still yields a single open order."""
        fake_gateway.delay = 0.2
        orders = []

        def submit():
            orders.append(paying_flow.start_payment(bridge))

        threads = [threading.Thread(target=submit) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5)

        assert len(fake_gateway.created) == 1
        assert len(orders) == 2
        assert orders[0].id == orders[1].id

    def test_cart_changed_after_order_is_not_confirmed(self, paying_flow, bridge, cart, products):
        """Items added after the order was priced are not cleared as if they were paid for."""
        order = paying_flow.start_payment(bridge)
        cart.add_to_cart(products["p2"], 2)
        signature = compute_signature(order.id, "pay_1", GATEWAY_SECRET)
        result = bridge.complete_payment(order.id, "pay_1", signature)

        step = paying_flow.confirm(result)

        assert result.verified
        assert not step.success
        assert "amount" in step.errors
        assert paying_flow.step == CheckoutStep.PAYMENT
        assert paying_flow.final_breakdown is None
        assert cart.total_items == 5
