"""Checkout flow: address, payment and confirmation, with price calculation."""

import logging
import threading
import time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .cart import CartStore
from .models import (
    Coupon,
    CouponKind,
    OrderStatus,
    PaymentResult,
    PendingOrder,
    PriceBreakdown,
    ShippingAddress,
    ShippingOption,
    UserProfile,
)
from .payments import PaymentBridge

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

ADDRESS_FIELD_LABELS = {
    "full_name": "Full name",
    "email": "Email address",
    "phone": "Phone number",
    "address": "Address",
    "city": "City",
    "state": "State",
    "pincode": "Pincode",
}


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_breakdown(
    subtotal: Decimal,
    shipping_fee: Decimal,
    tax_rate: Decimal,
    free_shipping_threshold: Decimal,
    coupon: Optional[Coupon] = None,
) -> PriceBreakdown:
    """
    Price an order.

    Every derived amount is rounded to cents as it is computed. Tax applies
    to the subtotal after discount, and the discount never exceeds the
    subtotal.

    Args:
        subtotal: Sum of line totals
        shipping_fee: Fee of the selected shipping option
        tax_rate: Tax as a fraction (0.05 = 5%)
        free_shipping_threshold: Subtotal at which shipping becomes free
        coupon: Applied coupon, if any

    Returns:
        PriceBreakdown with subtotal, shipping, tax, discount and grand total
    """
    subtotal = round_money(subtotal)
    shipping = Decimal("0.00") if subtotal >= free_shipping_threshold else round_money(shipping_fee)

    discount = Decimal("0.00")
    if coupon is not None:
        if coupon.kind == CouponKind.PERCENT:
            discount = round_money(subtotal * coupon.value / 100)
        else:
            discount = round_money(coupon.value)
        discount = min(discount, subtotal)

    tax = round_money((subtotal - discount) * tax_rate)
    grand_total = round_money(subtotal + shipping + tax - discount)

    return PriceBreakdown(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        discount=discount,
        grand_total=grand_total,
        coupon_code=coupon.code if coupon else None,
    )


class CheckoutStep(str, Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


class StepResult(BaseModel):
    """Outcome of a checkout action. Failures carry field or form errors."""

    success: bool
    step: CheckoutStep
    message: str = ""
    errors: dict[str, str] = Field(default_factory=dict)


class CheckoutFlow:
    """
    Drives one checkout from shipping details to confirmation.

    Steps only move forward, except payment back to shipping. Confirmation
    is terminal. Each checkout keeps at most one open payment order.
    """

    def __init__(
        self,
        cart: CartStore,
        shipping_options: list[ShippingOption],
        coupons: dict[str, Coupon],
        tax_rate: Decimal,
        free_shipping_threshold: Decimal,
        currency: str = "INR",
    ) -> None:
        if not shipping_options:
            raise ValueError("At least one shipping option is required")
        self.cart = cart
        self.shipping_options = {option.id: option for option in shipping_options}
        self.coupons = coupons
        self.tax_rate = tax_rate
        self.free_shipping_threshold = free_shipping_threshold
        self.currency = currency

        self.step = CheckoutStep.SHIPPING
        self.address = ShippingAddress()
        self.shipping = shipping_options[0]
        self.coupon: Optional[Coupon] = None
        self.order: Optional[PendingOrder] = None
        self.payment: Optional[PaymentResult] = None
        self.final_breakdown: Optional[PriceBreakdown] = None
        self._lock = threading.RLock()

    # ── Pricing ─────────────────────────────────────

    def breakdown(self) -> PriceBreakdown:
        if self.final_breakdown is not None:
            return self.final_breakdown
        return calculate_breakdown(
            subtotal=self.cart.total_price,
            shipping_fee=self.shipping.fee,
            tax_rate=self.tax_rate,
            free_shipping_threshold=self.free_shipping_threshold,
            coupon=self.coupon,
        )

    def select_shipping(self, option_id: str) -> StepResult:
        option = self.shipping_options.get(option_id)
        if option is None:
            return StepResult(
                success=False,
                step=self.step,
                message="Unknown shipping option",
                errors={"shipping": f"Unknown shipping option: {option_id}"},
            )
        if self.step == CheckoutStep.CONFIRMATION:
            return StepResult(success=False, step=self.step, message="Checkout is already complete")
        self.shipping = option
        return StepResult(success=True, step=self.step, message=f"Shipping set to {option.name}")

    def apply_coupon(self, code: str) -> StepResult:
        """Apply a coupon by exact (case-insensitive) code match."""
        if self.step == CheckoutStep.CONFIRMATION:
            return StepResult(success=False, step=self.step, message="Checkout is already complete")
        coupon = self.coupons.get(code.strip().upper())
        if coupon is None:
            return StepResult(
                success=False,
                step=self.step,
                message="Invalid coupon code",
                errors={"coupon": "Invalid coupon code"},
            )
        self.coupon = coupon
        return StepResult(success=True, step=self.step, message="Coupon applied successfully!")

    def remove_coupon(self) -> StepResult:
        if self.step == CheckoutStep.CONFIRMATION:
            return StepResult(success=False, step=self.step, message="Checkout is already complete")
        self.coupon = None
        return StepResult(success=True, step=self.step, message="Coupon removed")

    # ── Steps ───────────────────────────────────────

    def prefill(self, user: Optional[UserProfile]) -> None:
        """Fill empty email and name fields from the signed-in user."""
        if user is None:
            return
        updates = {}
        if not self.address.email and user.email:
            updates["email"] = user.email
        if not self.address.full_name and user.full_name:
            updates["full_name"] = user.full_name
        if updates:
            self.address = self.address.model_copy(update=updates)

    @staticmethod
    def validate_address(address: ShippingAddress) -> dict[str, str]:
        """Return an error message per blank required field."""
        errors = {}
        for field, label in ADDRESS_FIELD_LABELS.items():
            if not getattr(address, field).strip():
                errors[field] = f"{label} is required"
        return errors

    def submit_address(self, address: ShippingAddress) -> StepResult:
        """Store the shipping address and move to payment if every field is filled."""
        if self.step == CheckoutStep.CONFIRMATION:
            return StepResult(success=False, step=self.step, message="Checkout is already complete")

        self.address = address
        errors = self.validate_address(address)
        if errors:
            return StepResult(
                success=False,
                step=self.step,
                message="Please fill all required fields",
                errors=errors,
            )
        if self.cart.is_empty():
            return StepResult(success=False, step=self.step, message="Your cart is empty")

        self.step = CheckoutStep.PAYMENT
        return StepResult(success=True, step=self.step)

    def back(self) -> StepResult:
        """Return from payment to shipping."""
        if self.step != CheckoutStep.PAYMENT:
            return StepResult(
                success=False, step=self.step, message=f"Cannot go back from {self.step.value}"
            )
        self.step = CheckoutStep.SHIPPING
        return StepResult(success=True, step=self.step)

    def start_payment(self, bridge: PaymentBridge) -> PendingOrder:
        """
        Get the open payment order for this checkout, creating it if needed.

        An open order whose amount no longer matches the grand total is
        marked failed and replaced, so at most one order is open at a time.

        Concurrent calls are serialized, so a double submit reuses one order.

        Raises:
            ValueError: Not in the payment step, or the cart is empty
            PaymentGatewayError: The processor could not create the order
        """
        with self._lock:
            if self.step != CheckoutStep.PAYMENT:
                raise ValueError(f"Payment cannot start from the {self.step.value} step")
            if self.cart.is_empty():
                raise ValueError("Your cart is empty")

            total = self.breakdown().grand_total
            if self.order is not None:
                current = bridge.orders.get(self.order.id) or self.order
                if current.status in (OrderStatus.CREATED, OrderStatus.PENDING):
                    if current.amount == total:
                        self.order = current
                        return current
                    bridge.fail_payment(current.id, "superseded by a new order")

            self.order = bridge.create_order(
                amount=total,
                currency=self.currency,
                receipt=f"receipt_{int(time.time() * 1000)}",
                notes={
                    "name": self.address.full_name,
                    "email": self.address.email,
                    "phone": self.address.phone,
                },
            )
            return self.order

    def confirm(self, result: PaymentResult) -> StepResult:
        """
        Move to confirmation on a verified payment of this checkout's order and clear the cart.

        The paid amount must equal the current grand total. If the cart or
        pricing changed after the order was created, confirmation is refused
        and the cart is left as it is.
        """
        with self._lock:
            if self.step != CheckoutStep.PAYMENT:
                return StepResult(
                    success=False, step=self.step, message=f"Cannot confirm from {self.step.value}"
                )
            if self.order is None or result.order_id != self.order.id:
                return StepResult(
                    success=False, step=self.step, message="Payment does not belong to this checkout"
                )
            if not result.verified:
                return StepResult(success=False, step=self.step, message=result.message)

            breakdown = self.breakdown()
            if breakdown.grand_total != self.order.amount:
                logger.warning(
                    f"Order {result.order_id} paid {self.order.amount} but checkout total is "
                    f"{breakdown.grand_total}; not confirming"
                )
                return StepResult(
                    success=False,
                    step=self.step,
                    message="Your cart changed after payment started. Please contact support.",
                    errors={"amount": f"Paid {self.order.amount}, cart total {breakdown.grand_total}"},
                )

            self.payment = result
            self.final_breakdown = breakdown
            self.step = CheckoutStep.CONFIRMATION
            self.cart.clear_cart()
        logger.info(f"Checkout confirmed for order {result.order_id}")
        return StepResult(success=True, step=self.step, message="Order confirmed")

    def summary(self) -> dict:
        """State of the checkout for API responses."""
        return {
            "step": self.step.value,
            "address": self.address.model_dump(),
            "shipping": self.shipping.model_dump(),
            "shipping_options": [option.model_dump() for option in self.shipping_options.values()],
            "breakdown": self.breakdown().model_dump(),
            "order": self.order.model_dump() if self.order else None,
        }
