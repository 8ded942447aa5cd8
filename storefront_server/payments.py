"""Payment gateway integration: order creation and signature verification."""

import hashlib
import hmac
import logging
import threading
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Union

import httpx

from .errors import OrderNotFoundError, OrderTransitionError, PaymentGatewayError, SupabaseError
from .models import (
    OrderStatus,
    PaymentOutcome,
    PaymentResult,
    PaymentVerificationRecord,
    PendingOrder,
)
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

# Shown for every failed verification so callers cannot tell the causes apart
GENERIC_FAILURE_MESSAGE = "Payment verification failed. Please contact support."

ALLOWED_TRANSITIONS = {
    OrderStatus.CREATED: {OrderStatus.PENDING, OrderStatus.COMPLETED, OrderStatus.FAILED},
    OrderStatus.PENDING: {OrderStatus.COMPLETED, OrderStatus.FAILED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.FAILED: set(),
}


def to_minor_units(amount: Union[Decimal, float, int, str]) -> int:
    """Convert a major-unit amount to minor units, rounding half away from zero (199.995 -> 20000)."""
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of "order_id|payment_id" keyed with the gateway secret."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Constant-time check of a checkout callback signature. An empty secret never verifies."""
    if not secret:
        return False
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


class PaymentGatewayClient:
    """Client for the payment processor's orders API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize the gateway client.

        Args:
            key_id: Public key ID (also handed to the checkout widget)
            key_secret: Secret key; used for API auth and signature checks
            base_url: Orders API base URL
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.key_id = key_id
        self.key_secret = key_secret
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            auth=(key_id, key_secret),
            headers={"Content-Type": "application/json"},
        )

    def create_order(
        self, amount_minor: int, currency: str, receipt: str, notes: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Create an order with the processor.

        Args:
            amount_minor: Amount in minor units (paise, cents)
            currency: ISO currency code
            receipt: Merchant receipt reference
            notes: Free-form key/value notes

        Returns:
            Processor response with at least id, amount and currency

        Raises:
            PaymentGatewayError: Network failure, timeout or error response
        """
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
            "payment_capture": 1,
        }
        logger.info(f"Creating gateway order: amount={amount_minor} {currency}, receipt={receipt}")

        try:
            response = self.client.post("/orders", json=payload)
        except httpx.TimeoutException as e:
            raise PaymentGatewayError("Order creation timed out") from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Order creation failed: {e}") from e

        if response.status_code >= 400:
            raise PaymentGatewayError(
                f"Order creation rejected: {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PaymentGatewayError("Order creation returned invalid JSON") from e
        if not data.get("id"):
            raise PaymentGatewayError("Order creation returned no order id")
        return data

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()


class OrderBook:
    """
    Local registry of pending orders.

    Status changes only move forward; completed and failed are terminal.
    Changes are mirrored to the hosted orders table when a backend client
    is given, but a mirror failure never blocks the local transition.
    """

    def __init__(self, supabase: Optional[SupabaseClient] = None) -> None:
        self.supabase = supabase
        self._orders: dict[str, PendingOrder] = {}
        self._lock = threading.Lock()

    def add(self, order: PendingOrder) -> PendingOrder:
        with self._lock:
            self._orders[order.id] = order
        self._mirror_insert(order)
        return order

    def get(self, order_id: str) -> Optional[PendingOrder]:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy() if order else None

    def transition(self, order_id: str, status: OrderStatus, **changes: Any) -> PendingOrder:
        """
        Move an order to a new status.

        Raises:
            OrderNotFoundError: No such order
            OrderTransitionError: The move is backward or leaves a terminal status
        """
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if status not in ALLOWED_TRANSITIONS[order.status]:
                raise OrderTransitionError(order_id, order.status.value, status.value)
            order = order.model_copy(
                update={"status": status, "updated_at": datetime.now(timezone.utc), **changes}
            )
            self._orders[order_id] = order

        logger.info(f"Order {order_id} -> {status.value}")
        self._mirror_update(order)
        return order.model_copy()

    def _mirror_insert(self, order: PendingOrder) -> None:
        if self.supabase is None:
            return
        try:
            self.supabase.insert(
                "orders",
                {
                    "order_id": order.id,
                    "amount": str(order.amount),
                    "currency": order.currency,
                    "receipt": order.receipt,
                    "status": order.status.value,
                    "payment_status": "pending",
                },
            )
        except SupabaseError as e:
            logger.error(f"Error saving order {order.id} to database: {e}")

    def _mirror_update(self, order: PendingOrder) -> None:
        if self.supabase is None:
            return
        try:
            self.supabase.update(
                "orders",
                {"order_id": f"eq.{order.id}"},
                {
                    "status": order.status.value,
                    "payment_status": order.status.value,
                    "payment_id": order.payment_id,
                    "updated_at": order.updated_at.isoformat(),
                },
            )
        except SupabaseError as e:
            logger.error(f"Error updating order {order.id} status: {e}")


class PaymentBridge:
    """Creates remote orders, prepares the checkout widget and authenticates its callback."""

    def __init__(
        self,
        gateway: PaymentGatewayClient,
        orders: OrderBook,
        store_name: str = "MyStore",
    ) -> None:
        self.gateway = gateway
        self.orders = orders
        self.store_name = store_name

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[dict[str, Any]] = None,
    ) -> PendingOrder:
        """
        Create a remote order and register it locally in status created.

        Raises:
            PaymentGatewayError: The processor call failed; nothing is registered
        """
        amount = Decimal(str(amount))
        response = self.gateway.create_order(to_minor_units(amount), currency, receipt, notes)
        now = datetime.now(timezone.utc)
        order = PendingOrder(
            id=str(response["id"]),
            amount=amount,
            amount_minor=int(response.get("amount", to_minor_units(amount))),
            currency=response.get("currency", currency),
            receipt=receipt,
            notes=notes or {},
            status=OrderStatus.CREATED,
            created_at=now,
            updated_at=now,
        )
        logger.info(f"Order created successfully: {order.id}")
        return self.orders.add(order)

    def open_checkout(self, order_id: str, prefill: Optional[dict[str, str]] = None) -> dict[str, Any]:
        """
        Build the hosted widget options for an order and mark it pending.

        Raises:
            OrderNotFoundError: No such order
            OrderTransitionError: The order is already completed or failed
        """
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status == OrderStatus.CREATED:
            order = self.orders.transition(order_id, OrderStatus.PENDING)
        elif order.status != OrderStatus.PENDING:
            raise OrderTransitionError(order_id, order.status.value, OrderStatus.PENDING.value)

        return {
            "key": self.gateway.key_id,
            "amount": order.amount_minor,
            "currency": order.currency,
            "name": self.store_name,
            "description": f"Purchase from {self.store_name}",
            "order_id": order.id,
            "prefill": prefill or {},
            "notes": order.notes,
        }

    def verify(self, order_id: str, payment_id: str, signature: str) -> PaymentVerificationRecord:
        """Check a callback signature without touching order state."""
        computed = compute_signature(order_id, payment_id, self.gateway.key_secret)
        return PaymentVerificationRecord(
            order_id=order_id,
            payment_id=payment_id,
            signature=signature,
            computed_signature=computed,
            verified=verify_signature(order_id, payment_id, signature, self.gateway.key_secret),
        )

    def _failure(self, order_id: str, payment_id: Optional[str] = None) -> PaymentResult:
        return PaymentResult(
            outcome=PaymentOutcome.FAILED,
            order_id=order_id,
            payment_id=payment_id,
            message=GENERIC_FAILURE_MESSAGE,
        )

    def complete_payment(self, order_id: str, payment_id: str, signature: str) -> PaymentResult:
        """
        Handle the widget's success callback.

        The order is marked completed only when it exists locally and the
        signature matches. Every other case fails closed with the same
        generic message and leaves the order untouched.
        """
        if not order_id or not payment_id or not signature:
            logger.warning("Payment verification called with missing parameters")
            return self._failure(order_id, payment_id)

        order = self.orders.get(order_id)
        if order is None:
            logger.warning(f"Verification for unknown order {order_id} (payment {payment_id})")
            return self._failure(order_id, payment_id)

        record = self.verify(order_id, payment_id, signature)
        if not record.verified:
            logger.warning(f"Signature mismatch for order {order_id} (payment {payment_id})")
            return self._failure(order_id, payment_id)

        if order.status == OrderStatus.COMPLETED:
            if order.payment_id == payment_id:
                return PaymentResult(
                    outcome=PaymentOutcome.SUCCEEDED,
                    order_id=order_id,
                    payment_id=payment_id,
                    message="Payment successful!",
                )
            logger.warning(f"Order {order_id} already paid by {order.payment_id}, got {payment_id}")
            return self._failure(order_id, payment_id)

        try:
            self.orders.transition(order_id, OrderStatus.COMPLETED, payment_id=payment_id)
        except OrderTransitionError as e:
            logger.warning(f"Verified payment for order in terminal state: {e}")
            return self._failure(order_id, payment_id)

        logger.info(f"✓ Payment verified for order {order_id}")
        return PaymentResult(
            outcome=PaymentOutcome.SUCCEEDED,
            order_id=order_id,
            payment_id=payment_id,
            message="Payment successful!",
        )

    def cancel_payment(self, order_id: str) -> PaymentResult:
        """Record that the user dismissed the widget. The order status is not changed."""
        logger.info(f"Payment cancelled for order {order_id}")
        return PaymentResult(
            outcome=PaymentOutcome.CANCELLED, order_id=order_id, message="Payment cancelled"
        )

    def fail_payment(self, order_id: str, reason: str) -> PaymentResult:
        """Record a failure reported by the gateway, marking a non-terminal order failed."""
        order = self.orders.get(order_id)
        if order is not None and order.status in (OrderStatus.CREATED, OrderStatus.PENDING):
            self.orders.transition(order_id, OrderStatus.FAILED, failure_reason=reason)
        logger.warning(f"Payment failed for order {order_id}: {reason}")
        return PaymentResult(
            outcome=PaymentOutcome.FAILED,
            order_id=order_id,
            message="Payment failed. Please try again.",
        )

    def close(self) -> None:
        self.gateway.close()
