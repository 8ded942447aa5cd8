"""Exceptions raised by the storefront services."""

from typing import Optional


class StorefrontError(Exception):
    """Base class for storefront errors."""


class SupabaseError(StorefrontError):
    """A call to the hosted backend failed or returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PaymentGatewayError(StorefrontError):
    """The payment processor could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class OrderNotFoundError(StorefrontError):
    """No local pending order exists for the given order id."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class OrderTransitionError(StorefrontError):
    """An order status change would move the order backward or out of a terminal state."""

    def __init__(self, order_id: str, current: str, requested: str) -> None:
        super().__init__(f"Order {order_id} cannot move from {current} to {requested}")
        self.order_id = order_id
        self.current = current
        self.requested = requested
