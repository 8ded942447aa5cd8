"""Data models for storefront entities."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Category(BaseModel):
    """Represents a product category."""

    id: int = Field(description="Category ID")
    name: str = Field(description="Category name")
    image_url: Optional[str] = Field(None, description="Category image URL")


class Product(BaseModel):
    """Represents a product from the catalog."""

    id: str = Field(description="Product ID")
    name: str = Field(description="Product name")
    description: str = Field(default="", description="Product description")
    price: Decimal = Field(ge=0, description="Unit price")
    stock_quantity: int = Field(default=0, ge=0, description="Units available")
    category_id: Optional[int] = Field(None, description="Category ID")
    category: Optional[Category] = Field(None, description="Embedded category")
    image_url: Optional[str] = Field(None, description="Product image URL")


class CartLine(BaseModel):
    """Represents a line in the shopping cart."""

    product: Product
    quantity: int = Field(gt=0, description="Quantity of the product")

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.quantity


class CartErrorCode(str, Enum):
    """Why a cart mutation was rejected."""

    INVALID_QUANTITY = "invalid_quantity"
    INSUFFICIENT_STOCK = "insufficient_stock"
    NOT_IN_CART = "not_in_cart"


class CartResult(BaseModel):
    """Outcome of a cart mutation, reported to the caller instead of raised."""

    success: bool
    message: str
    error: Optional[CartErrorCode] = None


class Cart(BaseModel):
    """Serializable view of the cart with derived totals."""

    items: list[CartLine] = Field(default_factory=list, description="Cart lines")
    total_items: int = Field(default=0, description="Total number of units")
    total_price: Decimal = Field(default=Decimal("0"), description="Total cart value")


class OrderStatus(str, Enum):
    """Lifecycle of a pending order. Statuses only move forward."""

    CREATED = "created"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PendingOrder(BaseModel):
    """An order registered with the payment processor."""

    id: str = Field(description="Processor order ID")
    amount: Decimal = Field(description="Order amount in major units")
    amount_minor: int = Field(description="Order amount in minor units")
    currency: str = Field(default="INR")
    receipt: str = Field(description="Receipt reference")
    notes: dict[str, Any] = Field(default_factory=dict)
    status: OrderStatus = Field(default=OrderStatus.CREATED)
    payment_id: Optional[str] = Field(None, description="Processor payment ID once paid")
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaymentVerificationRecord(BaseModel):
    """Result of a single signature check. Never returned to API callers."""

    order_id: str
    payment_id: str
    signature: str
    computed_signature: str
    verified: bool


class PaymentOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentResult(BaseModel):
    """What the caller learns about a payment attempt."""

    outcome: PaymentOutcome
    order_id: str
    payment_id: Optional[str] = None
    message: str

    @property
    def verified(self) -> bool:
        return self.outcome == PaymentOutcome.SUCCEEDED


class ShippingAddress(BaseModel):
    """Delivery details collected in the shipping step."""

    full_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class ShippingOption(BaseModel):
    id: str
    name: str
    fee: Decimal
    days: str


class CouponKind(str, Enum):
    PERCENT = "percent"
    FLAT = "flat"


class Coupon(BaseModel):
    code: str
    kind: CouponKind
    value: Decimal = Field(ge=0, description="Percentage (10 = 10%) or flat amount")


class PriceBreakdown(BaseModel):
    """Priced totals for the current checkout."""

    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    grand_total: Decimal
    coupon_code: Optional[str] = None


class UserProfile(BaseModel):
    """Authenticated user as returned by the hosted auth API."""

    id: str
    email: Optional[str] = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def full_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name")


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class SessionData(BaseModel):
    """Session data for authenticated user."""

    access_token: Optional[str] = Field(None, description="Bearer token for the hosted API")
    refresh_token: Optional[str] = Field(None, description="Refresh token")
    user: Optional[UserProfile] = Field(None, description="Signed-in user")
    is_authenticated: bool = Field(default=False, description="Authentication status")
