"""Runtime settings loaded from environment variables."""

import os
from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import Coupon, CouponKind, ShippingOption

DEFAULT_SHIPPING_OPTIONS = [
    ShippingOption(id="standard", name="Standard Delivery", fee=Decimal("40.00"), days="3-5"),
    ShippingOption(id="express", name="Express Delivery", fee=Decimal("100.00"), days="1-2"),
]

DEFAULT_COUPONS = {
    "WELCOME10": Coupon(code="WELCOME10", kind=CouponKind.PERCENT, value=Decimal("10")),
    "FLAT100": Coupon(code="FLAT100", kind=CouponKind.FLAT, value=Decimal("100.00")),
}


class StoreSettings(BaseModel):
    """Settings shared by the HTTP and MCP servers."""

    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    store_name: str = "MyStore"
    currency: str = "INR"
    tax_rate: Decimal = Decimal("0.05")
    free_shipping_threshold: Decimal = Decimal("500.00")
    request_timeout: float = 5.0
    cart_save_delay: float = 0.3
    cart_file: str = Field(default_factory=lambda: str(Path.home() / ".storefront_cart.json"))
    session_file: str = Field(default_factory=lambda: str(Path.home() / ".storefront_session.json"))
    admin_emails: list[str] = Field(default_factory=list)
    shipping_options: list[ShippingOption] = Field(
        default_factory=lambda: list(DEFAULT_SHIPPING_OPTIONS)
    )
    coupons: dict[str, Coupon] = Field(default_factory=lambda: dict(DEFAULT_COUPONS))

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "StoreSettings":
        """
        Build settings from environment variables.

        Unset variables keep their defaults. Admin emails are read from
        STOREFRONT_ADMIN_EMAILS as a comma-separated list.

        Args:
            environ: Mapping to read from (defaults to os.environ)
        """
        env = os.environ if environ is None else environ
        mapping = {
            "SUPABASE_URL": "supabase_url",
            "SUPABASE_ANON_KEY": "supabase_anon_key",
            "RAZORPAY_KEY_ID": "razorpay_key_id",
            "RAZORPAY_KEY_SECRET": "razorpay_key_secret",
            "RAZORPAY_API_URL": "razorpay_api_url",
            "STOREFRONT_NAME": "store_name",
            "STOREFRONT_CURRENCY": "currency",
            "STOREFRONT_TAX_RATE": "tax_rate",
            "STOREFRONT_FREE_SHIPPING_THRESHOLD": "free_shipping_threshold",
            "STOREFRONT_REQUEST_TIMEOUT": "request_timeout",
            "STOREFRONT_CART_SAVE_DELAY": "cart_save_delay",
            "STOREFRONT_CART_FILE": "cart_file",
            "STOREFRONT_SESSION_FILE": "session_file",
        }
        values: dict = {}
        for env_name, field_name in mapping.items():
            value = env.get(env_name)
            if value:
                values[field_name] = value

        admin_emails = env.get("STOREFRONT_ADMIN_EMAILS")
        if admin_emails:
            values["admin_emails"] = [
                email.strip().lower() for email in admin_emails.split(",") if email.strip()
            ]

        return cls(**values)
