"""Wiring of the storefront services shared by the HTTP and MCP servers."""

import logging
from typing import Optional

from .admin import AccessGate, AdminCatalogWriter
from .auth import AuthManager
from .cart import CartStore
from .catalog import CatalogClient
from .checkout import CheckoutFlow
from .config import StoreSettings
from .payments import OrderBook, PaymentBridge, PaymentGatewayClient
from .storage import JsonFileStorage
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


class Storefront:
    """Owns one instance of every service and the current checkout."""

    def __init__(
        self,
        settings: StoreSettings,
        supabase: Optional[SupabaseClient] = None,
        gateway: Optional[PaymentGatewayClient] = None,
    ) -> None:
        """
        Build the services.

        Args:
            settings: Runtime settings
            supabase: Backend client to use instead of one built from settings
            gateway: Payment gateway client to use instead of one built from settings
        """
        self.settings = settings
        self.supabase = supabase or SupabaseClient(
            settings.supabase_url, settings.supabase_anon_key, timeout=settings.request_timeout
        )
        self.catalog = CatalogClient(self.supabase)
        self.auth_manager = AuthManager(self.supabase, session_file=settings.session_file)
        self.access_gate = AccessGate(settings.admin_emails)
        self.admin_writer = AdminCatalogWriter(self.supabase, self.catalog)
        self.cart = CartStore(JsonFileStorage(settings.cart_file), save_delay=settings.cart_save_delay)
        self.orders = OrderBook(self.supabase)
        self.payments = PaymentBridge(
            gateway
            or PaymentGatewayClient(
                settings.razorpay_key_id,
                settings.razorpay_key_secret,
                base_url=settings.razorpay_api_url,
                timeout=settings.request_timeout,
            ),
            self.orders,
            store_name=settings.store_name,
        )
        self.checkout = self.new_checkout()

        # Prefill the open checkout whenever someone signs in
        self._unsubscribe = self.auth_manager.state.subscribe(
            lambda session: self.checkout.prefill(session.user)
        )

        if not settings.razorpay_key_secret:
            logger.warning("RAZORPAY_KEY_SECRET is not set; payment verification will always fail")

    def new_checkout(self) -> CheckoutFlow:
        """Start a fresh checkout for the current cart."""
        checkout = CheckoutFlow(
            self.cart,
            shipping_options=self.settings.shipping_options,
            coupons=self.settings.coupons,
            tax_rate=self.settings.tax_rate,
            free_shipping_threshold=self.settings.free_shipping_threshold,
            currency=self.settings.currency,
        )
        checkout.prefill(self.auth_manager.current_user)
        self.checkout = checkout
        return checkout

    def start(self) -> None:
        """Hydrate the cart from its saved snapshot."""
        self.cart.load(self.catalog)

    def close(self) -> None:
        """Flush the cart and release HTTP clients."""
        self._unsubscribe()
        self.cart.flush()
        self.payments.close()
        self.supabase.close()
