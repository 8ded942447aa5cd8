"""Admin access checks and catalog writes."""

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from .catalog import CatalogClient
from .models import Product, UserProfile
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


class AccessGate:
    """Decides whether a user may use admin-only functionality."""

    def __init__(self, admin_emails: Iterable[str] = ()) -> None:
        """
        Args:
            admin_emails: Allow-list of privileged account emails
        """
        self.admin_emails = {email.strip().lower() for email in admin_emails if email.strip()}

    def is_admin(self, user: Optional[UserProfile]) -> bool:
        """True if the user is on the allow-list or carries the is_admin flag."""
        if user is None:
            return False

        email = (user.email or "").lower()
        by_email = email in self.admin_emails
        by_metadata = user.user_metadata.get("is_admin") is True
        logger.debug(f"Admin check for {user.email}: email={by_email}, metadata={by_metadata}")
        return by_email or by_metadata


class ProductInput(BaseModel):
    """Fields an admin may set on a product."""

    name: str = Field(min_length=1)
    description: str = ""
    price: Decimal = Field(ge=0)
    stock_quantity: int = Field(ge=0)
    category_id: Optional[int] = None
    image_url: Optional[str] = None


class AdminCatalogWriter:
    """Creates, updates and deletes products, then invalidates the catalog cache."""

    def __init__(self, supabase: SupabaseClient, catalog: CatalogClient) -> None:
        self.supabase = supabase
        self.catalog = catalog

    def _row(self, data: ProductInput) -> dict[str, Any]:
        row = data.model_dump()
        row["price"] = str(data.price)
        return row

    def create_product(self, data: ProductInput, access_token: str) -> Optional[Product]:
        rows = self.supabase.insert("products", self._row(data), access_token=access_token)
        self.catalog.clear_cache()
        logger.info(f"Product created: {data.name}")
        return self.catalog.parse_product(rows[0]) if rows else None

    def update_product(
        self, product_id: str, data: ProductInput, access_token: str
    ) -> Optional[Product]:
        rows = self.supabase.update(
            "products", {"id": f"eq.{product_id}"}, self._row(data), access_token=access_token
        )
        self.catalog.clear_cache()
        logger.info(f"Product updated: {product_id}")
        return self.catalog.parse_product(rows[0]) if rows else None

    def delete_product(self, product_id: str, access_token: str) -> bool:
        """Delete a product. Returns False if no row matched."""
        rows = self.supabase.delete("products", {"id": f"eq.{product_id}"}, access_token=access_token)
        self.catalog.clear_cache()
        logger.info(f"Product deleted: {product_id} ({len(rows)} row(s))")
        return bool(rows)
