"""Read-only catalog access with an explicit cache and static fallback."""

import logging
from decimal import Decimal
from typing import Any, Optional

from .errors import SupabaseError
from .fallback_data import FALLBACK_CATEGORIES, FALLBACK_PRODUCTS
from .models import Category, Product
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = "*,categories(*)"

# Backend failures and unparseable rows both trigger the fallback
READ_ERRORS = (SupabaseError, KeyError, ValueError, ArithmeticError)


class CatalogCache:
    """In-process cache of catalog reads, keyed by query shape."""

    def __init__(self) -> None:
        self.categories: Optional[list[Category]] = None
        self.product_lists: dict[str, list[Product]] = {}
        self.products: dict[str, Product] = {}

    @staticmethod
    def list_key(category_id: Optional[int] = None) -> str:
        return f"category-{category_id}" if category_id is not None else "all"

    def clear(self) -> None:
        self.categories = None
        self.product_lists.clear()
        self.products.clear()


class CatalogClient:
    """Client for the products and categories tables."""

    def __init__(self, supabase: SupabaseClient, cache: Optional[CatalogCache] = None) -> None:
        """
        Initialize the catalog client.

        Args:
            supabase: Hosted backend client
            cache: Cache to use; a fresh one is created if omitted
        """
        self.supabase = supabase
        self.cache = cache if cache is not None else CatalogCache()

    def parse_category(self, row: dict[str, Any]) -> Category:
        return Category(id=int(row["id"]), name=row.get("name", ""), image_url=row.get("image_url"))

    def parse_product(self, row: dict[str, Any]) -> Product:
        """Convert a products row (with embedded category) into a Product."""
        category = row.get("categories")
        return Product(
            id=str(row["id"]),
            name=row.get("name", ""),
            description=row.get("description") or "",
            price=Decimal(str(row.get("price") or 0)),
            stock_quantity=int(row.get("stock_quantity") or 0),
            category_id=row.get("category_id"),
            category=self.parse_category(category) if isinstance(category, dict) else None,
            image_url=row.get("image_url"),
        )

    def list_categories(self) -> list[Category]:
        """List all categories ordered by name."""
        if self.cache.categories is not None:
            return self.cache.categories

        try:
            logger.info("Fetching categories...")
            rows = self.supabase.select("categories", order="name")
            categories = [self.parse_category(row) for row in rows]
        except READ_ERRORS as e:
            logger.error(f"Failed to fetch categories, using fallback data: {e}")
            return list(FALLBACK_CATEGORIES)

        self.cache.categories = categories
        return categories

    def list_products(self, category_id: Optional[int] = None) -> list[Product]:
        """
        List products, optionally restricted to one category.

        Args:
            category_id: Category to filter on

        Returns:
            Products from the backend, the cache, or the static fallback
        """
        key = self.cache.list_key(category_id)
        if key in self.cache.product_lists:
            return self.cache.product_lists[key]

        filters = {"category_id": f"eq.{category_id}"} if category_id is not None else None
        try:
            logger.info(f"Fetching products{f' for category {category_id}' if category_id is not None else ''}...")
            rows = self.supabase.select("products", filters=filters, columns=PRODUCT_COLUMNS)
            products = [self.parse_product(row) for row in rows]
        except READ_ERRORS as e:
            cached = [
                p for p in self.cache.products.values()
                if category_id is None or p.category_id == category_id
            ]
            if cached:
                logger.error(f"Failed to fetch products, using {len(cached)} cached products: {e}")
                return cached
            logger.error(f"Failed to fetch products, using fallback data: {e}")
            return [
                p for p in FALLBACK_PRODUCTS if category_id is None or p.category_id == category_id
            ]

        self.cache.product_lists[key] = products
        for product in products:
            self.cache.products[product.id] = product
        return products

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get a single product by ID, or None if it does not exist."""
        if product_id in self.cache.products:
            return self.cache.products[product_id]

        try:
            logger.info(f"Fetching product {product_id}...")
            rows = self.supabase.select(
                "products", filters={"id": f"eq.{product_id}"}, columns=PRODUCT_COLUMNS
            )
            if not rows:
                return None
            product = self.parse_product(rows[0])
        except READ_ERRORS as e:
            logger.error(f"Failed to fetch product {product_id}, using fallback data: {e}")
            return next((p for p in FALLBACK_PRODUCTS if p.id == product_id), None)

        self.cache.products[product.id] = product
        return product

    def search_products(self, term: str) -> list[Product]:
        """Search products by case-insensitive name match. Results are not cached."""
        term = term.strip()
        if not term:
            return []

        try:
            logger.info(f"Searching products with term: {term}...")
            rows = self.supabase.select(
                "products",
                filters={"name": f"ilike.*{term}*"},
                columns=PRODUCT_COLUMNS,
                order="name",
            )
            return [self.parse_product(row) for row in rows]
        except READ_ERRORS as e:
            logger.error(f"Search failed, using fallback data: {e}")
            needle = term.lower()
            return sorted(
                (p for p in FALLBACK_PRODUCTS if needle in p.name.lower()), key=lambda p: p.name
            )

    def clear_cache(self) -> None:
        """Drop every cached read, e.g. after an admin update."""
        self.cache.clear()
        logger.info("Catalog cache cleared")
