"""Shopping cart state with stock guards and debounced persistence."""

import logging
import threading
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from .debounce import Debouncer
from .models import Cart, CartErrorCode, CartLine, CartResult, Product
from .storage import JsonFileStorage

if TYPE_CHECKING:
    from .catalog import CatalogClient

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"


class CartStore:
    """
    The authoritative local shopping cart.

    Lines are kept in insertion order, one per product. Every successful
    mutation schedules a debounced write of the `{productId, quantity}`
    snapshot; rejected mutations leave both memory and storage untouched.
    Only this class writes the `cart` storage key.
    """

    def __init__(self, storage: JsonFileStorage, save_delay: float = 0.3) -> None:
        """
        Initialize an empty cart.

        Args:
            storage: Where the cart snapshot is persisted
            save_delay: Debounce window for snapshot writes, in seconds
        """
        self.storage = storage
        self._lines: dict[str, CartLine] = {}
        self._lock = threading.RLock()
        self._saver = Debouncer(self._write_snapshot, wait=save_delay)

    # ── Derived values ──────────────────────────────

    @property
    def lines(self) -> list[CartLine]:
        with self._lock:
            return [line.model_copy() for line in self._lines.values()]

    @property
    def total_items(self) -> int:
        with self._lock:
            return sum(line.quantity for line in self._lines.values())

    @property
    def total_price(self) -> Decimal:
        with self._lock:
            return sum((line.line_total for line in self._lines.values()), Decimal("0"))

    def is_empty(self) -> bool:
        with self._lock:
            return not self._lines

    def get_line(self, product_id: str) -> Optional[CartLine]:
        with self._lock:
            line = self._lines.get(product_id)
            return line.model_copy() if line else None

    def to_cart(self) -> Cart:
        """Snapshot the cart with its totals."""
        with self._lock:
            return Cart(items=self.lines, total_items=self.total_items, total_price=self.total_price)

    # ── Mutations ───────────────────────────────────

    def add_to_cart(self, product: Product, quantity: int = 1) -> CartResult:
        """
        Add units of a product, merging with an existing line.

        Args:
            product: Product to add (its stock_quantity is the upper bound)
            quantity: Units to add

        Returns:
            CartResult; the cart is unchanged unless success is True
        """
        if quantity <= 0:
            logger.warning(f"Attempted to add invalid quantity to cart: {quantity}")
            return CartResult(
                success=False,
                message=f"Quantity must be at least 1 (got {quantity})",
                error=CartErrorCode.INVALID_QUANTITY,
            )

        with self._lock:
            existing = self._lines.get(product.id)
            new_quantity = (existing.quantity if existing else 0) + quantity

            if new_quantity > product.stock_quantity:
                logger.info(
                    f"Rejected add of {product.name}: {new_quantity} requested, "
                    f"{product.stock_quantity} in stock"
                )
                return CartResult(
                    success=False,
                    message="Not enough stock available!",
                    error=CartErrorCode.INSUFFICIENT_STOCK,
                )

            self._lines[product.id] = CartLine(product=product, quantity=new_quantity)
            self._schedule_save()

        if existing:
            logger.info(f"Updated {product.name} quantity to {new_quantity}")
            return CartResult(success=True, message=f"Updated {product.name} quantity in cart!")
        logger.info(f"Added {product.name} to cart ({quantity})")
        return CartResult(success=True, message=f"Added {product.name} to cart!")

    def remove_from_cart(self, product_id: str) -> CartResult:
        """Remove a product's line. Removing an absent product changes nothing."""
        with self._lock:
            line = self._lines.pop(product_id, None)
            if line is None:
                return CartResult(success=True, message=f"Product {product_id} was not in the cart")
            self._schedule_save()

        logger.info(f"Removed {line.product.name} from cart")
        return CartResult(success=True, message=f"Removed {line.product.name} from cart!")

    def update_quantity(self, product_id: str, quantity: int) -> CartResult:
        """
        Set a line's quantity exactly.

        Zero or a negative quantity removes the line. A quantity above the
        product's stock is rejected and the cart is left unchanged.
        """
        with self._lock:
            line = self._lines.get(product_id)
            if line is None:
                return CartResult(
                    success=False,
                    message=f"Product {product_id} is not in the cart",
                    error=CartErrorCode.NOT_IN_CART,
                )

            if quantity <= 0:
                del self._lines[product_id]
                self._schedule_save()
                logger.info(f"Removed {line.product.name} from cart (quantity updated to {quantity})")
                return CartResult(success=True, message=f"Removed {line.product.name} from cart!")

            if quantity > line.product.stock_quantity:
                return CartResult(
                    success=False,
                    message="Not enough stock available!",
                    error=CartErrorCode.INSUFFICIENT_STOCK,
                )

            self._lines[product_id] = CartLine(product=line.product, quantity=quantity)
            self._schedule_save()

        logger.info(f"Updated {line.product.name} quantity to {quantity}")
        return CartResult(success=True, message=f"Updated {line.product.name} quantity in cart!")

    def clear_cart(self) -> CartResult:
        """Empty the cart."""
        with self._lock:
            self._lines.clear()
            self._schedule_save()
        logger.info("Clearing cart")
        return CartResult(success=True, message="Cart cleared!")

    # ── Persistence ─────────────────────────────────

    def snapshot(self) -> list[dict[str, Any]]:
        """The persisted form: product ids and quantities only."""
        with self._lock:
            return [
                {"productId": product_id, "quantity": line.quantity}
                for product_id, line in self._lines.items()
            ]

    def _schedule_save(self) -> None:
        self._saver(self.snapshot())

    def _write_snapshot(self, snapshot: list[dict[str, Any]]) -> None:
        logger.debug(f"Saving cart ({len(snapshot)} line(s))")
        self.storage.set_item(CART_STORAGE_KEY, snapshot)

    def flush(self) -> None:
        """Write any pending snapshot now."""
        self._saver.flush()

    def load(self, catalog: "CatalogClient") -> int:
        """
        Hydrate the cart from storage, re-fetching product details.

        Lines for unknown or out-of-stock products are dropped and quantities
        above current stock are capped; both are logged. A corrupt snapshot is
        treated as an empty cart.

        Args:
            catalog: Catalog used to resolve product ids

        Returns:
            Number of lines loaded
        """
        raw = self.storage.get_item(CART_STORAGE_KEY)
        if not raw:
            return 0
        if not isinstance(raw, list):
            logger.error(f"Ignoring malformed cart snapshot: {raw!r}")
            return 0

        lines: dict[str, CartLine] = {}
        for entry in raw:
            try:
                product_id = str(entry["productId"])
                quantity = int(entry["quantity"])
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed cart entry: {entry!r}")
                continue
            if quantity <= 0:
                continue

            product = catalog.get_product(product_id)
            if product is None or product.stock_quantity == 0:
                logger.warning(f"Dropping product {product_id} from saved cart: no longer available")
                continue
            if quantity > product.stock_quantity:
                logger.warning(
                    f"Capping {product.name} in saved cart from {quantity} to {product.stock_quantity}"
                )
                quantity = product.stock_quantity

            previous = lines.get(product_id)
            if previous:
                quantity = min(previous.quantity + quantity, product.stock_quantity)
            lines[product_id] = CartLine(product=product, quantity=quantity)

        with self._lock:
            self._lines = lines
        logger.info(f"Cart loaded successfully ({len(lines)} line(s))")
        return len(lines)
