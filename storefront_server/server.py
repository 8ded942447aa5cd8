"""MCP Server exposing the storefront catalog and cart."""

import asyncio
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .config import StoreSettings
from .models import Cart, Product
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-mcp-server")

# Initialize server
app = Server("storefront-mcp-server")

# Global state
storefront: Optional[Storefront] = None


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _format_products(products: list[Product]) -> str:
    result_lines = [f"Found {len(products)} product(s):\n"]
    for i, product in enumerate(products, 1):
        result_lines.append(f"\n{i}. {product.name}")
        result_lines.append(f"   ID: {product.id}")
        result_lines.append(f"   Price: {product.price:.2f}")
        result_lines.append(
            f"   In stock: {product.stock_quantity if product.stock_quantity else 'No'}"
        )
        if product.category:
            result_lines.append(f"   Category: {product.category.name}")
    return "\n".join(result_lines)


def _format_cart(cart: Cart) -> str:
    if not cart.items:
        return "Your cart is empty"

    result_lines = [f"Shopping Cart ({cart.total_items} items):\n"]
    for i, line in enumerate(cart.items, 1):
        result_lines.append(f"\n{i}. {line.product.name}")
        result_lines.append(f"   Product ID: {line.product.id}")
        result_lines.append(f"   Price: {line.product.price:.2f}")
        result_lines.append(f"   Quantity: {line.quantity}")
        result_lines.append(f"   Subtotal: {line.line_total:.2f}")

    result_lines.append(f"\n{'='*50}")
    result_lines.append(f"Total: {cart.total_price:.2f}")
    return "\n".join(result_lines)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("storefront://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        ),
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    if str(uri) == "storefront://cart":
        return storefront.cart.to_cart().model_dump_json(indent=2)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="storefront_list_categories",
            description="List product categories",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_list_products",
            description="List products, optionally within a category",
            inputSchema={
                "type": "object",
                "properties": {
                    "category_id": {
                        "type": "integer",
                        "description": "Category ID to filter on (optional)",
                    },
                },
            },
        ),
        Tool(
            name="storefront_get_product",
            description="Get details of a single product",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_search_products",
            description="Search for products by name",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Product name or search term"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="storefront_get_cart",
            description="Get current shopping cart contents with all items and total",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_add_to_cart",
            description="Add a product to the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to add"},
                    "quantity": {
                        "type": "integer",
                        "description": "Quantity to add (default: 1)",
                        "default": 1,
                    },
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_remove_from_cart",
            description="Remove a product from the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to remove"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_update_cart_quantity",
            description="Set the quantity of a product in the cart (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to update"},
                    "quantity": {"type": "integer", "description": "New quantity to set"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="storefront_clear_cart",
            description="Remove everything from the shopping cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_quote",
            description="Price the current cart: subtotal, shipping, tax, discount and grand total",
            inputSchema={
                "type": "object",
                "properties": {
                    "shipping_option": {
                        "type": "string",
                        "description": "Shipping option ID (e.g. standard, express)",
                    },
                    "coupon": {"type": "string", "description": "Coupon code to apply"},
                },
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "storefront_list_categories":
            categories = storefront.catalog.list_categories()
            if not categories:
                return _text("No categories found")
            lines = [f"Found {len(categories)} categor{'y' if len(categories) == 1 else 'ies'}:\n"]
            lines.extend(f"- {category.name} (ID: {category.id})" for category in categories)
            return _text("\n".join(lines))

        elif name == "storefront_list_products":
            products = storefront.catalog.list_products(arguments.get("category_id"))
            if not products:
                return _text("No products found")
            return _text(_format_products(products))

        elif name == "storefront_get_product":
            product = storefront.catalog.get_product(str(arguments["product_id"]))
            if product is None:
                return _text(f"Product {arguments['product_id']} not found")
            return _text(product.model_dump_json(indent=2))

        elif name == "storefront_search_products":
            query = arguments["query"]
            products = storefront.catalog.search_products(query)
            if not products:
                return _text(f"No products found for: {query}")
            return _text(_format_products(products))

        elif name == "storefront_get_cart":
            return _text(_format_cart(storefront.cart.to_cart()))

        elif name == "storefront_add_to_cart":
            product_id = str(arguments["product_id"])
            quantity = int(arguments.get("quantity", 1))

            product = storefront.catalog.get_product(product_id)
            if product is None:
                return _text(f"Product {product_id} not found")

            result = storefront.cart.add_to_cart(product, quantity)
            return _text(result.message if result.success else f"Failed: {result.message}")

        elif name == "storefront_remove_from_cart":
            result = storefront.cart.remove_from_cart(str(arguments["product_id"]))
            return _text(result.message)

        elif name == "storefront_update_cart_quantity":
            result = storefront.cart.update_quantity(
                str(arguments["product_id"]), int(arguments["quantity"])
            )
            return _text(result.message if result.success else f"Failed: {result.message}")

        elif name == "storefront_clear_cart":
            return _text(storefront.cart.clear_cart().message)

        elif name == "storefront_quote":
            checkout = storefront.checkout
            notes = []
            if arguments.get("shipping_option"):
                result = checkout.select_shipping(arguments["shipping_option"])
                if not result.success:
                    notes.append(result.message)
            if arguments.get("coupon"):
                result = checkout.apply_coupon(arguments["coupon"])
                if not result.success:
                    notes.append(result.message)

            breakdown = checkout.breakdown()
            lines = [
                f"Subtotal: {breakdown.subtotal}",
                f"Shipping ({checkout.shipping.name}): {breakdown.shipping}",
                f"Tax: {breakdown.tax}",
            ]
            if breakdown.coupon_code:
                lines.append(f"Discount ({breakdown.coupon_code}): -{breakdown.discount}")
            lines.append(f"Grand total: {breakdown.grand_total} {checkout.currency}")
            lines.extend(notes)
            return _text("\n".join(lines))

        else:
            return _text(f"Unknown tool: {name}")

    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return _text(f"Error: {str(e)}")


async def main() -> None:
    """Main entry point for the MCP server."""
    global storefront

    storefront = Storefront(StoreSettings.from_env())
    storefront.start()

    logger.info("Starting Storefront MCP Server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
