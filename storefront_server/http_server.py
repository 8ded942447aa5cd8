"""HTTP server for the storefront API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .admin import ProductInput
from .config import StoreSettings
from .errors import OrderNotFoundError, OrderTransitionError, PaymentGatewayError, SupabaseError
from .models import AuthCredentials, ShippingAddress, UserProfile
from .payments import GENERIC_FAILURE_MESSAGE
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-http-server")

# Global state
storefront: Optional[Storefront] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global storefront

    # Startup
    logger.info("Starting Storefront HTTP Server...")
    created = storefront is None
    if created:
        storefront = Storefront(StoreSettings.from_env())
    storefront.start()

    yield

    # Shutdown
    logger.info("Shutting down Storefront HTTP Server...")
    storefront.close()
    if created:
        storefront = None


app = FastAPI(
    title="Storefront Server",
    description="HTTP API for catalog browsing, cart, checkout and payment verification",
    version=__version__,
    lifespan=lifespan,
)


# Request/Response Models
class LoginRequest(BaseModel):
    email: str
    password: str


class SignupRequest(BaseModel):
    email: str
    password: str
    full_name: str


class LoginResponse(BaseModel):
    success: bool
    message: str


class SearchRequest(BaseModel):
    query: str


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1


class RemoveFromCartRequest(BaseModel):
    product_id: str


class UpdateCartRequest(BaseModel):
    product_id: str
    quantity: int


class ShippingRequest(BaseModel):
    option_id: str


class CouponRequest(BaseModel):
    code: str


class PaymentFailedRequest(BaseModel):
    reason: str = "Payment failed"


class VerifyPaymentRequest(BaseModel):
    order_id: str
    payment_id: str
    signature: str


# ── Access checks ───────────────────────────────────


def require_user() -> UserProfile:
    """Dependency: the signed-in user, or 401."""
    user = storefront.auth_manager.current_user
    if user is None or not storefront.auth_manager.is_authenticated():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_admin(user: UserProfile = Depends(require_user)) -> UserProfile:
    """Dependency: the signed-in user if they are an admin, or 403."""
    if not storefront.access_gate.is_admin(user):
        logger.warning(f"Admin access denied for {user.email}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Storefront Server",
        "version": __version__,
        "description": "HTTP API for catalog browsing, cart, checkout and payment verification",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {
                "login": "POST /auth/login",
                "signup": "POST /auth/signup",
                "logout": "POST /auth/logout",
                "status": "GET /auth/status",
            },
            "catalog": {
                "categories": "GET /categories",
                "products": "GET /products?category_id=",
                "product": "GET /products/{product_id}",
                "search": "POST /products/search",
            },
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/add",
                "remove": "POST /cart/remove",
                "update": "POST /cart/update",
                "clear": "POST /cart/clear",
            },
            "checkout": {
                "get": "GET /checkout",
                "address": "POST /checkout/address",
                "shipping": "POST /checkout/shipping",
                "coupon": "POST|DELETE /checkout/coupon",
                "back": "POST /checkout/back",
                "payment": "POST /checkout/payment",
                "dismiss": "POST /checkout/payment/dismiss",
                "failed": "POST /checkout/payment/failed",
                "reset": "POST /checkout/reset",
            },
            "payments": {"verify": "POST /payments/verify"},
            "admin": {
                "status": "GET /admin/status",
                "create": "POST /admin/products",
                "update": "PUT /admin/products/{product_id}",
                "delete": "DELETE /admin/products/{product_id}",
                "clear_cache": "POST /admin/cache/clear",
            },
        },
        "authenticated": storefront.auth_manager.is_authenticated() if storefront else False,
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": storefront.auth_manager.is_authenticated() if storefront else False,
    }


# Authentication endpoints
@app.post("/auth/login", response_model=LoginResponse)
def login(request: LoginRequest):
    """Sign in with email and password."""
    try:
        success = storefront.auth_manager.sign_in(
            AuthCredentials(email=request.email, password=request.password)
        )
        if success:
            return LoginResponse(success=True, message=f"Successfully logged in as {request.email}")
        return LoginResponse(success=False, message="Login failed. Check your credentials.")
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Login failed")


@app.post("/auth/signup", response_model=LoginResponse)
def signup(request: SignupRequest):
    """Create an account."""
    try:
        success = storefront.auth_manager.sign_up(
            AuthCredentials(email=request.email, password=request.password), request.full_name
        )
        if success:
            return LoginResponse(
                success=True,
                message="Signed up successfully! Please check your email to confirm your account.",
            )
        return LoginResponse(success=False, message="Sign up failed.")
    except Exception as e:
        logger.error(f"Signup error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Sign up failed")


@app.post("/auth/logout")
def logout():
    """Sign out and clear the session."""
    try:
        storefront.auth_manager.sign_out()
        return {"success": True, "message": "Successfully logged out"}
    except Exception as e:
        logger.error(f"Logout error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Logout failed")


@app.get("/auth/status")
async def auth_status():
    """Get authentication status."""
    user = storefront.auth_manager.current_user
    return {
        "authenticated": storefront.auth_manager.is_authenticated(),
        "email": user.email if user else None,
        "is_admin": storefront.access_gate.is_admin(user),
    }


# Catalog endpoints
@app.get("/categories")
def list_categories():
    """List product categories."""
    categories = storefront.catalog.list_categories()
    return {"count": len(categories), "categories": [c.model_dump() for c in categories]}


@app.get("/products")
def list_products(category_id: Optional[int] = None):
    """List products, optionally within one category."""
    products = storefront.catalog.list_products(category_id)
    return {"count": len(products), "products": [p.model_dump() for p in products]}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    """Get a single product."""
    product = storefront.catalog.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product.model_dump()


@app.post("/products/search")
def search_products(request: SearchRequest):
    """Search for products by name."""
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")
    products = storefront.catalog.search_products(request.query)
    return {"count": len(products), "products": [p.model_dump() for p in products]}


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get current shopping cart."""
    return storefront.cart.to_cart().model_dump()


@app.post("/cart/add")
def add_to_cart(request: AddToCartRequest):
    """Add a product to the cart, checked against current stock."""
    product = storefront.catalog.get_product(request.product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    result = storefront.cart.add_to_cart(product, request.quantity)
    return {**result.model_dump(), "cart": storefront.cart.to_cart().model_dump()}


@app.post("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    """Remove a product from the cart."""
    result = storefront.cart.remove_from_cart(request.product_id)
    return {**result.model_dump(), "cart": storefront.cart.to_cart().model_dump()}


@app.post("/cart/update")
async def update_cart(request: UpdateCartRequest):
    """Set the quantity of a product in the cart (0 or less removes it)."""
    result = storefront.cart.update_quantity(request.product_id, request.quantity)
    return {**result.model_dump(), "cart": storefront.cart.to_cart().model_dump()}


@app.post("/cart/clear")
async def clear_cart():
    """Empty the cart."""
    result = storefront.cart.clear_cart()
    return {**result.model_dump(), "cart": storefront.cart.to_cart().model_dump()}


# Checkout endpoints
@app.get("/checkout")
async def get_checkout():
    """Current checkout step, address and price breakdown."""
    return storefront.checkout.summary()


@app.post("/checkout/address")
async def submit_address(address: ShippingAddress):
    """Submit shipping details and continue to payment."""
    result = storefront.checkout.submit_address(address)
    return {**result.model_dump(), "checkout": storefront.checkout.summary()}


@app.post("/checkout/shipping")
async def select_shipping(request: ShippingRequest):
    """Choose a shipping option."""
    result = storefront.checkout.select_shipping(request.option_id)
    return {**result.model_dump(), "checkout": storefront.checkout.summary()}


@app.post("/checkout/coupon")
async def apply_coupon(request: CouponRequest):
    """Apply a coupon code."""
    result = storefront.checkout.apply_coupon(request.code)
    return {**result.model_dump(), "checkout": storefront.checkout.summary()}


@app.delete("/checkout/coupon")
async def remove_coupon():
    """Remove the applied coupon."""
    result = storefront.checkout.remove_coupon()
    return {**result.model_dump(), "checkout": storefront.checkout.summary()}


@app.post("/checkout/back")
async def checkout_back():
    """Go back from payment to shipping."""
    result = storefront.checkout.back()
    return {**result.model_dump(), "checkout": storefront.checkout.summary()}


@app.post("/checkout/reset")
async def checkout_reset():
    """Start a new checkout."""
    storefront.new_checkout()
    return storefront.checkout.summary()


@app.post("/checkout/payment")
def start_payment(user: UserProfile = Depends(require_user)):
    """Create (or reuse) the payment order and return the checkout widget options."""
    checkout = storefront.checkout
    try:
        order = checkout.start_payment(storefront.payments)
        options = storefront.payments.open_checkout(
            order.id,
            prefill={
                "name": checkout.address.full_name,
                "email": checkout.address.email,
                "contact": checkout.address.phone,
            },
        )
        return {"order": order.model_dump(), "widget": options}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentGatewayError as e:
        logger.error(f"Error creating payment order: {e.message}")
        raise HTTPException(status_code=502, detail="Failed to create payment. Please try again.")
    except (OrderNotFoundError, OrderTransitionError) as e:
        logger.error(f"Error opening checkout: {e}")
        raise HTTPException(status_code=409, detail="Payment could not be started. Please try again.")


@app.post("/checkout/payment/dismiss")
async def dismiss_payment():
    """The user closed the payment widget without paying."""
    order = storefront.checkout.order
    if order is None:
        raise HTTPException(status_code=400, detail="No payment in progress")
    return storefront.payments.cancel_payment(order.id).model_dump()


@app.post("/checkout/payment/failed")
def payment_failed(request: PaymentFailedRequest):
    """The payment widget reported a failed payment."""
    order = storefront.checkout.order
    if order is None:
        raise HTTPException(status_code=400, detail="No payment in progress")
    return storefront.payments.fail_payment(order.id, request.reason).model_dump()


@app.post("/payments/verify")
def verify_payment(request: VerifyPaymentRequest):
    """Authenticate the widget's success callback and mark the order paid."""
    try:
        result = storefront.payments.complete_payment(
            request.order_id, request.payment_id, request.signature
        )
    except Exception as e:
        logger.error(f"Error verifying payment: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "verified": False, "error": GENERIC_FAILURE_MESSAGE},
        )

    if not result.verified:
        return JSONResponse(
            status_code=400,
            content={"success": False, "verified": False, "error": result.message},
        )

    checkout = storefront.checkout
    confirmed = False
    if checkout.order is not None and checkout.order.id == result.order_id:
        confirmed = checkout.confirm(result).success

    return {
        "success": True,
        "verified": True,
        "order_id": result.order_id,
        "payment_id": result.payment_id,
        "confirmed": confirmed,
    }


# Admin endpoints
@app.get("/admin/status")
async def admin_status():
    """Whether the current session may use admin features."""
    return {"is_admin": storefront.access_gate.is_admin(storefront.auth_manager.current_user)}


@app.post("/admin/products")
def create_product(data: ProductInput, user: UserProfile = Depends(require_admin)):
    """Create a product."""
    try:
        product = storefront.admin_writer.create_product(data, storefront.auth_manager.access_token)
    except SupabaseError as e:
        logger.error(f"Create product error: {e.message}")
        raise HTTPException(status_code=502, detail="Failed to create product")
    return {"success": True, "product": product.model_dump() if product else None}


@app.put("/admin/products/{product_id}")
def update_product(product_id: str, data: ProductInput, user: UserProfile = Depends(require_admin)):
    """Update a product."""
    try:
        product = storefront.admin_writer.update_product(
            product_id, data, storefront.auth_manager.access_token
        )
    except SupabaseError as e:
        logger.error(f"Update product error: {e.message}")
        raise HTTPException(status_code=502, detail="Failed to update product")
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "product": product.model_dump()}


@app.delete("/admin/products/{product_id}")
def delete_product(product_id: str, user: UserProfile = Depends(require_admin)):
    """Delete a product."""
    try:
        deleted = storefront.admin_writer.delete_product(product_id, storefront.auth_manager.access_token)
    except SupabaseError as e:
        logger.error(f"Delete product error: {e.message}")
        raise HTTPException(status_code=502, detail="Failed to delete product")
    if not deleted:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "message": f"Deleted product {product_id}"}


@app.post("/admin/cache/clear")
async def clear_catalog_cache(user: UserProfile = Depends(require_admin)):
    """Drop cached catalog reads."""
    storefront.catalog.clear_cache()
    return {"success": True, "message": "Catalog cache cleared"}


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable hot reloading (default: False)
    """
    import uvicorn

    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        uvicorn.run(
            "storefront_server.http_server:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["storefront_server"],
            log_level="info",
        )
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server(reload=True)
