"""Static catalog served when the hosted backend cannot be reached."""

from decimal import Decimal

from .models import Category, Product

FALLBACK_CATEGORIES = [
    Category(id=1, name="Electronics"),
    Category(id=2, name="Clothing"),
    Category(id=3, name="Home & Kitchen"),
    Category(id=4, name="Books"),
    Category(id=5, name="Beauty"),
    Category(id=6, name="Sports"),
]

FALLBACK_PRODUCTS = [
    Product(
        id="1",
        name="Smartphone X",
        description="Latest smartphone with advanced features",
        price=Decimal("29999"),
        stock_quantity=10,
        category_id=1,
    ),
    Product(
        id="2",
        name="Laptop Pro",
        description="Powerful laptop for professionals",
        price=Decimal("79999"),
        stock_quantity=5,
        category_id=1,
    ),
    Product(
        id="3",
        name="Wireless Headphones",
        description="Premium sound quality with noise cancellation",
        price=Decimal("8999"),
        stock_quantity=15,
        category_id=1,
    ),
    Product(
        id="4",
        name="Smartwatch Fitness",
        description="Track your health and fitness goals",
        price=Decimal("12999"),
        stock_quantity=8,
        category_id=1,
    ),
]
