"""Storefront server: catalog, cart, checkout and payment verification."""

__version__ = "0.1.0"
