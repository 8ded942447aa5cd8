"""CLI entry point for the storefront server."""

import argparse
import asyncio
import os
from typing import Optional

# Flags that override a settings variable; the servers read settings from the environment
SETTING_FLAGS = {
    "cart_file": "STOREFRONT_CART_FILE",
    "session_file": "STOREFRONT_SESSION_FILE",
    "admin_emails": "STOREFRONT_ADMIN_EMAILS",
    "currency": "STOREFRONT_CURRENCY",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Storefront Server: catalog, cart, checkout and payments over REST or MCP"
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="http",
        help="Server mode: stdio (MCP tools for an assistant) or http (REST API)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="HTTP bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="HTTP port (default: 8000)")
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the HTTP server when source files change",
    )

    store = parser.add_argument_group("store settings", "override the matching STOREFRONT_* variables")
    store.add_argument("--cart-file", help="Where the cart snapshot is saved")
    store.add_argument("--session-file", help="Where the signed-in session is saved")
    store.add_argument("--admin-emails", help="Comma-separated admin allow-list")
    store.add_argument("--currency", help="Order currency code, e.g. INR")
    return parser


def apply_setting_flags(args: argparse.Namespace) -> None:
    """Export given store flags so every settings load, including reloads, sees them."""
    for attr, variable in SETTING_FLAGS.items():
        value = getattr(args, attr)
        if value:
            os.environ[variable] = value


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    apply_setting_flags(args)

    if args.mode == "http":
        from .http_server import run_http_server
        run_http_server(host=args.host, port=args.port, reload=args.reload)
    else:
        from .server import main as server_main
        asyncio.run(server_main())


if __name__ == "__main__":
    main()
