"""MCP Server for the Taja.Shop cart."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from mcp.server import Server
from mcp.types import Resource, Tool, TextContent
from pydantic import AnyUrl

from .auth import AuthManager
from .config import Settings
from .models import AuthCredentials, CartProduct, CartResult, Failure, SyncReport
from .storage import CartStorage, MemoryCartStorage
from .store import CartStore
from .sync import CartSync
from .tajashop_client import TajaShopClient

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("tajashop-mcp-server")

# Initialize server
app = Server("tajashop-mcp-server")

# Global state
auth_manager: AuthManager
cart_store: CartStore
tajashop_client: TajaShopClient
cart_sync: CartSync
credentials: Optional[AuthCredentials] = None


def format_price(amount: int) -> str:
    return f"₦{amount:,}"


def format_cart(store: CartStore) -> str:
    """Render the local cart as readable text."""
    items = store.items
    if not items:
        return "Your cart is empty"

    result_lines = [f"Cart ({store.get_total_items()} item(s)):\n"]
    for i, item in enumerate(items, 1):
        result_lines.append(f"\n{i}. {item.title}")
        result_lines.append(f"   ID: {item.product_id}")
        if item.seller_name:
            result_lines.append(f"   Seller: {item.seller_name}")
        result_lines.append(f"   Quantity: {item.quantity}")
        result_lines.append(f"   Price: {format_price(item.unit_price)}")
        result_lines.append(f"   Subtotal: {format_price(item.subtotal)}")

    result_lines.append(f"\nTotal: {format_price(store.get_total_price())}")
    return "\n".join(result_lines)


def format_sync_report(report: SyncReport) -> str:
    if report.skipped:
        return "Cart sync skipped (already synced for this session or not signed in)"
    if report.stale:
        return "Cart sync superseded by a newer sign-in"

    result_lines = []
    if report.merged:
        result_lines.append("Local cart merged into your account")
    if report.hydrated:
        result_lines.append("Cart updated from your account")
    for error in report.errors:
        result_lines.append(f"Warning: {error}")
    return "\n".join(result_lines) or "Nothing to sync"


async def ensure_authenticated() -> bool:
    """Ensure there is a token, auto-login if credentials are available."""
    if auth_manager.is_authenticated():
        return True

    if credentials:
        logger.info("Auto-logging in with configured credentials...")
        if await tajashop_client.login(credentials):
            logger.info("Auto-login successful")
            return True
        logger.warning("Auto-login failed")

    return False


async def change_account_cart(
    sync: CartSync, token: str, change: Callable[[str], Awaitable[CartResult]]
) -> tuple[CartResult, Optional[SyncReport]]:
    """
    Apply a change to the account cart and mirror the result locally.

    Any pending first-sign-in merge runs before the change.

    Args:
        sync: Sync orchestrator owning the local cart
        token: Bearer token of the signed-in user
        change: Client call taking the token

    Returns:
        The remote result, and the refresh report if the change succeeded
    """
    await sync.sync(token)
    result = await change(token)
    if isinstance(result, Failure):
        logger.warning(f"Account cart change failed: {result.error}")
        return result, None
    return result, await sync.refresh()


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("tajashop://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current local shopping cart contents",
        )
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    if str(uri) == "tajashop://cart":
        return cart_store.snapshot().model_dump_json(indent=2)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="tajashop_cart_add",
            description="Add a product to the cart (increments the quantity if it is already there)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "title": {"type": "string", "description": "Product title"},
                    "unit_price": {
                        "type": "integer",
                        "description": "Unit price in the smallest currency unit",
                    },
                    "images": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Image URLs, first is primary",
                    },
                    "seller_name": {"type": "string", "description": "Seller name"},
                    "shop_slug": {"type": "string", "description": "Seller shop slug"},
                    "quantity": {
                        "type": "integer",
                        "description": "Quantity to add (default: 1)",
                        "default": 1,
                    },
                },
                "required": ["product_id", "title", "unit_price"],
            },
        ),
        Tool(
            name="tajashop_cart_update_quantity",
            description="Set the quantity of a cart item (0 removes it)",
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
            name="tajashop_cart_remove",
            description="Remove a product from the cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to remove"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="tajashop_cart_clear",
            description="Remove everything from the cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="tajashop_cart_get",
            description="Get current cart contents with totals",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="tajashop_cart_toggle",
            description="Open or close the cart widget",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="tajashop_sync",
            description="Merge the local cart into the signed-in account (once per sign-in) and load the account cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "token": {
                        "type": "string",
                        "description": "Bearer token (optional, defaults to the saved session)",
                    },
                },
            },
        ),
        Tool(
            name="tajashop_remote_cart",
            description="Show the cart stored on the signed-in account",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="tajashop_remote_add",
            description="Add a product to the account cart (sets the quantity if already there) and reload the local cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "quantity": {"type": "integer", "description": "Quantity (optional, default 1)"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="tajashop_remote_update_quantity",
            description="Set the quantity of an account cart item (0 removes it) and reload the local cart",
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
            name="tajashop_remote_remove",
            description="Remove a product from the account cart and reload the local cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to remove"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="tajashop_remote_clear",
            description="Empty the account cart and reload the local cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="tajashop_login",
            description="Sign in to Taja.Shop. Uses TAJASHOP_EMAIL/TAJASHOP_PASSWORD if not provided.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password"},
                },
            },
        ),
        Tool(
            name="tajashop_logout",
            description="Sign out and stop syncing the cart",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "tajashop_cart_add":
            quantity = arguments.get("quantity", 1)
            product = CartProduct(
                product_id=arguments["product_id"],
                title=arguments["title"],
                unit_price=arguments["unit_price"],
                images=arguments.get("images", []),
                seller_name=arguments.get("seller_name", ""),
                shop_slug=arguments.get("shop_slug", ""),
            )
            if quantity < 1:
                return [TextContent(type="text", text="Error: quantity must be at least 1")]

            cart_store.add_item(product, quantity)
            return [
                TextContent(
                    type="text",
                    text=f"Added {quantity} x {product.title} to cart\n\n{format_cart(cart_store)}",
                )
            ]

        elif name == "tajashop_cart_update_quantity":
            product_id = arguments["product_id"]
            if product_id not in cart_store:
                return [TextContent(type="text", text=f"Product {product_id} is not in the cart")]

            cart_store.update_quantity(product_id, arguments["quantity"])
            return [TextContent(type="text", text=format_cart(cart_store))]

        elif name == "tajashop_cart_remove":
            cart_store.remove_item(arguments["product_id"])
            return [TextContent(type="text", text=format_cart(cart_store))]

        elif name == "tajashop_cart_clear":
            cart_store.clear_cart()
            return [TextContent(type="text", text="Cart cleared")]

        elif name == "tajashop_cart_get":
            return [TextContent(type="text", text=format_cart(cart_store))]

        elif name == "tajashop_cart_toggle":
            is_open = cart_store.toggle_cart()
            return [TextContent(type="text", text=f"Cart {'opened' if is_open else 'closed'}")]

        elif name == "tajashop_sync":
            token = arguments.get("token")
            if not token:
                if not await ensure_authenticated():
                    return [
                        TextContent(
                            type="text",
                            text="Error: Not signed in. Provide a token or configure TAJASHOP_TOKEN or TAJASHOP_EMAIL/TAJASHOP_PASSWORD.",
                        )
                    ]
                token = auth_manager.get_token()

            report = await cart_sync.sync(token)
            return [
                TextContent(
                    type="text",
                    text=f"{format_sync_report(report)}\n\n{format_cart(cart_store)}",
                )
            ]

        elif name == "tajashop_remote_cart":
            if not await ensure_authenticated():
                return [TextContent(type="text", text="Error: Not signed in. Please login first.")]

            result = await tajashop_client.get_cart()
            if isinstance(result, Failure):
                return [TextContent(type="text", text=f"Could not fetch account cart: {result.error}")]

            items = result.cart.items if result.cart else []
            if not items:
                return [TextContent(type="text", text="Your account cart is empty")]

            result_lines = [f"Account cart ({len(items)} line(s)):\n"]
            for i, item in enumerate(items, 1):
                result_lines.append(
                    f"{i}. {item.title} x{item.quantity} ({format_price(item.price)} each)"
                )
            return [TextContent(type="text", text="\n".join(result_lines))]

        elif name in (
            "tajashop_remote_add",
            "tajashop_remote_update_quantity",
            "tajashop_remote_remove",
            "tajashop_remote_clear",
        ):
            if not await ensure_authenticated():
                return [TextContent(type="text", text="Error: Not signed in. Please login first.")]

            if name == "tajashop_remote_add":
                product_id, quantity = arguments["product_id"], arguments.get("quantity")
                change = lambda t: tajashop_client.add_or_update_item(product_id, quantity, token=t)
            elif name == "tajashop_remote_update_quantity":
                product_id, quantity = arguments["product_id"], arguments["quantity"]
                change = lambda t: tajashop_client.update_item_quantity(product_id, quantity, token=t)
            elif name == "tajashop_remote_remove":
                product_id = arguments["product_id"]
                change = lambda t: tajashop_client.remove_item(product_id, token=t)
            else:
                change = lambda t: tajashop_client.clear_cart(token=t)

            result, report = await change_account_cart(cart_sync, auth_manager.get_token(), change)
            if isinstance(result, Failure):
                return [TextContent(type="text", text=f"Could not update account cart: {result.error}")]

            text = format_cart(cart_store)
            if report and report.errors:
                text = f"{format_sync_report(report)}\n\n{text}"
            return [TextContent(type="text", text=f"Account cart updated\n\n{text}")]

        elif name == "tajashop_login":
            email = arguments.get("email")
            password = arguments.get("password")

            # Use provided credentials or fall back to environment
            if not email or not password:
                if credentials:
                    email = email or credentials.email
                    password = password or credentials.password
                else:
                    return [
                        TextContent(
                            type="text",
                            text="Error: No credentials provided and TAJASHOP_EMAIL/TAJASHOP_PASSWORD not configured.",
                        )
                    ]

            success = await tajashop_client.login(AuthCredentials(email=email, password=password))
            if not success:
                return [TextContent(type="text", text="Login failed. Please check your credentials.")]

            report = await cart_sync.sync(auth_manager.get_token())
            return [
                TextContent(
                    type="text",
                    text=f"Successfully logged in as {email}\n{format_sync_report(report)}",
                )
            ]

        elif name == "tajashop_logout":
            auth_manager.clear_session()
            cart_sync.reset()
            return [TextContent(type="text", text="Successfully logged out")]

        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return [TextContent(type="text", text=f"Error: {str(e)}")]


def build_components(settings: Settings) -> tuple[AuthManager, CartStore, TajaShopClient, CartSync]:
    """Wire the auth manager, store, client and sync orchestrator together."""
    auth = AuthManager(session_file=settings.session_file, token=settings.token)
    if settings.persist_cart:
        store = CartStore(CartStorage(settings.cart_file))
    else:
        logger.info("Cart persistence disabled, keeping the cart in memory")
        store = CartStore(MemoryCartStorage())
    client = TajaShopClient(auth, base_url=settings.api_url, timeout=settings.timeout)
    return auth, store, client, CartSync(store, client)


async def main() -> None:
    """Main entry point for the MCP server."""
    global auth_manager, cart_store, tajashop_client, cart_sync, credentials

    settings = Settings.from_env()
    auth_manager, cart_store, tajashop_client, cart_sync = build_components(settings)

    credentials = settings.credentials
    if credentials:
        logger.info(f"Credentials loaded from environment for: {credentials.email}")
    elif not auth_manager.is_authenticated():
        logger.warning("No token or credentials configured, the cart stays local until you login")

    # Sync once at startup if we already have a session
    if auth_manager.is_authenticated():
        report = await cart_sync.sync(auth_manager.get_token())
        logger.info(format_sync_report(report))

    logger.info("Starting Taja.Shop MCP Server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await tajashop_client.close()


if __name__ == "__main__":
    asyncio.run(main())
