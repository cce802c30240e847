"""HTTP server for the Taja.Shop cart."""

import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .auth import AuthManager
from .config import Settings
from .models import AuthCredentials, CartProduct, CartResult, CartState, Failure
from .server import build_components, change_account_cart
from .store import CartStore
from .sync import CartSync
from .tajashop_client import TajaShopClient

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("tajashop-http-server")

# Global state
auth_manager: Optional[AuthManager] = None
cart_store: CartStore
tajashop_client: TajaShopClient
cart_sync: CartSync


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global auth_manager, cart_store, tajashop_client, cart_sync

    # Startup
    logger.info("Starting Taja.Shop HTTP Server...")
    auth_manager, cart_store, tajashop_client, cart_sync = build_components(Settings.from_env())

    yield

    # Shutdown
    logger.info("Shutting down Taja.Shop HTTP Server...")
    await tajashop_client.close()


app = FastAPI(
    title="Taja.Shop Cart Server",
    description="HTTP API for the Taja.Shop shopping cart",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class AddItemRequest(CartProduct):
    quantity: int = Field(default=1, ge=1)


class AccountItemRequest(BaseModel):
    product_id: str
    quantity: Optional[int] = Field(default=None, ge=1)


class UpdateQuantityRequest(BaseModel):
    quantity: int


class SyncRequest(BaseModel):
    token: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    success: bool
    message: str


class CartResponse(CartState):
    total_items: int
    total_price: int


def cart_response() -> CartResponse:
    state = cart_store.snapshot()
    return CartResponse(
        items=state.items,
        is_open=state.is_open,
        total_items=cart_store.get_total_items(),
        total_price=cart_store.get_total_price(),
    )


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Taja.Shop Cart Server",
        "version": "0.1.0",
        "description": "HTTP API for the Taja.Shop shopping cart",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/items",
                "update": "PUT /cart/items/{product_id}",
                "remove": "DELETE /cart/items/{product_id}",
                "clear": "DELETE /cart",
                "toggle": "POST /cart/toggle",
            },
            "account_cart": {
                "add": "POST /account/cart/items",
                "update": "PUT /account/cart/items/{product_id}",
                "remove": "DELETE /account/cart/items/{product_id}",
                "clear": "DELETE /account/cart",
            },
            "sync": {"run": "POST /sync", "status": "GET /sync/status"},
            "auth": {"login": "POST /auth/login", "logout": "POST /auth/logout", "status": "GET /auth/status"},
        },
        "authenticated": auth_manager.is_authenticated() if auth_manager else False,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": auth_manager.is_authenticated() if auth_manager else False,
    }


# Cart endpoints
@app.get("/cart", response_model=CartResponse)
async def get_cart():
    """Get the local cart with totals."""
    return cart_response()


@app.post("/cart/items", response_model=CartResponse)
async def add_item(request: AddItemRequest):
    """Add a product to the cart, incrementing its quantity if present."""
    try:
        product = CartProduct(**request.model_dump(exclude={"quantity"}))
        cart_store.add_item(product, request.quantity)
        return cart_response()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Add to cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/cart/items/{product_id}", response_model=CartResponse)
async def update_quantity(product_id: str, request: UpdateQuantityRequest):
    """Set the quantity of a cart item. Zero or less removes it."""
    try:
        if product_id not in cart_store:
            raise HTTPException(status_code=404, detail=f"Product {product_id} is not in the cart")
        cart_store.update_quantity(product_id, request.quantity)
        return cart_response()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/cart/items/{product_id}", response_model=CartResponse)
async def remove_item(product_id: str):
    """Remove a product from the cart."""
    try:
        cart_store.remove_item(product_id)
        return cart_response()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Remove from cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/cart", response_model=CartResponse)
async def clear_cart():
    """Empty the cart."""
    try:
        cart_store.clear_cart()
        return cart_response()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Clear cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/cart/toggle", response_model=CartResponse)
async def toggle_cart():
    """Open or close the cart widget."""
    try:
        cart_store.toggle_cart()
        return cart_response()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Toggle cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


# Account cart endpoints
async def change_account(change: Callable[[str], Awaitable[CartResult]]) -> CartResponse:
    token = auth_manager.get_token()
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    result, report = await change_account_cart(cart_sync, token, change)
    if isinstance(result, Failure):
        raise HTTPException(status_code=502, detail=f"Could not update account cart: {result.error}")
    if report and report.errors:
        logger.warning(f"Cart refresh after account change had errors: {report.errors}")
    return cart_response()


@app.post("/account/cart/items", response_model=CartResponse)
async def add_account_item(request: AccountItemRequest):
    """Add a product to the account cart and reload the local cart."""
    try:
        return await change_account(
            lambda t: tajashop_client.add_or_update_item(request.product_id, request.quantity, token=t)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Add to account cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/account/cart/items/{product_id}", response_model=CartResponse)
async def update_account_item(product_id: str, request: UpdateQuantityRequest):
    """Set the quantity of an account cart item and reload the local cart."""
    try:
        return await change_account(
            lambda t: tajashop_client.update_item_quantity(product_id, request.quantity, token=t)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update account cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/account/cart/items/{product_id}", response_model=CartResponse)
async def remove_account_item(product_id: str):
    """Remove a product from the account cart and reload the local cart."""
    try:
        return await change_account(lambda t: tajashop_client.remove_item(product_id, token=t))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Remove from account cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/account/cart", response_model=CartResponse)
async def clear_account_cart():
    """Empty the account cart and reload the local cart."""
    try:
        return await change_account(lambda t: tajashop_client.clear_cart(token=t))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Clear account cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


# Sync endpoints
@app.post("/sync")
async def sync(request: SyncRequest):
    """Run the merge-then-hydrate cycle for the given or saved token."""
    try:
        token = request.token or auth_manager.get_token()
        if not token:
            raise HTTPException(status_code=401, detail="Not authenticated")

        report = await cart_sync.sync(token)
        return {"report": report.model_dump(), "cart": cart_response().model_dump()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Sync error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/sync/status")
async def sync_status():
    """Get the sync orchestrator state."""
    return {
        "phase": cart_sync.phase.value,
        "active": cart_sync.active_token is not None,
    }


# Authentication endpoints
@app.post("/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    """Login to Taja.Shop and sync the cart."""
    try:
        credentials = AuthCredentials(email=request.email, password=request.password)
        success = await tajashop_client.login(credentials)

        if not success:
            return LoginResponse(success=False, message="Login failed. Check your credentials.")

        report = await cart_sync.sync(auth_manager.get_token())
        if report.errors:
            logger.warning(f"Cart sync after login had errors: {report.errors}")
        return LoginResponse(success=True, message=f"Successfully logged in as {request.email}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/auth/logout")
async def logout():
    """Logout and stop syncing the cart."""
    try:
        auth_manager.clear_session()
        cart_sync.reset()
        return {"success": True, "message": "Successfully logged out"}
    except Exception as e:
        logger.error(f"Logout error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/auth/status")
async def auth_status():
    """Get authentication status."""
    return {
        "authenticated": auth_manager.is_authenticated(),
        "email": auth_manager.session.user_email if auth_manager.is_authenticated() else None,
    }


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the HTTP server."""
    import uvicorn

    if reload:
        uvicorn.run("tajashop_server.http_server:app", host=host, port=port, log_level="info", reload=True)
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
