"""Taja.Shop cart API client."""

import logging
from typing import Any, Iterable, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .auth import AuthManager
from .models import AuthCredentials, CartResult, Failure, MergeLine, RemoteCart, Success

logger = logging.getLogger(__name__)


class TajaShopClient:
    """
    Async client for the Taja.Shop cart endpoints.

    Cart calls never raise for remote problems. Transport errors, non-2xx
    responses, unparseable bodies and ``success: false`` all come back as a
    ``Failure`` so callers can keep the local cart usable.
    """

    DEFAULT_BASE_URL = "http://localhost:5000"

    def __init__(
        self,
        auth_manager: AuthManager,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the Taja.Shop client.

        Args:
            auth_manager: Authentication manager supplying the default token
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used for testing)
        """
        self.auth_manager = auth_manager
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def __aenter__(self) -> "TajaShopClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _headers(self, token: Optional[str]) -> dict[str, str]:
        if token is None:
            token = self.auth_manager.get_token()
        if token:
            return {"Authorization": f"Bearer {token}"}
        # Without a token the API falls back to the session cookies held by the client
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str],
        json: Optional[dict[str, Any]] = None,
    ) -> CartResult:
        """Send a request and map the response to Success or Failure."""
        logger.debug(f"{method} {path}")
        try:
            response = await self.client.request(
                method, path, json=json, headers=self._headers(token)
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            return Failure(error=f"Request failed: {e!r}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            message = self._error_message(body) or response.reason_phrase
            logger.warning(f"{method} {path} returned {response.status_code}: {message}")
            return Failure(error=message, status_code=response.status_code)

        if not isinstance(body, dict):
            logger.warning(f"{method} {path} returned a non-JSON body")
            return Failure(error="Invalid JSON response", status_code=response.status_code)

        if not body.get("success"):
            message = self._error_message(body) or "Request was not successful"
            logger.warning(f"{method} {path} reported failure: {message}")
            return Failure(error=message, status_code=response.status_code)

        try:
            cart = self._parse_cart(body.get("data"))
        except ValidationError as e:
            logger.warning(f"Could not parse cart from {method} {path}: {e}")
            return Failure(error=f"Malformed cart data: {e}", status_code=response.status_code)

        return Success(cart=cart)

    @staticmethod
    def _error_message(body: Any) -> Optional[str]:
        if isinstance(body, dict):
            return body.get("message") or body.get("error")
        return None

    @staticmethod
    def _parse_cart(data: Any) -> Optional[RemoteCart]:
        """Parse the ``data`` member of a cart response. Null means an empty cart."""
        if data is None:
            return RemoteCart()
        if isinstance(data, dict) and "items" in data:
            return RemoteCart(items=data.get("items") or [])
        return None

    async def get_cart(self, token: Optional[str] = None) -> CartResult:
        """
        Get the server-side cart.

        Args:
            token: Bearer token (defaults to the auth manager's token)

        Returns:
            Success with the parsed cart, or Failure
        """
        result = await self._request("GET", "/api/cart", token)
        if isinstance(result, Success) and result.cart is None:
            return Failure(error="Response did not contain a cart")
        return result

    async def merge_cart(self, items: Iterable[MergeLine], token: Optional[str] = None) -> CartResult:
        """
        Push guest cart lines into the server cart.

        How lines that already exist on the server are combined is decided by
        the server.
        """
        lines = [line.model_dump() for line in items]
        logger.info(f"Merging {len(lines)} local cart line(s) into server cart")
        return await self._request("POST", "/api/cart/merge", token, json={"items": lines})

    async def add_or_update_item(
        self, product_id: str, quantity: Optional[int] = None, token: Optional[str] = None
    ) -> CartResult:
        """Add a product to the server cart, or set its quantity if already present."""
        body: dict[str, Any] = {"productId": product_id}
        if quantity is not None:
            body["quantity"] = quantity
        return await self._request("POST", "/api/cart/items", token, json=body)

    async def update_item_quantity(
        self, product_id: str, quantity: int, token: Optional[str] = None
    ) -> CartResult:
        """Set the quantity of a server cart line. Zero removes it."""
        return await self._request(
            "PUT", f"/api/cart/items/{quote(product_id, safe='')}", token, json={"quantity": quantity}
        )

    async def remove_item(self, product_id: str, token: Optional[str] = None) -> CartResult:
        return await self._request("DELETE", f"/api/cart/items/{quote(product_id, safe='')}", token)

    async def clear_cart(self, token: Optional[str] = None) -> CartResult:
        return await self._request("DELETE", "/api/cart", token)

    async def login(self, credentials: AuthCredentials) -> bool:
        """
        Authenticate with Taja.Shop and store the bearer token.

        Args:
            credentials: User credentials (email and password)

        Returns:
            True if login successful, False otherwise
        """
        logger.info(f"Attempting login for {credentials.email}")
        try:
            response = await self.client.post(
                "/api/auth/login",
                json={"email": credentials.email, "password": credentials.password},
            )
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Login error: {e!r}")
            return False

        token = None
        if response.is_success and isinstance(body, dict) and body.get("success"):
            data = body.get("data")
            if isinstance(data, dict):
                token = data.get("token")

        if not token:
            logger.error(f"Login failed: {self._error_message(body) or response.status_code}")
            return False

        self.auth_manager.save_session(token, user_email=credentials.email)
        logger.info("✓ Login successful")
        return True

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
