"""Data models for the Taja.Shop cart."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator


class CartProduct(BaseModel):
    """Product descriptor passed when adding to the cart."""

    product_id: str = Field(description="Product ID, unique within the cart")
    title: str = Field(description="Product title at the time it was added")
    unit_price: int = Field(ge=0, description="Unit price in the smallest currency unit")
    images: list[str] = Field(default_factory=list, description="Image references, first is primary")
    seller_name: str = Field(default="", description="Seller display name")
    shop_slug: str = Field(default="", description="Seller shop slug")


class CartItem(CartProduct):
    """A product line in the cart."""

    quantity: int = Field(ge=1, description="Quantity of the product")

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity


class CartState(BaseModel):
    """Persisted cart document."""

    items: list[CartItem] = Field(default_factory=list, description="Cart lines in insertion order")
    is_open: bool = Field(default=False, description="Cart widget visibility")


class RemoteCartItem(BaseModel):
    """Cart line as returned by the Taja.Shop API."""

    product: str
    title: str = ""
    price: int = 0
    image: Optional[str] = None
    quantity: int = Field(default=1, ge=1)

    @field_validator("price", mode="before")
    @classmethod
    def round_price(cls, value: object) -> object:
        """The API stores prices as plain numbers; round fractional ones to whole units."""
        if isinstance(value, float):
            return round(value)
        return value

    def to_cart_item(self) -> CartItem:
        return CartItem(
            product_id=self.product,
            title=self.title,
            unit_price=self.price,
            images=[self.image] if self.image else [],
            quantity=self.quantity,
        )


class RemoteCart(BaseModel):
    """Server-side cart."""

    items: list[RemoteCartItem] = Field(default_factory=list)


class MergeLine(BaseModel):
    """Line sent to the merge endpoint."""

    product: str
    quantity: int = Field(ge=1)


class Success(BaseModel):
    """Successful remote call."""

    ok: bool = True
    cart: Optional[RemoteCart] = Field(None, description="Cart echoed by the server, if any")


class Failure(BaseModel):
    """Failed remote call."""

    ok: bool = False
    error: str
    status_code: Optional[int] = None


CartResult = Union[Success, Failure]


class SyncPhase(str, Enum):
    """Sync orchestrator phases."""

    IDLE = "idle"
    MERGING = "merging"
    HYDRATING = "hydrating"


class SyncReport(BaseModel):
    """Outcome of a single sync invocation."""

    phase: SyncPhase = SyncPhase.IDLE
    merged: bool = False
    hydrated: bool = False
    skipped: bool = False
    stale: bool = False
    errors: list[str] = Field(default_factory=list)


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class SessionData(BaseModel):
    """Session data for the signed-in user."""

    token: Optional[str] = Field(None, description="Bearer token")
    user_email: Optional[str] = Field(None, description="User email")
