"""Local cart store."""

import logging
from typing import Iterable, Optional, Protocol

from .models import CartItem, CartProduct, CartState

logger = logging.getLogger(__name__)


class StateStorage(Protocol):
    """Persistence backend used by the cart store."""

    def load(self) -> CartState: ...

    def save(self, state: CartState) -> bool: ...


class CartStore:
    """
    Single source of truth for the shopping cart.

    All operations are synchronous and apply in call order. Every mutation is
    written through to the storage backend; a failed write is logged by the
    backend and the in-memory state stays authoritative.
    """

    def __init__(self, storage: StateStorage) -> None:
        """
        Initialize the store from persisted state.

        Args:
            storage: Backend providing load() and save()
        """
        self.storage = storage
        state = storage.load()
        self._items: dict[str, CartItem] = {}
        for item in state.items:
            self._items[item.product_id] = item
        self._is_open = state.is_open

    @property
    def items(self) -> list[CartItem]:
        """Cart lines in insertion order."""
        return [item.model_copy() for item in self._items.values()]

    @property
    def is_open(self) -> bool:
        return self._is_open

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._items

    def get_item(self, product_id: str) -> Optional[CartItem]:
        """Get a single cart line, or None."""
        item = self._items.get(product_id)
        return item.model_copy() if item else None

    def add_item(self, product: CartProduct, quantity: int = 1) -> None:
        """
        Add a product, incrementing the quantity if it is already in the cart.

        Not idempotent: adding the same product twice adds its quantity twice.
        """
        if quantity < 1:
            logger.debug(f"Ignoring add of {product.product_id} with quantity {quantity}")
            return

        existing = self._items.get(product.product_id)
        if existing:
            self._items[product.product_id] = existing.model_copy(
                update={"quantity": existing.quantity + quantity}
            )
        else:
            self._items[product.product_id] = CartItem(
                **product.model_dump(exclude={"quantity"}), quantity=quantity
            )
        self._persist()

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set the quantity of a cart line. Zero or less removes it."""
        if product_id not in self._items:
            return
        if quantity <= 0:
            self.remove_item(product_id)
            return

        self._items[product_id] = self._items[product_id].model_copy(
            update={"quantity": quantity}
        )
        self._persist()

    def remove_item(self, product_id: str) -> None:
        if self._items.pop(product_id, None) is not None:
            self._persist()

    def clear_cart(self) -> None:
        if self._items:
            self._items.clear()
            self._persist()

    def replace_items(self, items: Iterable[CartItem]) -> None:
        """Replace the whole cart in one step, keeping quantities as given."""
        replacement: dict[str, CartItem] = {}
        for item in items:
            replacement[item.product_id] = item.model_copy()
        self._items = replacement
        self._persist()

    def toggle_cart(self) -> bool:
        """Flip cart visibility and return the new value."""
        self.set_open(not self._is_open)
        return self._is_open

    def set_open(self, is_open: bool) -> None:
        self._is_open = is_open
        self._persist()

    def get_total_items(self) -> int:
        return sum(item.quantity for item in self._items.values())

    def get_total_price(self) -> int:
        return sum(item.subtotal for item in self._items.values())

    def snapshot(self) -> CartState:
        """Current state as a serializable document."""
        return CartState(items=self.items, is_open=self._is_open)

    def _persist(self) -> None:
        try:
            self.storage.save(self.snapshot())
        except Exception as e:
            logger.error(f"Cart persistence failed, keeping in-memory state: {e}")
