"""Durable storage for the local cart."""

import json
import os
from pathlib import Path
from typing import Optional
import logging

from .models import CartState

logger = logging.getLogger(__name__)


class CartStorage:
    """Persists the cart as a JSON file in the user's home directory."""

    def __init__(self, cart_file: Optional[str] = None) -> None:
        """
        Initialize cart storage.

        Args:
            cart_file: Path to the cart file (default: ~/.tajashop_cart.json)
        """
        if cart_file is None:
            cart_file = str(Path.home() / ".tajashop_cart.json")
        self.cart_file = cart_file

    def load(self) -> CartState:
        """Load the saved cart, or an empty one if there is none."""
        if not os.path.exists(self.cart_file):
            return CartState()

        try:
            with open(self.cart_file, encoding="utf-8") as f:
                data = json.load(f)
            state = CartState(**data)
            logger.info(f"Loaded {len(state.items)} cart item(s) from {self.cart_file}")
            return state
        except (OSError, TypeError, ValueError) as e:
            # ValueError covers bad JSON, bad UTF-8 and pydantic validation errors
            logger.warning(f"Could not load cart, starting empty: {e}")
            return CartState()

    def save(self, state: CartState) -> bool:
        """Write the cart to disk. Returns False if the write failed."""
        tmp_file = f"{self.cart_file}.tmp"
        try:
            # Write aside, then swap in atomically
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(state.model_dump(), f, indent=2)
            os.chmod(tmp_file, 0o600)
            os.replace(tmp_file, self.cart_file)
            logger.debug(f"Cart saved to {self.cart_file}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Could not save cart: {e}")
            if os.path.exists(tmp_file):
                try:
                    os.remove(tmp_file)
                except OSError:
                    logger.warning(f"Could not remove {tmp_file}")
            return False

    def clear(self) -> None:
        """Delete the cart file."""
        if os.path.exists(self.cart_file):
            try:
                os.remove(self.cart_file)
                logger.info("Cart file removed")
            except OSError as e:
                logger.warning(f"Could not delete cart file: {e}")


class MemoryCartStorage:
    """Keeps the cart in memory only."""

    def __init__(self, state: Optional[CartState] = None) -> None:
        self._state = state.model_copy(deep=True) if state else CartState()

    def load(self) -> CartState:
        return self._state.model_copy(deep=True)

    def save(self, state: CartState) -> bool:
        self._state = state.model_copy(deep=True)
        return True

    def clear(self) -> None:
        self._state = CartState()
