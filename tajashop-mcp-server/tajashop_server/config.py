"""Settings loaded from the environment."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import AuthCredentials


class Settings(BaseModel):
    """Runtime configuration."""

    api_url: str = Field(default="http://localhost:5000", description="Taja.Shop API base URL")
    token: Optional[str] = Field(None, description="Bearer token")
    email: Optional[str] = None
    password: Optional[str] = None
    cart_file: str = Field(default_factory=lambda: str(Path.home() / ".tajashop_cart.json"))
    session_file: str = Field(default_factory=lambda: str(Path.home() / ".tajashop_session.json"))
    timeout: float = Field(default=30.0, gt=0)
    persist_cart: bool = Field(default=True, description="Save the cart to cart_file; off keeps it in memory")

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from TAJASHOP_* environment variables.

        Unset variables keep their defaults.
        """
        values = {
            "api_url": os.environ.get("TAJASHOP_API_URL"),
            "token": os.environ.get("TAJASHOP_TOKEN"),
            "email": os.environ.get("TAJASHOP_EMAIL"),
            "password": os.environ.get("TAJASHOP_PASSWORD"),
            "cart_file": os.environ.get("TAJASHOP_CART_FILE"),
            "session_file": os.environ.get("TAJASHOP_SESSION_FILE"),
            "timeout": os.environ.get("TAJASHOP_TIMEOUT"),
            "persist_cart": os.environ.get("TAJASHOP_PERSIST_CART"),
        }
        return cls(**{key: value for key, value in values.items() if value})

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        if self.email and self.password:
            return AuthCredentials(email=self.email, password=self.password)
        return None
