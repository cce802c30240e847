"""Authentication and session management for Taja.Shop."""

import json
import os
from pathlib import Path
from typing import Optional
import logging

from .models import SessionData

logger = logging.getLogger(__name__)


class AuthManager:
    """Manages the bearer token and session persistence."""

    def __init__(self, session_file: Optional[str] = None, token: Optional[str] = None) -> None:
        """
        Initialize the authentication manager.

        Args:
            session_file: Path to store session data. Defaults to ~/.tajashop_session.json
            token: Bearer token that overrides the saved session (e.g. from TAJASHOP_TOKEN)
        """
        if session_file is None:
            session_file = str(Path.home() / ".tajashop_session.json")
        self.session_file = session_file
        self.session: SessionData = self._load_session()

        if token:
            logger.info("Using bearer token from configuration")
            self.session = SessionData(token=token, user_email=self.session.user_email)

    def _load_session(self) -> SessionData:
        """Load session data from file if it exists."""
        if os.path.exists(self.session_file):
            try:
                with open(self.session_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                    session = SessionData(**data)
                    if session.token:
                        logger.info(f"Loaded existing session from {self.session_file}")
                    return session
            except (OSError, TypeError, ValueError) as e:
                # If file is corrupted, start fresh
                logger.warning(f"Could not load session: {e}")
        return SessionData()

    def _save_session(self) -> None:
        """Save session data to file."""
        try:
            with open(self.session_file, "w") as f:
                json.dump(self.session.model_dump(), f, indent=2)
            os.chmod(self.session_file, 0o600)
            logger.info(f"Session saved to {self.session_file}")
        except OSError as e:
            logger.error(f"Could not save session: {e}")

    def save_session(self, token: str, user_email: Optional[str] = None) -> None:
        """
        Save authentication session.

        Args:
            token: Bearer token from a successful login
            user_email: User's email address
        """
        self.session = SessionData(token=token, user_email=user_email)
        self._save_session()

    def clear_session(self) -> None:
        """Clear the current session and delete the session file."""
        self.session = SessionData()
        if os.path.exists(self.session_file):
            try:
                os.remove(self.session_file)
                logger.info("Session cleared")
            except OSError as e:
                logger.warning(f"Could not delete session file: {e}")

    def is_authenticated(self) -> bool:
        return bool(self.session.token)

    def get_token(self) -> Optional[str]:
        """Get the current bearer token."""
        return self.session.token
