"""Authentication state and session persistence."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from .errors import SupabaseError
from .models import AuthCredentials, SessionData, UserProfile
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionData], None]


class SessionState:
    """
    Single authoritative holder of the current session.

    Components that care about sign-in changes subscribe instead of polling.
    """

    def __init__(self, session: Optional[SessionData] = None) -> None:
        self._session = session or SessionData()
        self._listeners: list[SessionListener] = []
        self._lock = threading.Lock()

    @property
    def session(self) -> SessionData:
        return self._session

    @property
    def user(self) -> Optional[UserProfile]:
        return self._session.user if self._session.is_authenticated else None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener called with the new session on every change.

        Returns:
            A function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set(self, session: SessionData) -> None:
        """Replace the session and notify listeners."""
        with self._lock:
            self._session = session
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)


class AuthManager:
    """Manages authentication state and session persistence."""

    def __init__(self, supabase: SupabaseClient, session_file: Optional[str] = None) -> None:
        """
        Initialize the authentication manager.

        Args:
            supabase: Hosted backend client used for auth calls
            session_file: Path to store session data. Defaults to ~/.storefront_session.json
        """
        if session_file is None:
            session_file = str(Path.home() / ".storefront_session.json")
        self.supabase = supabase
        self.session_file = session_file
        self.state = SessionState(self._load_session())

    def _load_session(self) -> SessionData:
        """Load session data from file if it exists."""
        if os.path.exists(self.session_file):
            try:
                with open(self.session_file, "r") as f:
                    session = SessionData(**json.load(f))
                if session.is_authenticated:
                    logger.info(f"Loaded existing session from {self.session_file}")
                return session
            except (json.JSONDecodeError, ValidationError, TypeError, OSError) as e:
                # If file is corrupted, start fresh
                logger.warning(f"Could not load session: {e}")
        return SessionData()

    def _save_session(self) -> None:
        """Save session data to file."""
        with open(self.session_file, "w") as f:
            json.dump(self.state.session.model_dump(), f, default=str)
        # Set restrictive permissions on session file
        os.chmod(self.session_file, 0o600)

    @property
    def session(self) -> SessionData:
        return self.state.session

    @property
    def current_user(self) -> Optional[UserProfile]:
        return self.state.user

    @property
    def access_token(self) -> Optional[str]:
        return self.session.access_token if self.is_authenticated() else None

    def is_authenticated(self) -> bool:
        """Check if there's an active authenticated session."""
        return self.session.is_authenticated and bool(self.session.access_token)

    def _parse_user(self, data: dict) -> UserProfile:
        return UserProfile(
            id=str(data["id"]),
            email=data.get("email"),
            user_metadata=data.get("user_metadata") or {},
        )

    def save_session(self, access_token: str, refresh_token: Optional[str], user: UserProfile) -> None:
        """
        Save authentication session.

        Args:
            access_token: Bearer token from a successful sign-in
            refresh_token: Refresh token, if issued
            user: Signed-in user
        """
        self.state.set(
            SessionData(
                access_token=access_token,
                refresh_token=refresh_token,
                user=user,
                is_authenticated=True,
            )
        )
        self._save_session()

    def clear_session(self) -> None:
        """Clear the current session."""
        self.state.set(SessionData())
        if os.path.exists(self.session_file):
            os.remove(self.session_file)

    def sign_in(self, credentials: AuthCredentials) -> bool:
        """
        Authenticate with email and password.

        Args:
            credentials: User credentials (email and password)

        Returns:
            True if login successful, False otherwise
        """
        logger.info(f"Attempting to sign in: {credentials.email}")
        try:
            data = self.supabase.sign_in_with_password(credentials.email, credentials.password)
            user = self._parse_user(data["user"])
            self.save_session(data["access_token"], data.get("refresh_token"), user)
        except SupabaseError as e:
            logger.error(f"Sign in error: {e.message}")
            return False
        except (KeyError, TypeError) as e:
            logger.error(f"Unexpected sign in response: {e}")
            return False

        logger.info(f"✓ Sign in successful for: {user.id}")
        return True

    def sign_up(self, credentials: AuthCredentials, full_name: str) -> bool:
        """
        Register a new account. The user must confirm their email before signing in.

        Returns:
            True if the account was created
        """
        logger.info(f"Attempting to sign up: {credentials.email}")
        try:
            self.supabase.sign_up(credentials.email, credentials.password, full_name)
        except SupabaseError as e:
            logger.error(f"Sign up error: {e.message}")
            return False
        logger.info(f"Sign up successful for: {credentials.email}")
        return True

    def sign_out(self) -> None:
        """Revoke the remote session (best effort) and clear the local one."""
        token = self.access_token
        if token:
            try:
                self.supabase.sign_out(token)
            except SupabaseError as e:
                logger.warning(f"Remote sign out failed: {e.message}")
        self.clear_session()
        logger.info("Sign out successful")
