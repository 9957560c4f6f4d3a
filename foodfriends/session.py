"""Signed-in session state.

``SessionController`` owns the current auth user and the ``registering``
flag. While an account is being created the auth provider briefly reports a
signed-in user; those callbacks are ignored so the app does not jump into
the main screens before registration has finished and signed back out.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from foodfriends.errors import RegistrationError
from foodfriends.logging_config import log_context
from foodfriends.models import UserProfile
from foodfriends.store.base import DocumentStore
from foodfriends.validators import RegistrationInput

logger = logging.getLogger(__name__)

REGISTRATION_ERROR_MESSAGES: dict[str, str] = {
    "auth/email-already-in-use": "This email is already registered",
    "auth/invalid-email": "Invalid email address",
    "auth/weak-password": "Password is too weak",
}


def registration_error_message(code: str, debug: bool = False, detail: str = "") -> str:
    """User-facing text for an auth provider error code."""
    if code in REGISTRATION_ERROR_MESSAGES:
        return REGISTRATION_ERROR_MESSAGES[code]
    if debug and detail:
        return f"Registration failed: {detail}"
    return "Failed to create account. Please try again."


@dataclass
class AuthUser:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class AuthGateway(ABC):
    """External authentication provider."""

    @abstractmethod
    async def create_user(self, email: str, password: str) -> AuthUser:
        """Create an account and sign it in. Raises RegistrationError with the provider code."""

    @abstractmethod
    async def update_profile(self, uid: str, display_name: str, photo_url: str) -> None:
        """Set the account's display name and photo URL."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current auth session."""


class SessionController:
    def __init__(self, auth: AuthGateway, store: DocumentStore):
        self.auth = auth
        self.store = store
        self.current_user: Optional[AuthUser] = None
        self.registering = False
        self.initial_load = True

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def on_auth_state_changed(self, user: Optional[AuthUser]) -> None:
        if not self.registering:
            self.current_user = user
        self.initial_load = False

    def current_profile(self) -> Optional[UserProfile]:
        """Profile view of the signed-in user, as used for the leaderboard's self entry."""
        if self.current_user is None:
            return None
        return UserProfile(
            user_id=self.current_user.uid,
            name=self.current_user.display_name or "",
            email=self.current_user.email,
            avatar_url=self.current_user.photo_url,
        )

    async def register(self, data: RegistrationInput) -> UserProfile:
        """Create the account and its user document, then sign out.

        The new user logs in explicitly afterwards. ``registering`` is set for
        the whole transaction and cleared on success and on failure.
        """
        self.registering = True
        try:
            user = await self.auth.create_user(data.email, data.password)
            await self.auth.update_profile(user.uid, data.name, data.avatar_url)
            profile = await self.store.create_profile(
                UserProfile(
                    user_id=user.uid,
                    name=data.name,
                    name_search=data.name.lower(),
                    email=data.email,
                    avatar_url=data.avatar_url,
                )
            )
            await self.auth.sign_out()
            logger.info("User registered", extra=log_context(user=user.uid))
            return profile
        except RegistrationError as e:
            logger.warning("Registration failed (%s): %s", e.code or "unknown", e)
            raise
        finally:
            self.registering = False

    async def sign_out(self) -> None:
        await self.auth.sign_out()
        self.current_user = None
