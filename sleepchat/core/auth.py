"""Session authorization for platform requests.

The credential / two-factor login flow is owned by the desktop shell. This
service only consumes an already-issued session: the ``auth`` cookie (and the
optional ``twoFactorAuth`` cookie) are handed over through configuration or
``SessionAuth.set_session()``, and every request builds its headers from them.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from sleepchat.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthStatus:
    authenticated: bool
    user_id: str | None = None
    display_name: str | None = None


class AuthProvider(Protocol):
    def get_auth_headers(self) -> dict[str, str] | None: ...

    def get_status(self) -> AuthStatus: ...

    async def logout(self) -> None: ...


class SessionAuth:
    """Auth provider backed by session cookies issued elsewhere."""

    def __init__(
        self,
        auth_cookie: str = "",
        two_factor_cookie: str = "",
        user_agent: str | None = None,
    ):
        self._auth_cookie = auth_cookie
        self._two_factor_cookie = two_factor_cookie
        self._user_agent = user_agent or settings.user_agent
        self._user_id: str | None = None
        self._display_name: str | None = None

    @classmethod
    def from_settings(cls) -> "SessionAuth":
        return cls(settings.auth_cookie, settings.two_factor_auth_cookie, settings.user_agent)

    def set_session(self, auth_cookie: str, two_factor_cookie: str = "") -> None:
        self._auth_cookie = auth_cookie
        self._two_factor_cookie = two_factor_cookie
        self._user_id = None
        self._display_name = None

    def bind_user(self, user: dict) -> None:
        """Remember who the session belongs to (from ``GET /auth/user``)."""
        self._user_id = user.get("id")
        self._display_name = user.get("displayName")
        logger.info(f"Session bound to {self._display_name} ({self._user_id})")

    def get_auth_headers(self) -> dict[str, str] | None:
        if not self._auth_cookie:
            return None

        cookie = f"auth={self._auth_cookie}"
        if self._two_factor_cookie:
            cookie += f"; twoFactorAuth={self._two_factor_cookie}"

        return {
            "Cookie": cookie,
            "User-Agent": self._user_agent,
            "Content-Type": "application/json",
        }

    def get_status(self) -> AuthStatus:
        return AuthStatus(
            authenticated=bool(self._auth_cookie),
            user_id=self._user_id,
            display_name=self._display_name,
        )

    async def logout(self) -> None:
        self.set_session("")
        logger.info("Session cleared")
