"""
Session Access Module
=====================

Thin adapter over the Starlette session (``request.session``) that gives the
dispatcher the operations it needs: reading the logged-in user, checking
authentication, framework-level logout and destroying the session.

The session itself is owned by SessionMiddleware; this module never creates
one.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"


class OidcSession:
    """
    Per-request view of the authentication state stored in the session.

    Attributes:
        request: Request whose session is wrapped
    """

    def __init__(self, request: Request):
        self.request = request

    @property
    def _data(self) -> Dict[str, Any]:
        return self.request.session

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self._data.get(SESSION_USER_KEY)

    def is_authenticated(self) -> bool:
        return bool(self.user)

    def log_in(self, user: Dict[str, Any]) -> None:
        """
        Store the authenticated user record.

        Args:
            user: Serialized SessionUser (JSON-compatible)
        """
        self._data[SESSION_USER_KEY] = user

    def save_user(self, user: Dict[str, Any]) -> None:
        """Write back a user record that was modified in place."""
        self._data[SESSION_USER_KEY] = user

    def logout(self) -> None:
        """Drop the user from the session, keeping other session entries."""
        self._data.pop(SESSION_USER_KEY, None)

    async def destroy(self) -> None:
        """
        Destroy the session entry.

        With cookie sessions, clearing the data makes SessionMiddleware
        expire the cookie on the response.
        """
        self._data.clear()
        logger.debug("Session destroyed")
