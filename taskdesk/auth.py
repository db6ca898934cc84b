"""
Bearer Token Store.

Provides an injectable ``TokenStore`` that holds the access token of
the current session.  The ``ApiGateway`` reads it on every outbound
request and sends it as ``Authorization: Bearer <token>``.

Usage::

    from taskdesk.auth import TokenStore

    tokens = TokenStore()
    tokens.set_token("eyJhbGciOi...")
    tokens.authorization_header()   # {"Authorization": "Bearer eyJ..."}
    tokens.clear_token()
"""

from __future__ import annotations

import threading
from typing import Optional


class TokenStore:
    """Injectable holder for the single active bearer token.

    Exactly one token is active at a time: ``set_token`` silently
    replaces the previous one.  There is no refresh logic; a ``401``
    from the API is surfaced to the caller as a session-expired error.
    """

    def __init__(self) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._token: Optional[str] = None

    def set_token(self, token: str) -> None:
        """Make *token* the active bearer token."""
        if not token:
            raise ValueError("Cannot activate an empty access token.")
        with self._lock:
            self._token = token

    def clear_token(self) -> None:
        """Drop the active token; subsequent requests go out anonymous."""
        with self._lock:
            self._token = None

    def get_token(self) -> Optional[str]:
        """Return the active token, or ``None`` if not set."""
        with self._lock:
            return self._token

    @property
    def has_token(self) -> bool:
        with self._lock:
            return self._token is not None

    def authorization_header(self) -> dict[str, str]:
        """Header mapping for the active token; empty when signed out."""
        with self._lock:
            if self._token is None:
                return {}
            return {"Authorization": f"Bearer {self._token}"}
