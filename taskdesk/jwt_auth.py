"""
Session Guard Decorator.

Provides a factory that produces a decorator for gating service-layer
functions behind an authenticated session.  The guard consults both
the ``UserStateStore`` (is somebody signed in?) and the ``TokenStore``
(will the request carry a bearer token?).

Usage::

    from taskdesk.auth import TokenStore
    from taskdesk.jwt_auth import require_session
    from taskdesk.user_store import UserStateStore

    session_guard = require_session(store, tokens)

    @session_guard
    def some_service_function() -> str:
        return "only reachable when logged in"
"""

from __future__ import annotations

from functools import wraps
from typing import Callable, ParamSpec, TypeVar

from taskdesk.auth import TokenStore
from taskdesk.user_store import UserStateStore

P = ParamSpec("P")
R = TypeVar("R")


class AuthenticationError(RuntimeError):
    """Raised when a guarded function is called without an active session."""


def require_session(
    store: UserStateStore,
    tokens: TokenStore,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Return a decorator that enforces an authenticated session.

    The returned decorator checks ``store.is_authenticated`` and
    ``tokens.has_token`` before every call to the wrapped function.
    If either is missing, an :class:`AuthenticationError` is raised.

    Args:
        store: The injectable ``UserStateStore`` that holds the
            current user.
        tokens: The injectable ``TokenStore`` used by the gateway.

    Returns:
        A decorator suitable for wrapping service-layer callables.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if not store.is_authenticated or not tokens.has_token:
                raise AuthenticationError(
                    "Authentication required. Please sign in before "
                    "performing this action."
                )
            return func(*args, **kwargs)

        return wrapper

    return decorator
