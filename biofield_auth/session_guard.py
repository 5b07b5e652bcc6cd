"""
Session Access Guard.

Provides the ``require_session`` decorator that rejects calls made
without an active session.

Usage::

    from biofield_auth.session_guard import require_session

    guard = require_session(session_facade)

    @guard
    async def load_dashboard(user_id: str) -> Dashboard:
        ...
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, Protocol, TypeVar

from biofield_auth.errors import AuthError, AuthErrorKind

P = ParamSpec("P")
R = TypeVar("R")


class SessionSource(Protocol):
    """Anything exposing the current authentication status."""

    @property
    def is_authenticated(self) -> bool: ...  # noqa: E704


def require_session(
    session: SessionSource,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Return a decorator that enforces an active session via *session*.

    The returned decorator checks ``session.is_authenticated`` before
    every call to the wrapped coroutine function.  Without an active
    session an :class:`AuthError` of kind ``NotAuthenticated`` is raised
    and the wrapped function is not called.

    Args:
        session: The session facade or state machine that holds the
            current authentication state.

    Returns:
        A decorator suitable for wrapping async service callables.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if not session.is_authenticated:
                raise AuthError(
                    AuthErrorKind.NOT_AUTHENTICATED,
                    "Authentication required. Please sign in before "
                    "performing this action.",
                )
            return await func(*args, **kwargs)

        return wrapper

    return decorator
