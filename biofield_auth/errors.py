"""
Session Core Exceptions.

``AuthError`` is the only exception type that user-initiated lifecycle
operations raise.  It always carries a stable :class:`AuthErrorKind`
that the presentation layer maps to localized copy.

``ProviderError`` lives at the identity-provider seam and never escapes
the adapter: it is converted into an ``AuthError`` by
:func:`biofield_auth.providers.error_map.to_auth_error`.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class AuthErrorKind(StrEnum):
    """Uniform error taxonomy for every authentication failure."""

    INVALID_CREDENTIALS = "InvalidCredentials"
    ACCOUNT_ALREADY_EXISTS = "AccountAlreadyExists"
    WEAK_CREDENTIAL = "WeakCredential"
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    PROVIDER_CANCELLED = "ProviderCancelled"
    BIOMETRIC_UNAVAILABLE = "BiometricUnavailable"
    SESSION_NOT_FOUND = "SessionNotFound"
    NETWORK_FAILURE = "NetworkFailure"
    NOT_AUTHENTICATED = "NotAuthenticated"
    RATE_LIMITED = "RateLimited"
    UNKNOWN = "Unknown"


DEFAULT_ERROR_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.INVALID_CREDENTIALS: "Incorrect email or password.",
    AuthErrorKind.ACCOUNT_ALREADY_EXISTS: "This email is already in use.",
    AuthErrorKind.WEAK_CREDENTIAL: "The password must be at least 6 characters.",
    AuthErrorKind.ACCOUNT_NOT_FOUND: "No account was found for this email.",
    AuthErrorKind.PROVIDER_CANCELLED: "Sign-in was cancelled.",
    AuthErrorKind.BIOMETRIC_UNAVAILABLE: "Biometric sign-in is not available.",
    AuthErrorKind.SESSION_NOT_FOUND: "No saved session was found. Sign in with your password.",
    AuthErrorKind.NETWORK_FAILURE: "Cannot reach the server. Check your internet connection.",
    AuthErrorKind.NOT_AUTHENTICATED: "You need to sign in first.",
    AuthErrorKind.RATE_LIMITED: "Too many attempts. Try again later.",
    AuthErrorKind.UNKNOWN: "Authentication error.",
}
"""Default English copy per kind.  Presentation layers may override."""


class AuthError(Exception):
    """Typed authentication failure.

    Attributes
    ----------
    kind:
        Stable error category driving user-facing copy.
    message:
        Short human-readable description.
    detail:
        Original provider message or code, kept for diagnostics only.
    """

    def __init__(
        self,
        kind: AuthErrorKind,
        message: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        self.kind: AuthErrorKind = kind
        self.message: str = message or DEFAULT_ERROR_MESSAGES[kind]
        self.detail: Optional[str] = detail
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.value!r}, message={self.message!r})"


class ProviderError(Exception):
    """Raw failure reported by an external identity or profile backend.

    ``code`` is the backend-specific identifier (``auth/wrong-password``,
    ``invalid_credentials``, ``http_404`` ...).  ``cancelled`` marks a
    user abort of the external sign-in UI.
    """

    def __init__(
        self,
        provider: str,
        code: str,
        message: str = "",
        cancelled: bool = False,
    ) -> None:
        self.provider: str = provider
        self.code: str = code
        self.message: str = message or code
        self.cancelled: bool = cancelled
        super().__init__(f"[{provider}] {code}: {self.message}")


class InvalidTransitionError(RuntimeError):
    """Raised when an event is not allowed in the current session phase."""


class CredentialStoreError(RuntimeError):
    """Raised by a key-value store when the device storage is unavailable."""
