"""
Provider Error Mapping.

Maps every backend-specific failure code onto exactly one
:class:`~biofield_auth.errors.AuthErrorKind`.  Codes are matched exactly
first, then by substring (identity services embed the code in longer
messages).  Anything unmapped becomes ``Unknown`` with the original
message preserved in ``AuthError.detail``.
"""

from __future__ import annotations

import httpx

from biofield_auth.errors import AuthError, AuthErrorKind, ProviderError
from biofield_auth.models.enums import IdentityProviderKind

# ---------------------------------------------------------------------------
# Code tables
# ---------------------------------------------------------------------------

_COMMON_CODES: dict[str, AuthErrorKind] = {
    "network_error": AuthErrorKind.NETWORK_FAILURE,
    "network_unavailable": AuthErrorKind.NETWORK_FAILURE,
    "timeout": AuthErrorKind.NETWORK_FAILURE,
}

PROVIDER_ERROR_MAP: dict[IdentityProviderKind, dict[str, AuthErrorKind]] = {
    IdentityProviderKind.PASSWORD: {
        # Firebase-style identifiers
        "auth/user-not-found": AuthErrorKind.ACCOUNT_NOT_FOUND,
        "auth/wrong-password": AuthErrorKind.INVALID_CREDENTIALS,
        "auth/invalid-credential": AuthErrorKind.INVALID_CREDENTIALS,
        "auth/invalid-email": AuthErrorKind.INVALID_CREDENTIALS,
        "auth/email-already-in-use": AuthErrorKind.ACCOUNT_ALREADY_EXISTS,
        "auth/weak-password": AuthErrorKind.WEAK_CREDENTIAL,
        "auth/too-many-requests": AuthErrorKind.RATE_LIMITED,
        "auth/network-request-failed": AuthErrorKind.NETWORK_FAILURE,
        "auth/requires-recent-login": AuthErrorKind.NOT_AUTHENTICATED,
        # Supabase Auth identifiers
        "invalid_credentials": AuthErrorKind.INVALID_CREDENTIALS,
        "invalid_grant": AuthErrorKind.INVALID_CREDENTIALS,
        "email_address_invalid": AuthErrorKind.INVALID_CREDENTIALS,
        "user_not_found": AuthErrorKind.ACCOUNT_NOT_FOUND,
        "user_already_exists": AuthErrorKind.ACCOUNT_ALREADY_EXISTS,
        "email_exists": AuthErrorKind.ACCOUNT_ALREADY_EXISTS,
        "weak_password": AuthErrorKind.WEAK_CREDENTIAL,
        "over_request_rate_limit": AuthErrorKind.RATE_LIMITED,
        "over_email_send_rate_limit": AuthErrorKind.RATE_LIMITED,
        "refresh_token_not_found": AuthErrorKind.SESSION_NOT_FOUND,
        "refresh_token_already_used": AuthErrorKind.SESSION_NOT_FOUND,
        "session_not_found": AuthErrorKind.SESSION_NOT_FOUND,
        "session_expired": AuthErrorKind.SESSION_NOT_FOUND,
        "reauthentication_mismatch": AuthErrorKind.INVALID_CREDENTIALS,
        "no_active_account": AuthErrorKind.NOT_AUTHENTICATED,
        "email_confirmation_required": AuthErrorKind.UNKNOWN,
    },
    IdentityProviderKind.GOOGLE: {
        "sign_in_cancelled": AuthErrorKind.PROVIDER_CANCELLED,
        "12501": AuthErrorKind.PROVIDER_CANCELLED,
        "in_progress": AuthErrorKind.UNKNOWN,
        "play_services_not_available": AuthErrorKind.UNKNOWN,
        "sign_in_required": AuthErrorKind.SESSION_NOT_FOUND,
        "7": AuthErrorKind.NETWORK_FAILURE,
        "auth/account-exists-with-different-credential": AuthErrorKind.ACCOUNT_ALREADY_EXISTS,
    },
    IdentityProviderKind.FACEBOOK: {
        "login_cancelled": AuthErrorKind.PROVIDER_CANCELLED,
        "missing_access_token": AuthErrorKind.UNKNOWN,
        "access_token_expired": AuthErrorKind.SESSION_NOT_FOUND,
        "auth/account-exists-with-different-credential": AuthErrorKind.ACCOUNT_ALREADY_EXISTS,
    },
    IdentityProviderKind.BIOMETRIC: {
        "usercancel": AuthErrorKind.PROVIDER_CANCELLED,
        "systemcancel": AuthErrorKind.PROVIDER_CANCELLED,
        "userfallback": AuthErrorKind.PROVIDER_CANCELLED,
        "notsupported": AuthErrorKind.BIOMETRIC_UNAVAILABLE,
        "notavailable": AuthErrorKind.BIOMETRIC_UNAVAILABLE,
        "notenrolled": AuthErrorKind.BIOMETRIC_UNAVAILABLE,
        "passcodenotset": AuthErrorKind.BIOMETRIC_UNAVAILABLE,
        "lockout": AuthErrorKind.BIOMETRIC_UNAVAILABLE,
        "authenticationfailed": AuthErrorKind.INVALID_CREDENTIALS,
    },
    IdentityProviderKind.PROFILE: {
        "http_401": AuthErrorKind.NOT_AUTHENTICATED,
        "http_403": AuthErrorKind.NOT_AUTHENTICATED,
        "http_404": AuthErrorKind.ACCOUNT_NOT_FOUND,
        "http_409": AuthErrorKind.ACCOUNT_ALREADY_EXISTS,
        "http_429": AuthErrorKind.RATE_LIMITED,
        "invalid_payload": AuthErrorKind.UNKNOWN,
    },
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def classify_exception(provider: IdentityProviderKind, exc: Exception) -> ProviderError:
    """Wrap an arbitrary backend exception as a ``ProviderError``.

    Network-level failures (connection errors, timeouts, ``httpx``
    transport errors, retryable identity-service errors) get the
    ``network_error`` code; otherwise the exception's own ``code``
    attribute is used when present, falling back to its message.
    """
    if isinstance(exc, ProviderError):
        return exc

    if isinstance(exc, (ConnectionError, TimeoutError, httpx.TransportError)) or (
        type(exc).__name__ == "AuthRetryableError"
    ):
        return ProviderError(str(provider), "network_error", str(exc))

    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return ProviderError(str(provider), code, str(exc))
    return ProviderError(str(provider), str(exc) or type(exc).__name__, str(exc))


def to_auth_error(error: ProviderError) -> AuthError:
    """Convert a provider failure into the uniform ``AuthError``."""
    if error.cancelled:
        return AuthError(AuthErrorKind.PROVIDER_CANCELLED, detail=error.message)

    try:
        provider = IdentityProviderKind(error.provider)
    except ValueError:
        provider = None

    table: dict[str, AuthErrorKind] = dict(_COMMON_CODES)
    if provider is not None:
        table.update(PROVIDER_ERROR_MAP[provider])

    code = error.code.strip().lower()
    kind = table.get(code)
    if kind is None:
        haystack = f"{code} {error.message.lower()}"
        for code_key, mapped in table.items():
            # Bare numeric codes only match exactly.
            if not code_key.isdigit() and code_key in haystack:
                kind = mapped
                break

    if kind is None:
        return AuthError(AuthErrorKind.UNKNOWN, detail=error.message)
    return AuthError(kind, detail=error.message)
