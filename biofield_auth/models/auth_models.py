"""
Authentication Pipeline Models.

Pydantic models for the contracts between the session state machine,
the identity-provider adapter and the credential store.

Every lifecycle operation works on these typed values rather than raw
dicts, so a malformed provider payload or persisted record is rejected
at the boundary where it enters.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, computed_field

from biofield_auth.models.enums import IdentityProviderKind, SessionPhase
from biofield_auth.models.user import UserRecord


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check."""

    is_valid: bool
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Provider contracts
# ---------------------------------------------------------------------------

class ProviderIdentity(BaseModel):
    """Normalized identity returned by every sign-in capability.

    Attributes
    ----------
    external_id:
        Opaque identity-provider user id.
    email:
        E-mail reported by the provider (may be empty for some
        federated accounts).
    display_name:
        Display name reported by the provider.
    is_new_account:
        ``True`` when the provider created the account during this
        sign-in.
    id_token:
        Bearer token used for profile service calls.
    refresh_token:
        Token used by ``tokenRefresh``; ``None`` when the provider does
        not issue one.
    provider:
        Which backend produced the identity.
    """

    external_id: str
    email: str = ""
    display_name: str = ""
    is_new_account: bool = False
    id_token: str
    refresh_token: Optional[str] = None
    provider: IdentityProviderKind

    model_config = {"frozen": True}


class TokenPair(BaseModel):
    """Result of a token refresh."""

    id_token: str
    refresh_token: Optional[str] = None

    model_config = {"frozen": True}


class RegisterData(BaseModel):
    """Input for account registration."""

    name: str
    email: str
    password: str
    phone: Optional[str] = None
    birth_date: Optional[str] = None

    def __repr__(self) -> str:
        return f"RegisterData(name={self.name!r}, email={self.email!r})"


# ---------------------------------------------------------------------------
# Persisted session
# ---------------------------------------------------------------------------

class SessionEnvelope(BaseModel):
    """The persisted session, read and written as one value.

    The credential store splits it over the ``user``, ``token``,
    ``refreshToken`` and ``authProvider`` slots; callers only ever see the whole envelope.

    ``provider`` is the backend that issued ``token``; token refresh goes
    back to it.  Envelopes persisted without it were password sessions.
    """

    user: UserRecord
    token: str
    refresh_token: Optional[str] = None
    provider: IdentityProviderKind = IdentityProviderKind.PASSWORD

    model_config = {"frozen": True}


class StoredCredentials(BaseModel):
    """Everything read from the credential store at startup.

    ``damaged_envelope`` is ``True`` when session slots were found but did
    not form a readable envelope (partial write, corrupt JSON, token that
    no longer decrypts).
    """

    envelope: Optional[SessionEnvelope] = None
    remember_me: bool = False
    biometric_enabled: bool = False
    damaged_envelope: bool = False

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# In-memory session state
# ---------------------------------------------------------------------------

class SessionState(BaseModel):
    """Single source of truth for the authentication state.

    ``is_authenticated`` is derived from ``user`` and ``token`` so the
    two can never disagree.  Instances are frozen; the state machine's
    transition function is the only producer of new states.
    """

    phase: SessionPhase = SessionPhase.INITIALIZING
    user: Optional[UserRecord] = None
    token: Optional[str] = None
    refresh_token: Optional[str] = None
    provider: Optional[IdentityProviderKind] = None
    is_loading: bool = True
    biometric_enabled: bool = False
    remember_me: bool = False

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.token is not None

    def __repr__(self) -> str:
        user_id = self.user.id if self.user is not None else None
        return (
            f"SessionState(phase={self.phase.value}, user={user_id!r}, "
            f"authenticated={self.is_authenticated}, loading={self.is_loading})"
        )


# ---------------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------------

class RateLimitState(BaseModel):
    """Per-e-mail failed sign-in counters."""

    failed_attempts: int = 0
    last_failure_at: Optional[datetime] = None
    lockout_until: Optional[datetime] = None
