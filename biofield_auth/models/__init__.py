from __future__ import annotations

"""
Data Models Package.

Re-exports all Pydantic models:
    from biofield_auth.models import UserRecord, SessionState, SessionEnvelope
    from biofield_auth.models import SessionPhase, IdentityProviderKind
"""

from biofield_auth.models.enums import (
    IdentityProviderKind,
    SessionPhase,
    SubscriptionPlan,
    UnitSystem,
)
from biofield_auth.models.user import (
    Coordinates,
    Gamification,
    Location,
    ProfileDraft,
    Subscription,
    UserPreferences,
    UserProfile,
    UserRecord,
)
from biofield_auth.models.auth_models import (
    ProviderIdentity,
    RateLimitState,
    RegisterData,
    SessionEnvelope,
    SessionState,
    StoredCredentials,
    TokenPair,
    ValidationResult,
)

__all__ = [
    "IdentityProviderKind",
    "SessionPhase",
    "SubscriptionPlan",
    "UnitSystem",
    "Coordinates",
    "Gamification",
    "Location",
    "ProfileDraft",
    "Subscription",
    "UserPreferences",
    "UserProfile",
    "UserRecord",
    "ProviderIdentity",
    "RateLimitState",
    "RegisterData",
    "SessionEnvelope",
    "SessionState",
    "StoredCredentials",
    "TokenPair",
    "ValidationResult",
]
