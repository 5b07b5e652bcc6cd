"""
Shared Enumerations for BioField Session Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so persisted payloads like ``"premium"`` validate directly.
"""

from __future__ import annotations
from enum import StrEnum


class SessionPhase(StrEnum):
    """Phases of the session lifecycle.

    ``INITIALIZING`` is the only initial phase.  There is no terminal
    phase: the app keeps cycling between ``AUTHENTICATED`` and
    ``UNAUTHENTICATED`` until the process exits.
    """

    INITIALIZING = "INITIALIZING"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    RESTORING_BIOMETRIC = "RESTORING_BIOMETRIC"


class IdentityProviderKind(StrEnum):
    """External identity backends behind the provider adapter."""

    PASSWORD = "password"
    GOOGLE = "google"
    FACEBOOK = "facebook"
    BIOMETRIC = "biometric"
    PROFILE = "profile"


class SubscriptionPlan(StrEnum):
    """Subscription tiers."""

    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class UnitSystem(StrEnum):
    """Measurement units shown to the user."""

    METRIC = "metric"
    IMPERIAL = "imperial"
