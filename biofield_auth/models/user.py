"""
User Model.

Pydantic models for the application-level user record returned by the
profile service.  JSON payloads use camelCase keys (``displayName``,
``lastLoginAt``); Python code uses the snake_case field names.

``UserRecord`` is immutable-by-replacement: every change produces a new
instance through :meth:`UserRecord.merge`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel

from biofield_auth.models.enums import SubscriptionPlan, UnitSystem

_RECORD_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "frozen": True,
    "extra": "ignore",
}

M = TypeVar("M", bound=BaseModel)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class UserPreferences(BaseModel):
    """Notification, locale and unit settings."""

    notifications: bool = True
    dark_mode: bool = False
    language: str = "pt-BR"
    currency: str = "BRL"
    units: UnitSystem = UnitSystem.METRIC

    model_config = _RECORD_CONFIG


class Coordinates(BaseModel):
    latitude: float
    longitude: float

    model_config = _RECORD_CONFIG


class Location(BaseModel):
    city: str
    country: str
    coordinates: Optional[Coordinates] = None

    model_config = _RECORD_CONFIG


class Gamification(BaseModel):
    """Gamification counters shown on the dashboard."""

    level: int = 1
    points: int = 0
    badges: list[str] = Field(default_factory=list)
    achievements: list[str] = Field(default_factory=list)

    model_config = _RECORD_CONFIG


class UserProfile(BaseModel):
    """Goals, interests and gamification state."""

    sustainability_goals: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    location: Optional[Location] = None
    gamification: Gamification = Field(default_factory=Gamification)

    model_config = _RECORD_CONFIG


class Subscription(BaseModel):
    """Plan tier and the feature flags it unlocks."""

    plan: SubscriptionPlan = SubscriptionPlan.FREE
    expires_at: Optional[datetime] = None
    features: list[str] = Field(default_factory=list)

    model_config = _RECORD_CONFIG


class UserRecord(BaseModel):
    """Application-level user record.

    ``id`` is the opaque external identity id issued by the identity
    provider and never changes for the lifetime of the account.  The
    profile service historically sends the display name as ``name``;
    both spellings are accepted on input.
    """

    id: str
    email: str
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices("displayName", "display_name", "name"),
        serialization_alias="displayName",
    )
    avatar: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[str] = None
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    profile: UserProfile = Field(default_factory=UserProfile)
    subscription: Subscription = Field(default_factory=Subscription)
    created_at: datetime = Field(default_factory=_utcnow)
    last_login_at: datetime = Field(default_factory=_utcnow)

    model_config = _RECORD_CONFIG

    def merge(self, partial: Mapping[str, Any]) -> "UserRecord":
        """Return a new record with *partial* applied.

        Nested objects (``preferences``, ``profile`` and its
        ``gamification`` / ``location``, ``subscription``) are merged
        field by field against their own field sets, so
        ``{"preferences": {"darkMode": True}}`` keeps every other
        preference.  Keys may be camelCase or snake_case.

        Raises:
            ValueError: If *partial* names an unknown field or tries to
                change ``id``.
            pydantic.ValidationError: If a merged value fails validation.
        """
        if "id" in partial and partial["id"] != self.id:
            raise ValueError("The user id cannot be changed.")
        return _merge_model(self, partial)

    def to_json(self) -> str:
        """Serialise with camelCase keys for the credential store."""
        return self.model_dump_json(by_alias=True)


class ProfileDraft(BaseModel):
    """Partial user record sent to the profile service on account creation."""

    id: str
    email: str
    display_name: str = ""
    phone: Optional[str] = None
    birth_date: Optional[str] = None

    model_config = _RECORD_CONFIG


# ---------------------------------------------------------------------------
# Nested merge
# ---------------------------------------------------------------------------

def _field_lookup(model_cls: type[BaseModel]) -> dict[str, str]:
    """Map every accepted key (field name and alias) to its field name."""
    lookup: dict[str, str] = {}
    for name, info in model_cls.model_fields.items():
        lookup[name] = name
        for alias in (info.alias, info.serialization_alias):
            if alias:
                lookup[alias] = name
        if isinstance(info.validation_alias, AliasChoices):
            for choice in info.validation_alias.choices:
                if isinstance(choice, str):
                    lookup[choice] = name
    return lookup


def _merge_model(model: M, partial: Mapping[str, Any]) -> M:
    model_cls = type(model)
    lookup = _field_lookup(model_cls)

    data: dict[str, Any] = {
        name: getattr(model, name) for name in model_cls.model_fields
    }
    for key, value in partial.items():
        name = lookup.get(key)
        if name is None:
            raise ValueError(
                f"Unknown field '{key}' for {model_cls.__name__}."
            )
        current = data[name]
        if isinstance(current, BaseModel) and isinstance(value, Mapping):
            data[name] = _merge_model(current, value)
        else:
            data[name] = value

    return model_cls.model_validate(data)
