from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from biofield_auth.models.enums import SubscriptionPlan, UnitSystem
from biofield_auth.models.user import UserRecord

SERVER_PAYLOAD = {
    "id": "u-1",
    "email": "ana@example.com",
    "name": "Ana",
    "preferences": {"notifications": False, "darkMode": True, "units": "imperial"},
    "profile": {
        "sustainabilityGoals": ["solar"],
        "location": {"city": "Recife", "country": "BR"},
        "gamification": {"level": 3, "points": 120},
    },
    "subscription": {"plan": "premium", "features": ["reports"]},
    "createdAt": "2024-01-01T00:00:00Z",
    "lastLoginAt": "2024-06-01T12:00:00Z",
    "somethingNew": "ignored",
}


def test_parses_camel_case_payload():
    user = UserRecord.model_validate(SERVER_PAYLOAD)

    assert user.display_name == "Ana"
    assert user.preferences.units is UnitSystem.IMPERIAL
    assert user.profile.location.city == "Recife"
    assert user.profile.gamification.points == 120
    assert user.subscription.plan is SubscriptionPlan.PREMIUM


def test_to_json_uses_camel_case():
    data = json.loads(UserRecord.model_validate(SERVER_PAYLOAD).to_json())

    assert data["displayName"] == "Ana"
    assert data["preferences"]["darkMode"] is True
    assert data["profile"]["sustainabilityGoals"] == ["solar"]
    assert "display_name" not in data


def test_merge_is_nested_and_field_by_field():
    user = UserRecord.model_validate(SERVER_PAYLOAD)

    merged = user.merge({
        "preferences": {"language": "en-US"},
        "profile": {"gamification": {"level": 4}},
    })

    assert merged.preferences.language == "en-US"
    assert merged.preferences.dark_mode is True
    assert merged.profile.gamification.level == 4
    assert merged.profile.gamification.points == 120
    assert merged.profile.sustainability_goals == ["solar"]


def test_merge_returns_new_instance():
    user = UserRecord.model_validate(SERVER_PAYLOAD)
    merged = user.merge({"displayName": "Ana Maria"})

    assert merged is not user
    assert user.display_name == "Ana"
    assert merged.display_name == "Ana Maria"


def test_merge_accepts_snake_case_keys():
    user = UserRecord.model_validate(SERVER_PAYLOAD)
    assert user.merge({"birth_date": "1990-05-01"}).birth_date == "1990-05-01"


def test_merge_sets_location_when_absent():
    user = UserRecord(id="u-2", email="b@example.com")
    merged = user.merge({"profile": {"location": {"city": "Lisboa", "country": "PT"}}})
    assert merged.profile.location.country == "PT"


@pytest.mark.parametrize("partial", [{"shoeSize": 42}, {"preferences": {"fontSize": 12}}])
def test_merge_rejects_unknown_fields(partial):
    user = UserRecord.model_validate(SERVER_PAYLOAD)
    with pytest.raises(ValueError):
        user.merge(partial)


def test_merge_rejects_id_change():
    user = UserRecord.model_validate(SERVER_PAYLOAD)
    with pytest.raises(ValueError):
        user.merge({"id": "someone-else"})


def test_merge_validates_values():
    user = UserRecord.model_validate(SERVER_PAYLOAD)
    with pytest.raises(ValidationError):
        user.merge({"subscription": {"plan": "platinum"}})


def test_record_is_frozen():
    user = UserRecord.model_validate(SERVER_PAYLOAD)
    with pytest.raises(ValidationError):
        user.email = "other@example.com"
