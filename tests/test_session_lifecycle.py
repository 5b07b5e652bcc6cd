from __future__ import annotations

import pytest

from biofield_auth.errors import AuthError, AuthErrorKind, InvalidTransitionError, ProviderError
from biofield_auth.models.auth_models import RegisterData
from biofield_auth.models.enums import IdentityProviderKind, SessionPhase
from biofield_auth.services.credential_store import (
    KEY_AUTH_PROVIDER,
    KEY_BIOMETRIC,
    KEY_REFRESH_TOKEN,
    KEY_REMEMBER_ME,
    KEY_TOKEN,
    KEY_USER,
)
from tests.conftest import build_harness, make_config


def _assert_invariant(state) -> None:  # noqa: ANN001
    assert state.is_authenticated == (state.user is not None and state.token is not None)


# ---------------------------------------------------------------------------
# Startup restore
# ---------------------------------------------------------------------------

async def test_fresh_install_ends_unauthenticated_and_idle(harness):
    assert harness.session.phase is SessionPhase.INITIALIZING
    assert harness.session.is_loading is True

    state = await harness.session.initialize()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert state.is_loading is False
    assert state.is_authenticated is False
    assert "SESSION_NOT_RESTORED" in harness.logger.events()


async def test_initialize_twice_is_a_noop(ready):
    before = ready.session.state
    after = await ready.session.initialize()
    assert after == before


async def test_remembered_login_survives_restart(signed_in):
    original = signed_in.session.state

    restarted = signed_in.restart()
    state = await restarted.session.initialize()

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.user.id == original.user.id
    assert state.token == original.token
    assert state.remember_me is True
    assert restarted.profiles.ops().count("fetch") == signed_in.profiles.ops().count("fetch")


async def test_session_not_restored_without_remember_me(ready):
    user_id = ready.password.add_account("bia@example.com", "secret123")
    ready.profiles.add(user_id, "bia@example.com")
    await ready.session.login("bia@example.com", "secret123")
    assert KEY_USER not in ready.kv.data

    restarted = ready.restart()
    state = await restarted.session.initialize()
    assert state.phase is SessionPhase.UNAUTHENTICATED


async def test_restore_ignores_envelope_when_remember_me_missing(signed_in):
    signed_in.kv.data.pop(KEY_REMEMBER_ME)

    state = await signed_in.restart().session.initialize()

    assert state.phase is SessionPhase.UNAUTHENTICATED


async def test_partial_envelope_is_discarded_and_cleared(signed_in):
    signed_in.kv.data.pop(KEY_TOKEN)

    restarted = signed_in.restart()
    state = await restarted.session.initialize()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert KEY_USER not in restarted.kv.data
    assert "SESSION_DISCARDED" in restarted.logger.events()


async def test_restore_with_unavailable_store_recovers(harness):
    harness.kv.fail_all = True

    state = await harness.session.initialize()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert state.is_loading is False


async def test_expired_session_is_not_restored(signed_in):
    config = make_config(SESSION_MAX_AGE_HOURS=1)
    user = signed_in.session.user
    old = user.merge({"lastLoginAt": "2020-01-01T00:00:00+00:00"})
    signed_in.kv.data[KEY_USER] = old.to_json()

    restarted = build_harness(kv=signed_in.kv, config=config)
    state = await restarted.session.initialize()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert KEY_TOKEN not in restarted.kv.data
    assert "SESSION_EXPIRED" in restarted.logger.events()


async def test_biometric_flag_is_restored_without_session(harness):
    harness.kv.data[KEY_BIOMETRIC] = "true"

    state = await harness.session.initialize()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert state.biometric_enabled is True


# ---------------------------------------------------------------------------
# Password login and registration
# ---------------------------------------------------------------------------

async def test_remembered_login_persists_matching_envelope(signed_in):
    state = signed_in.session.state

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.is_loading is False
    stored_user = signed_in.kv.data[KEY_USER]
    assert f'"id":"{state.user.id}"' in stored_user
    assert signed_in.kv.data[KEY_TOKEN] == state.token
    assert signed_in.kv.data[KEY_REFRESH_TOKEN] == state.refresh_token
    assert signed_in.kv.data[KEY_REMEMBER_ME] == "true"


async def test_login_normalizes_email(ready):
    user_id = ready.password.add_account("ana@example.com", "secret123")
    ready.profiles.add(user_id, "ana@example.com")

    state = await ready.session.login("  Ana@Example.com ", "secret123")

    assert state.user.id == user_id


async def test_login_wrong_password_raises_invalid_credentials(ready):
    ready.password.add_account("ana@example.com", "secret123")

    with pytest.raises(AuthError) as excinfo:
        await ready.session.login("ana@example.com", "nope-nope")

    assert excinfo.value.kind is AuthErrorKind.INVALID_CREDENTIALS
    assert ready.session.phase is SessionPhase.UNAUTHENTICATED
    assert ready.session.is_loading is False
    assert ready.kv.mutations() == []


@pytest.mark.parametrize("email,password", [("", "secret123"), ("ana@example.com", ""), ("not-an-email", "x")])
async def test_login_rejects_empty_or_malformed_input(ready, email, password):
    with pytest.raises(AuthError) as excinfo:
        await ready.session.login(email, password)

    assert excinfo.value.kind is AuthErrorKind.INVALID_CREDENTIALS
    assert ready.password.calls == []


async def test_login_unknown_account(ready):
    with pytest.raises(AuthError) as excinfo:
        await ready.session.login("ghost@example.com", "secret123")
    assert excinfo.value.kind is AuthErrorKind.ACCOUNT_NOT_FOUND


async def test_login_provisions_missing_profile(ready):
    ready.password.add_account("new@example.com", "secret123", user_id="uid-9")

    state = await ready.session.login("new@example.com", "secret123")

    assert state.user.id == "uid-9"
    assert ready.profiles.ops() == ["fetch", "create"]
    assert "PROFILE_PROVISIONED" in ready.logger.events()


async def test_login_uses_provider_token_for_profile_calls(ready):
    user_id = ready.password.add_account("ana@example.com", "secret123")
    ready.profiles.add(user_id, "ana@example.com")

    state = await ready.session.login("ana@example.com", "secret123")

    assert ready.profiles.tokens == [state.token]


async def test_login_profile_network_failure(ready):
    user_id = ready.password.add_account("ana@example.com", "secret123")
    ready.profiles.add(user_id, "ana@example.com")
    ready.profiles.fail["fetch"] = ProviderError("profile", "network_error", "timed out")

    with pytest.raises(AuthError) as excinfo:
        await ready.session.login("ana@example.com", "secret123")

    assert excinfo.value.kind is AuthErrorKind.NETWORK_FAILURE
    assert ready.session.is_authenticated is False


async def test_repeated_failures_engage_rate_limit(ready):
    ready.password.add_account("ana@example.com", "secret123")
    for _ in range(3):
        with pytest.raises(AuthError):
            await ready.session.login("ana@example.com", "wrong-pass")

    with pytest.raises(AuthError) as excinfo:
        await ready.session.login("ana@example.com", "secret123")

    assert excinfo.value.kind is AuthErrorKind.RATE_LIMITED
    assert ready.password.calls.count("sign_in") == 3


async def test_login_while_authenticated_is_rejected(signed_in):
    with pytest.raises(InvalidTransitionError):
        await signed_in.session.login("ana@example.com", "secret123")
    assert signed_in.session.phase is SessionPhase.AUTHENTICATED


async def test_register_creates_profile_and_sets_display_name(ready):
    state = await ready.session.register(RegisterData(
        name="Carla Souza",
        email="carla@example.com",
        password="secret123",
        phone="+55 11 99999-0000",
    ))

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.user.display_name == "Carla Souza"
    assert state.user.phone == "+55 11 99999-0000"
    assert ready.profiles.ops() == ["create"]
    assert "update_display_name" in ready.password.calls
    assert ready.password.accounts["carla@example.com"].display_name == "Carla Souza"


async def test_register_existing_email(ready):
    ready.password.add_account("carla@example.com", "secret123")

    with pytest.raises(AuthError) as excinfo:
        await ready.session.register(RegisterData(
            name="Carla", email="carla@example.com", password="secret123",
        ))

    assert excinfo.value.kind is AuthErrorKind.ACCOUNT_ALREADY_EXISTS
    assert ready.session.phase is SessionPhase.UNAUTHENTICATED


async def test_register_weak_password(ready):
    with pytest.raises(AuthError) as excinfo:
        await ready.session.register(RegisterData(
            name="Carla", email="carla@example.com", password="123",
        ))

    assert excinfo.value.kind is AuthErrorKind.WEAK_CREDENTIAL
    assert ready.password.calls == []


# ---------------------------------------------------------------------------
# Federated login
# ---------------------------------------------------------------------------

def _federated_result(is_new: bool) -> dict:
    return {
        "externalId": "fb-77",
        "email": "dani@example.com",
        "displayName": "Dani",
        "idToken": "fb-token",
        "isNewAccount": is_new,
    }


async def test_facebook_new_account_creates_profile():
    harness = build_harness()
    harness.facebook.result = _federated_result(is_new=True)
    await harness.session.initialize()

    state = await harness.session.login_with_facebook()

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.user.id == "fb-77"
    assert harness.profiles.ops() == ["create"]
    assert harness.profiles.tokens == ["fb-token"]


async def test_google_existing_account_fetches_profile():
    harness = build_harness()
    harness.google.result = dict(_federated_result(is_new=False), externalId="g-1")
    harness.profiles.add("g-1", "dani@example.com", "Dani (server)")
    await harness.session.initialize()

    state = await harness.session.login_with_google()

    assert state.user.display_name == "Dani (server)"
    assert harness.profiles.ops() == ["fetch"]


async def test_federated_cancel_raises_provider_cancelled():
    harness = build_harness()
    harness.google.result = {"cancelled": True}
    await harness.session.initialize()

    with pytest.raises(AuthError) as excinfo:
        await harness.session.login_with_google()

    assert excinfo.value.kind is AuthErrorKind.PROVIDER_CANCELLED
    assert harness.session.phase is SessionPhase.UNAUTHENTICATED
    assert harness.profiles.calls == []


async def test_federated_login_not_persisted_without_remember_me():
    harness = build_harness()
    harness.facebook.result = _federated_result(is_new=True)
    await harness.session.initialize()

    await harness.session.login_with_facebook()

    assert harness.kv.data == {}


async def test_google_session_refreshes_through_google():
    harness = build_harness()
    harness.google.result = dict(_federated_result(is_new=False), externalId="g-1")
    harness.google.refresh_result = {"idToken": "g-token-2"}
    harness.profiles.add("g-1", "dani@example.com", "Dani")
    await harness.session.initialize()
    await harness.session.login_with_google()

    state = await harness.session.refresh_session()

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.token == "g-token-2"
    assert state.provider is IdentityProviderKind.GOOGLE
    assert harness.google.refresh_calls == [None]
    assert "refresh" not in harness.password.calls
    assert harness.profiles.tokens[-1] == "g-token-2"


async def test_remembered_facebook_session_refreshes_after_restart():
    harness = build_harness()
    harness.facebook.result = dict(_federated_result(is_new=True), refreshToken="fb-refresh")
    await harness.session.initialize()
    await harness.session.set_remember_me(True)
    await harness.session.login_with_facebook()
    assert harness.kv.data[KEY_AUTH_PROVIDER] == "facebook"

    restarted = harness.restart()
    await restarted.session.initialize()
    restarted.facebook.refresh_result = {"idToken": "fb-token-2"}
    state = await restarted.session.refresh_session()

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.provider is IdentityProviderKind.FACEBOOK
    assert restarted.facebook.refresh_calls == ["fb-refresh"]
    assert restarted.kv.data[KEY_TOKEN] == "fb-token-2"
    assert restarted.kv.data[KEY_REFRESH_TOKEN] == "fb-refresh"


async def test_failed_federated_refresh_is_implicit_logout():
    harness = build_harness()
    harness.google.result = dict(_federated_result(is_new=False), externalId="g-1")
    harness.google.refresh_error = ProviderError("google", "sign_in_required")
    harness.profiles.add("g-1", "dani@example.com", "Dani")
    await harness.session.initialize()
    await harness.session.login_with_google()

    state = await harness.session.refresh_session()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert state.provider is None


# ---------------------------------------------------------------------------
# Biometric login
# ---------------------------------------------------------------------------

async def test_biometric_login_without_envelope_is_session_not_found(ready):
    await ready.session.enable_biometric()

    with pytest.raises(AuthError) as excinfo:
        await ready.session.login_with_biometric()

    assert excinfo.value.kind is AuthErrorKind.SESSION_NOT_FOUND
    assert ready.session.phase is SessionPhase.UNAUTHENTICATED


async def test_biometric_login_when_disabled(ready):
    with pytest.raises(AuthError) as excinfo:
        await ready.session.login_with_biometric()
    assert excinfo.value.kind is AuthErrorKind.BIOMETRIC_UNAVAILABLE


async def test_biometric_login_restores_persisted_session_without_profile_call(signed_in):
    await signed_in.session.enable_biometric()
    original = signed_in.session.state
    signed_in.kv.data.pop(KEY_REMEMBER_ME)

    restarted = signed_in.restart()
    await restarted.session.initialize()
    assert restarted.session.phase is SessionPhase.UNAUTHENTICATED
    calls_before = list(restarted.profiles.calls)

    state = await restarted.session.login_with_biometric()

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.user.id == original.user.id
    assert state.token == original.token
    assert restarted.profiles.calls == calls_before
    assert restarted.sensor.prompts[-1] == restarted.config.BIOMETRIC_LOGIN_PROMPT


async def test_biometric_login_rejected_gesture(signed_in):
    await signed_in.session.enable_biometric()
    signed_in.kv.data.pop(KEY_REMEMBER_ME)
    restarted = signed_in.restart()
    await restarted.session.initialize()
    restarted.sensor.result = False

    with pytest.raises(AuthError) as excinfo:
        await restarted.session.login_with_biometric()

    assert excinfo.value.kind is AuthErrorKind.INVALID_CREDENTIALS
    assert restarted.session.phase is SessionPhase.UNAUTHENTICATED
    assert restarted.session.is_loading is False


async def test_biometric_login_user_cancel(signed_in):
    await signed_in.session.enable_biometric()
    signed_in.kv.data.pop(KEY_REMEMBER_ME)
    restarted = signed_in.restart()
    await restarted.session.initialize()
    restarted.sensor.error = ProviderError("biometric", "UserCancel")

    with pytest.raises(AuthError) as excinfo:
        await restarted.session.login_with_biometric()

    assert excinfo.value.kind is AuthErrorKind.PROVIDER_CANCELLED


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

async def test_logout_clears_envelope_and_keeps_biometric_flag(signed_in):
    await signed_in.session.enable_biometric()

    state = await signed_in.session.logout()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert state.user is None and state.token is None
    assert state.biometric_enabled is True
    assert state.remember_me is False
    assert set(signed_in.kv.data) == {KEY_BIOMETRIC}
    assert signed_in.password.sign_out_calls == 1
    assert signed_in.google.sign_out_calls == 1
    assert signed_in.facebook.sign_out_calls == 1


async def test_logout_removes_slots_in_order(signed_in):
    signed_in.kv.ops.clear()

    await signed_in.session.logout()

    assert signed_in.kv.mutations() == [
        ("remove", KEY_USER),
        ("remove", KEY_TOKEN),
        ("remove", KEY_REFRESH_TOKEN),
        ("remove", KEY_AUTH_PROVIDER),
        ("remove", KEY_REMEMBER_ME),
    ]


async def test_logout_when_unauthenticated_is_noop(ready):
    state = await ready.session.logout()
    state = await ready.session.logout()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert ready.password.sign_out_calls == 0


async def test_logout_survives_provider_and_store_failures(signed_in):
    signed_in.password.fail_sign_out = True
    signed_in.kv.fail.add(("remove", KEY_TOKEN))

    state = await signed_in.session.logout()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert KEY_USER not in signed_in.kv.data
    assert KEY_REMEMBER_ME not in signed_in.kv.data


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

async def test_refresh_replaces_token_and_repersists(signed_in):
    old_token = signed_in.session.token

    state = await signed_in.session.refresh_session()

    assert state.phase is SessionPhase.AUTHENTICATED
    assert state.token != old_token
    assert signed_in.kv.data[KEY_TOKEN] == state.token
    assert signed_in.profiles.tokens[-1] == state.token


async def test_failed_refresh_is_implicit_logout(signed_in):
    signed_in.password.fail_refresh = True

    state = await signed_in.session.refresh_session()

    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert state.is_authenticated is False
    for key in (KEY_USER, KEY_TOKEN, KEY_REFRESH_TOKEN, KEY_AUTH_PROVIDER, KEY_REMEMBER_ME):
        assert key not in signed_in.kv.data


async def test_refresh_profile_failure_is_implicit_logout(signed_in):
    signed_in.profiles.fail["fetch"] = ProviderError("profile", "http_500")

    state = await signed_in.session.refresh_session()

    assert state.phase is SessionPhase.UNAUTHENTICATED


async def test_refresh_without_session_is_noop(ready):
    state = await ready.session.refresh_session()
    assert state.phase is SessionPhase.UNAUTHENTICATED
    assert ready.password.calls == []


# ---------------------------------------------------------------------------
# Biometric flag
# ---------------------------------------------------------------------------

async def test_enable_biometric_requires_confirmation(ready):
    state = await ready.session.enable_biometric()

    assert state.biometric_enabled is True
    assert ready.kv.data[KEY_BIOMETRIC] == "true"
    assert ready.sensor.prompts == [ready.config.BIOMETRIC_ENABLE_PROMPT]


async def test_enable_biometric_rejected_leaves_flag_off(ready):
    ready.sensor.result = False

    with pytest.raises(AuthError):
        await ready.session.enable_biometric()

    assert ready.session.biometric_enabled is False
    assert KEY_BIOMETRIC not in ready.kv.data


async def test_biometric_toggle_requires_supported_sensor(ready):
    ready.sensor.supported = False

    for operation in (ready.session.enable_biometric, ready.session.disable_biometric):
        with pytest.raises(AuthError) as excinfo:
            await operation()
        assert excinfo.value.kind is AuthErrorKind.BIOMETRIC_UNAVAILABLE


async def test_disable_biometric_needs_no_gesture(ready):
    await ready.session.enable_biometric()
    ready.sensor.prompts.clear()

    state = await ready.session.disable_biometric()

    assert state.biometric_enabled is False
    assert ready.kv.data[KEY_BIOMETRIC] == "false"
    assert ready.sensor.prompts == []


# ---------------------------------------------------------------------------
# Profile and password maintenance
# ---------------------------------------------------------------------------

async def test_update_profile_merges_nested_and_repersists(signed_in):
    state = await signed_in.session.update_profile({"preferences": {"darkMode": True}})

    assert state.user.preferences.dark_mode is True
    assert state.user.preferences.language == "pt-BR"
    assert '"darkMode":true' in signed_in.kv.data[KEY_USER]


async def test_update_profile_keeps_siblings_the_service_omits(signed_in):
    await signed_in.session.update_profile({"preferences": {"language": "en-US"}})

    state = await signed_in.session.update_profile({"preferences": {"darkMode": True}})

    assert state.user.preferences.dark_mode is True
    assert state.user.preferences.language == "en-US"
    assert signed_in.profiles.records[state.user.id].preferences.language == "pt-BR"


async def test_update_profile_takes_server_assigned_fields(signed_in):
    user_id = signed_in.session.user.id
    signed_in.profiles.records[user_id] = signed_in.profiles.records[user_id].merge(
        {"profile": {"gamification": {"points": 40}}}
    )

    state = await signed_in.session.update_profile({"displayName": "Ana B."})

    assert state.user.display_name == "Ana B."
    assert state.user.profile.gamification.points == 40


async def test_update_profile_rejects_unknown_field(signed_in):
    with pytest.raises(AuthError):
        await signed_in.session.update_profile({"shoeSize": 42})

    assert ("update", signed_in.session.user.id) not in signed_in.profiles.calls


async def test_update_profile_requires_session(ready):
    with pytest.raises(AuthError) as excinfo:
        await ready.session.update_profile({"displayName": "X"})
    assert excinfo.value.kind is AuthErrorKind.NOT_AUTHENTICATED


async def test_update_profile_failure_resets_loading(signed_in):
    signed_in.profiles.fail["update"] = ProviderError("profile", "http_503")

    with pytest.raises(AuthError) as excinfo:
        await signed_in.session.update_profile({"displayName": "Ana B."})

    assert excinfo.value.kind is AuthErrorKind.UNKNOWN
    assert signed_in.session.is_loading is False
    assert signed_in.session.user.display_name == "Ana"


async def test_change_password_wrong_current_keeps_session_and_store(signed_in):
    signed_in.kv.ops.clear()

    with pytest.raises(AuthError) as excinfo:
        await signed_in.session.change_password("wrong-one", "new-secret")

    assert excinfo.value.kind is AuthErrorKind.INVALID_CREDENTIALS
    assert signed_in.session.phase is SessionPhase.AUTHENTICATED
    assert signed_in.session.is_loading is False
    assert signed_in.kv.mutations() == []
    assert "change_password" not in signed_in.password.calls


async def test_change_password_success(signed_in):
    await signed_in.session.change_password("secret123", "new-secret")

    assert signed_in.password.accounts["ana@example.com"].password == "new-secret"
    assert signed_in.password.calls[-2:] == ["reauthenticate", "change_password"]


async def test_reset_password_delegates(ready):
    ready.password.add_account("ana@example.com", "secret123")

    await ready.session.reset_password("ANA@example.com")

    assert ready.password.calls == ["send_password_reset"]


# ---------------------------------------------------------------------------
# Remember me, subscription and invariants
# ---------------------------------------------------------------------------

async def test_turning_remember_me_off_clears_persisted_session(signed_in):
    state = await signed_in.session.set_remember_me(False)

    assert state.is_authenticated is True
    assert KEY_USER not in signed_in.kv.data
    assert signed_in.kv.data[KEY_REMEMBER_ME] == "false"


async def test_turning_remember_me_on_persists_current_session(ready):
    user_id = ready.password.add_account("ana@example.com", "secret123")
    ready.profiles.add(user_id, "ana@example.com")
    await ready.session.login("ana@example.com", "secret123")

    await ready.session.set_remember_me(True)

    assert ready.kv.data[KEY_TOKEN] == ready.session.token


async def test_store_failure_keeps_in_memory_session(ready):
    user_id = ready.password.add_account("ana@example.com", "secret123")
    ready.profiles.add(user_id, "ana@example.com")
    await ready.session.set_remember_me(True)
    ready.kv.fail.add(("set", KEY_TOKEN))

    state = await ready.session.login("ana@example.com", "secret123")

    assert state.is_authenticated is True
    assert "STORE_UNAVAILABLE" in ready.logger.events()


async def test_subscribers_see_every_state_and_invariant_holds(ready):
    seen = []
    unsubscribe = ready.session.subscribe(seen.append)
    user_id = ready.password.add_account("ana@example.com", "secret123")
    ready.profiles.add(user_id, "ana@example.com")

    await ready.session.login("ana@example.com", "secret123")
    await ready.session.update_profile({"displayName": "Ana Maria"})
    await ready.session.logout()
    unsubscribe()
    await ready.session.enable_biometric()

    phases = [s.phase for s in seen]
    assert phases[0] is SessionPhase.AUTHENTICATING
    assert phases[-1] is SessionPhase.UNAUTHENTICATED
    assert seen[-1].biometric_enabled is False
    for state in seen:
        _assert_invariant(state)


async def test_failing_listener_does_not_break_operation(ready):
    def _boom(state):  # noqa: ANN001
        raise RuntimeError("listener failed")

    ready.session.subscribe(_boom)
    state = await ready.session.enable_biometric()

    assert state.biometric_enabled is True
