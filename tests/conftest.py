from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import pytest

from biofield_auth.config import AppConfig
from biofield_auth.providers.adapter import IdentityProviderAdapter
from biofield_auth.providers.biometric import BiometricProvider
from biofield_auth.providers.federated import FacebookIdentityProvider, GoogleIdentityProvider
from biofield_auth.services.credential_store import CredentialStore
from biofield_auth.services.login_throttle import LoginThrottle
from biofield_auth.services.session_facade import SessionFacade
from biofield_auth.services.session_machine import SessionStateMachine
from tests.helpers.fakes import (
    DummyLogger,
    FakeBiometricSensor,
    FakePasswordProvider,
    FakeProfileService,
    FakeSignInClient,
    InMemoryKeyValueStore,
)


@dataclass
class SessionHarness:
    """Every fake behind one session core, plus the facade under test."""

    logger: DummyLogger
    kv: InMemoryKeyValueStore
    password: FakePasswordProvider
    google: FakeSignInClient
    facebook: FakeSignInClient
    sensor: FakeBiometricSensor
    profiles: FakeProfileService
    config: AppConfig
    store: CredentialStore
    machine: SessionStateMachine
    session: SessionFacade

    def restart(self) -> "SessionHarness":
        """Simulate an app restart: new machine, same device storage."""
        return build_harness(
            kv=self.kv,
            password=self.password,
            google=self.google,
            facebook=self.facebook,
            profiles=self.profiles,
            sensor=self.sensor,
            config=self.config,
        )


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "SUPABASE_URL": "",
        "PROFILE_SERVICE_URL": "http://profiles.test",
        "ENCRYPT_TOKENS_AT_REST": False,
        "LOGIN_MAX_FAILED_ATTEMPTS": 3,
        "LOGIN_LOCKOUT_SECONDS": 30,
        "SESSION_MAX_AGE_HOURS": 0,
    }
    values.update(overrides)
    return AppConfig(**values)


def build_harness(
    kv: Optional[InMemoryKeyValueStore] = None,
    password: Optional[FakePasswordProvider] = None,
    profiles: Optional[FakeProfileService] = None,
    sensor: Optional[FakeBiometricSensor] = None,
    google: Optional[FakeSignInClient] = None,
    facebook: Optional[FakeSignInClient] = None,
    config: Optional[AppConfig] = None,
) -> SessionHarness:
    logger = DummyLogger()
    kv = kv if kv is not None else InMemoryKeyValueStore()
    password = password or FakePasswordProvider()
    profiles = profiles or FakeProfileService()
    sensor = sensor or FakeBiometricSensor()
    google = google or FakeSignInClient()
    facebook = facebook or FakeSignInClient()
    config = config or make_config()

    adapter = IdentityProviderAdapter(
        password=password,
        google=GoogleIdentityProvider(client=google, logger=logger),
        facebook=FacebookIdentityProvider(client=facebook, logger=logger),
        biometric=BiometricProvider(sensor=sensor, logger=logger),
        logger=logger,
    )
    store = CredentialStore(store=kv, logger=logger)
    machine = SessionStateMachine(
        adapter=adapter,
        profiles=profiles,
        store=store,
        throttle=LoginThrottle(
            logger=logger,
            max_failed_attempts=config.LOGIN_MAX_FAILED_ATTEMPTS,
            lockout_seconds=config.LOGIN_LOCKOUT_SECONDS,
        ),
        config=config,
        logger=logger,
    )
    return SessionHarness(
        logger=logger,
        kv=kv,
        password=password,
        google=google,
        facebook=facebook,
        sensor=sensor,
        profiles=profiles,
        config=config,
        store=store,
        machine=machine,
        session=SessionFacade(machine),
    )


@pytest.fixture
def logger() -> DummyLogger:
    return DummyLogger()


@pytest.fixture
def harness() -> SessionHarness:
    return build_harness()


@pytest.fixture
async def ready(harness: SessionHarness) -> SessionHarness:
    """Harness after startup restore on a fresh install."""
    await harness.session.initialize()
    return harness


@pytest.fixture
async def signed_in(ready: SessionHarness) -> SessionHarness:
    """Remembered password session for ana@example.com."""
    user_id = ready.password.add_account("ana@example.com", "secret123")
    ready.profiles.add(user_id, "ana@example.com", "Ana")
    await ready.session.set_remember_me(True)
    await ready.session.login("ana@example.com", "secret123")
    return ready
