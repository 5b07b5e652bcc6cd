"""
Session Services Package.

Contains the credential store, the profile service client, the session
state machine and its facade.

The ``create_services()`` factory wires every provider and service
together, returning a typed dict that the application layer can consume
without knowing the internal dependency graph.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, TypedDict

from biofield_auth.config import AppConfig
from biofield_auth.database import DatabaseManager
from biofield_auth.logger import get_logger
from biofield_auth.providers.adapter import IdentityProviderAdapter
from biofield_auth.providers.base import BiometricSensor, FederatedSignInClient
from biofield_auth.providers.biometric import BiometricProvider, NoBiometricSensor
from biofield_auth.providers.federated import (
    FacebookIdentityProvider,
    GoogleIdentityProvider,
)
from biofield_auth.providers.password import SupabasePasswordProvider
from biofield_auth.services.credential_store import (
    CredentialStore,
    KeyValueStore,
    SQLiteKeyValueStore,
)
from biofield_auth.services.login_throttle import LoginThrottle
from biofield_auth.services.profile_client import (
    HttpProfileServiceClient,
    ProfileServiceClient,
)
from biofield_auth.services.session_facade import SessionFacade
from biofield_auth.services.session_machine import SessionStateMachine
from biofield_auth.services.token_cipher import TokenCipher


class ServiceContainer(TypedDict, total=False):
    """Typed container for the session core services.

    ``token_cipher`` is ``None`` when ``ENCRYPT_TOKENS_AT_REST`` is off.
    """

    # --- Providers ---
    identity_adapter: IdentityProviderAdapter

    # --- Persistence ---
    credential_store: CredentialStore
    token_cipher: Optional[TokenCipher]

    # --- Session ---
    profile_client: ProfileServiceClient
    login_throttle: LoginThrottle
    session_machine: SessionStateMachine
    session_facade: SessionFacade


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    biometric_sensor: Optional[BiometricSensor] = None,
    google_client: Optional[FederatedSignInClient] = None,
    facebook_client: Optional[FederatedSignInClient] = None,
    profile_client: Optional[ProfileServiceClient] = None,
    key_value_store: Optional[KeyValueStore] = None,
) -> ServiceContainer:
    """
    Wire all providers and services together.

    This is the single composition root for the session core.  The
    application entry-point calls this once at startup and keeps the
    returned dict for the lifetime of the process.

    Args:
        db: Initialised DatabaseManager with the schema applied.
        config: Application configuration.
        biometric_sensor: Native sensor wrapper; defaults to a sensor that
            reports itself unsupported.
        google_client: Native Google Sign-In wrapper, if available.  It is
            signed in with ``GOOGLE_WEB_CLIENT_ID`` as ``webClientId``.
        facebook_client: Native Facebook Login wrapper, if available.  It
            requests ``FACEBOOK_PERMISSIONS``.
        profile_client: Profile service client; defaults to the HTTP client
            for ``PROFILE_SERVICE_URL``.
        key_value_store: Device key/value store; defaults to the SQLite
            store in *db*.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("session")

    # ------------------------------------------------------------------
    # 1. Identity providers
    # ------------------------------------------------------------------
    adapter = IdentityProviderAdapter(
        password=SupabasePasswordProvider(db=db, logger=logger),
        google=(
            GoogleIdentityProvider(
                client=google_client,
                logger=logger,
                options={"webClientId": config.GOOGLE_WEB_CLIENT_ID},
            )
            if google_client is not None else None
        ),
        facebook=(
            FacebookIdentityProvider(
                client=facebook_client,
                logger=logger,
                options={"permissions": list(config.FACEBOOK_PERMISSIONS)},
            )
            if facebook_client is not None else None
        ),
        biometric=BiometricProvider(
            sensor=biometric_sensor or NoBiometricSensor(),
            logger=logger,
        ),
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 2. Persistence
    # ------------------------------------------------------------------
    token_cipher: Optional[TokenCipher] = None
    if config.ENCRYPT_TOKENS_AT_REST:
        token_cipher = TokenCipher(salt_path=Path(config.SESSION_SALT_PATH), logger=logger)
    credential_store = CredentialStore(
        store=key_value_store or SQLiteKeyValueStore(db=db, logger=logger),
        logger=logger,
        cipher=token_cipher,
    )

    # ------------------------------------------------------------------
    # 3. Session
    # ------------------------------------------------------------------
    profiles: ProfileServiceClient = profile_client or HttpProfileServiceClient(
        base_url=config.PROFILE_SERVICE_URL,
        logger=logger,
        timeout=config.PROFILE_SERVICE_TIMEOUT_S,
    )
    login_throttle = LoginThrottle(
        logger=logger,
        max_failed_attempts=config.LOGIN_MAX_FAILED_ATTEMPTS,
        lockout_seconds=config.LOGIN_LOCKOUT_SECONDS,
    )
    session_machine = SessionStateMachine(
        adapter=adapter,
        profiles=profiles,
        store=credential_store,
        throttle=login_throttle,
        config=config,
        logger=logger,
        db=db,
    )

    return ServiceContainer(
        identity_adapter=adapter,
        credential_store=credential_store,
        token_cipher=token_cipher,
        profile_client=profiles,
        login_throttle=login_throttle,
        session_machine=session_machine,
        session_facade=SessionFacade(session_machine),
    )
