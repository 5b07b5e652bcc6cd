"""
Session State Machine.

Owns the authoritative in-memory :class:`SessionState` and executes every
lifecycle operation:

1. Validate input and the current phase.
2. Call the identity provider adapter and/or the profile service.
3. Feed the outcome back through the pure
   :func:`~biofield_auth.services.session_transitions.transition`.
4. Persist through the :class:`CredentialStore` when the session is
   remembered.

Lifecycle operations are serialized by one ``asyncio.Lock``: a second
call waits until the first one has finished.  The machine never re-reads
the credential store to decide whether it is authenticated; the store is
read only on startup restore and on biometric login.

User-initiated operations raise :class:`AuthError` after ``is_loading``
has been reset.  Background operations (startup restore and
``refresh_session``) recover to ``UNAUTHENTICATED`` and never raise.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, TypeVar

from pydantic import ValidationError

from biofield_auth.config import AppConfig
from biofield_auth.database import DatabaseManager
from biofield_auth.errors import AuthError, AuthErrorKind, ProviderError
from biofield_auth.logger import StructuredLogger
from biofield_auth.models.auth_models import (
    ProviderIdentity,
    RegisterData,
    SessionEnvelope,
    SessionState,
)
from biofield_auth.models.enums import IdentityProviderKind, SessionPhase
from biofield_auth.models.user import ProfileDraft, UserRecord
from biofield_auth.providers.adapter import IdentityProviderAdapter
from biofield_auth.providers.error_map import to_auth_error
from biofield_auth.services.base_service import BaseService
from biofield_auth.services.credential_store import CredentialStore
from biofield_auth.services.login_throttle import LoginThrottle
from biofield_auth.services.profile_client import ProfileServiceClient
from biofield_auth.services.session_transitions import (
    BiometricFlagChanged,
    BiometricRestoreFailed,
    BiometricRestoreStarted,
    BiometricRestoreSucceeded,
    LoggedOut,
    LoginFailed,
    LoginStarted,
    LoginSucceeded,
    OperationFinished,
    OperationStarted,
    ProfileUpdated,
    RememberMeChanged,
    RestoreFailed,
    RestoreSucceeded,
    SessionEvent,
    TokensRefreshed,
    transition,
)
from biofield_auth.utils.audit import DetailValue, log_audit_event
from biofield_auth.utils.validation import (
    normalize_email,
    validate_email,
    validate_name,
    validate_password,
)

T = TypeVar("T")

StateListener = Callable[[SessionState], None]

_ENTITY: str = "Session"

# Sign-in failures that count towards the per-e-mail lockout.
_COUNTED_FAILURES: frozenset[AuthErrorKind] = frozenset({
    AuthErrorKind.INVALID_CREDENTIALS,
    AuthErrorKind.ACCOUNT_NOT_FOUND,
})


class SessionStateMachine(BaseService):
    """Effect executor around the session transition function.

    Parameters
    ----------
    adapter:
        Identity provider adapter.
    profiles:
        Profile service client.
    store:
        Envelope-level credential store.
    throttle:
        Per-e-mail failed sign-in tracker.
    config:
        Application configuration (prompts, password policy, max age).
    logger:
        Structured logger.
    db:
        Optional database manager; when given, audit events are also
        written to the ``audit_log`` table.
    """

    def __init__(
        self,
        adapter: IdentityProviderAdapter,
        profiles: ProfileServiceClient,
        store: CredentialStore,
        throttle: LoginThrottle,
        config: AppConfig,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger)
        self._adapter: IdentityProviderAdapter = adapter
        self._profiles: ProfileServiceClient = profiles
        self._store: CredentialStore = store
        self._throttle: LoginThrottle = throttle
        self._config: AppConfig = config
        self._db: Optional[DatabaseManager] = db

        self._state: SessionState = SessionState()
        self._lock: asyncio.Lock = asyncio.Lock()
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for every state change.

        Returns a callable that removes the listener again.  Exceptions
        raised by a listener are logged and never reach the operation that
        changed the state.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Startup restore
    # ------------------------------------------------------------------

    async def initialize(self) -> SessionState:
        """Restore a remembered session from the credential store.

        Ends in ``AUTHENTICATED`` when a complete envelope was persisted
        with ``rememberMe`` set (and is younger than
        ``SESSION_MAX_AGE_HOURS`` when that limit is enabled), otherwise
        in ``UNAUTHENTICATED``.  Never raises.  Calling it again after
        startup is a no-op.
        """
        async with self._lock:
            if self._state.phase is not SessionPhase.INITIALIZING:
                return self._state

            try:
                await self._restore_locked()
            except Exception as exc:
                self._logger.error(
                    "Startup restore failed: %s", exc,
                    exc_info=True,
                    extra={"event": "SESSION_RESTORE_FAILED"},
                )
                if self._state.phase is SessionPhase.INITIALIZING:
                    self._dispatch(RestoreFailed())
            return self._state

    async def _restore_locked(self) -> None:
        stored = await self._store.load()

        if stored.damaged_envelope:
            self._logger.warning(
                "Discarding damaged persisted session.",
                extra={"event": "SESSION_DISCARDED"},
            )
            await self._store.clear_envelope()

        envelope = stored.envelope
        if envelope is None or not stored.remember_me:
            self._dispatch(RestoreFailed(
                biometric_enabled=stored.biometric_enabled,
                remember_me=stored.remember_me and envelope is None,
            ))
            self._logger.info(
                "No remembered session found.",
                extra={"event": "SESSION_NOT_RESTORED"},
            )
            return

        if self._is_expired(envelope.user):
            self._logger.info(
                "Remembered session for %s is older than %d hours; discarding it.",
                envelope.user.id,
                self._config.SESSION_MAX_AGE_HOURS,
                extra={"event": "SESSION_EXPIRED", "user_id": envelope.user.id},
            )
            await self._store.clear_envelope()
            self._dispatch(RestoreFailed(biometric_enabled=stored.biometric_enabled))
            await self._audit("SESSION_EXPIRED", envelope.user.id)
            return

        self._dispatch(RestoreSucceeded(
            envelope=envelope,
            biometric_enabled=stored.biometric_enabled,
        ))
        self._logger.info(
            "Session restored for %s.", envelope.user.id,
            extra={"event": "SESSION_RESTORED", "user_id": envelope.user.id},
        )
        await self._audit("SESSION_RESTORED", envelope.user.id)

    # ------------------------------------------------------------------
    # Password sign-in and registration
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> SessionState:
        """Sign in with e-mail and password.

        The profile is fetched for the returning identity and created when
        the profile service does not know it yet.

        Raises
        ------
        AuthError
            ``InvalidCredentials`` for empty or malformed input and
            rejected credentials, ``RateLimited`` while the e-mail is
            locked out, or the mapped provider/profile failure.
        """
        async with self._lock:
            email = normalize_email(email)
            if not validate_email(email).is_valid or not password:
                raise AuthError(
                    AuthErrorKind.INVALID_CREDENTIALS,
                    "Enter your email and password.",
                )

            is_locked, remaining = self._throttle.check(email)
            if is_locked:
                raise AuthError(
                    AuthErrorKind.RATE_LIMITED,
                    f"Too many failed attempts. Try again in {remaining} seconds.",
                )

            self._dispatch(LoginStarted())
            try:
                identity = await self._adapter.password_sign_in(email, password)
                user = await self._resolve_profile(identity)
            except AuthError as exc:
                if exc.kind in _COUNTED_FAILURES:
                    self._throttle.record_failure(email)
                self._fail_login(exc, IdentityProviderKind.PASSWORD)
                raise
            except Exception as exc:
                raise self._unexpected_login_failure(exc, IdentityProviderKind.PASSWORD) from exc

            self._throttle.reset(email)
            return await self._complete_login(identity, user, "LOGIN")

    async def register(self, data: RegisterData) -> SessionState:
        """Create a password account and its profile.

        The profile is always created, never fetched, and the provider
        display name is set to ``data.name``.

        Raises
        ------
        AuthError
            ``InvalidCredentials`` for a missing name or malformed e-mail,
            ``WeakCredential`` for a short password,
            ``AccountAlreadyExists`` when the e-mail is taken.
        """
        async with self._lock:
            email = normalize_email(data.email)
            for check in (validate_name(data.name), validate_email(email)):
                if not check.is_valid:
                    raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, check.error_message)
            password_check = validate_password(data.password, self._config.MIN_PASSWORD_LENGTH)
            if not password_check.is_valid:
                raise AuthError(AuthErrorKind.WEAK_CREDENTIAL, password_check.error_message)

            name = data.name.strip()
            self._dispatch(LoginStarted())
            try:
                identity = await self._adapter.password_sign_up(email, data.password)
                await self._adapter.update_display_name(name)
                user = await self._create_profile(identity, ProfileDraft(
                    id=identity.external_id,
                    email=identity.email or email,
                    display_name=name,
                    phone=data.phone,
                    birth_date=data.birth_date,
                ))
            except AuthError as exc:
                self._fail_login(exc, IdentityProviderKind.PASSWORD)
                raise
            except Exception as exc:
                raise self._unexpected_login_failure(exc, IdentityProviderKind.PASSWORD) from exc

            return await self._complete_login(identity, user, "REGISTER")

    # ------------------------------------------------------------------
    # Federated sign-in
    # ------------------------------------------------------------------

    async def login_with_google(self) -> SessionState:
        return await self._federated_login(IdentityProviderKind.GOOGLE)

    async def login_with_facebook(self) -> SessionState:
        return await self._federated_login(IdentityProviderKind.FACEBOOK)

    async def _federated_login(self, kind: IdentityProviderKind) -> SessionState:
        """Run the provider handshake, then create or fetch the profile.

        A new account gets its profile created; an existing account always
        has it fetched, so server-side changes made on another device are
        picked up.
        """
        async with self._lock:
            self._dispatch(LoginStarted())
            try:
                identity = await self._adapter.federated_sign_in(kind)
                if identity.is_new_account:
                    user = await self._create_profile(identity, ProfileDraft(
                        id=identity.external_id,
                        email=identity.email,
                        display_name=identity.display_name,
                    ))
                else:
                    user = await self._profile_call(
                        self._profiles.fetch(identity.external_id, identity.id_token)
                    )
            except AuthError as exc:
                self._fail_login(exc, kind)
                raise
            except Exception as exc:
                raise self._unexpected_login_failure(exc, kind) from exc

            return await self._complete_login(identity, user, f"LOGIN_{kind.upper()}")

    # ------------------------------------------------------------------
    # Biometric sign-in
    # ------------------------------------------------------------------

    async def login_with_biometric(self) -> SessionState:
        """Re-open the persisted session after a biometric confirmation.

        The persisted user and token are restored as they are; no profile
        call is made.

        Raises
        ------
        AuthError
            ``BiometricUnavailable`` when the flag is off or the sensor is
            missing, ``SessionNotFound`` when nothing was persisted, or the
            mapped sensor failure.
        """
        async with self._lock:
            if not self._state.biometric_enabled:
                raise AuthError(
                    AuthErrorKind.BIOMETRIC_UNAVAILABLE,
                    "Biometric sign-in is not enabled on this device.",
                )

            envelope = await self._store.load_envelope()
            if envelope is None:
                raise AuthError(AuthErrorKind.SESSION_NOT_FOUND)

            self._dispatch(BiometricRestoreStarted())
            try:
                await self._adapter.biometric_confirm(self._config.BIOMETRIC_LOGIN_PROMPT)
            except AuthError as exc:
                self._dispatch(BiometricRestoreFailed())
                self._logger.info(
                    "Biometric sign-in failed: %s", exc.kind,
                    extra={"event": "LOGIN_FAILED", "error_kind": str(exc.kind)},
                )
                raise
            except Exception as exc:
                self._dispatch(BiometricRestoreFailed())
                self._logger.error(
                    "Unexpected biometric failure: %s", exc, exc_info=True,
                )
                raise AuthError(AuthErrorKind.UNKNOWN, detail=str(exc)) from exc

            self._dispatch(BiometricRestoreSucceeded(envelope=envelope))
            self._logger.info(
                "Biometric sign-in succeeded for %s.", envelope.user.id,
                extra={"event": "LOGIN_BIOMETRIC", "user_id": envelope.user.id},
            )
            await self._audit("LOGIN_BIOMETRIC", envelope.user.id)
            return self._state

    # ------------------------------------------------------------------
    # Logout and refresh
    # ------------------------------------------------------------------

    async def logout(self) -> SessionState:
        """Sign out everywhere and clear the persisted session.

        A no-op without an active session.  Never raises.  The biometric
        flag survives.
        """
        async with self._lock:
            if not self._state.is_authenticated:
                return self._state
            await self._logout_locked("LOGOUT")
            return self._state

    async def refresh_session(self) -> SessionState:
        """Re-validate the token and refetch the profile.

        Any failure ends the session (implicit logout) instead of raising.
        Without an active session this is a no-op.
        """
        async with self._lock:
            if self._state.phase is not SessionPhase.AUTHENTICATED:
                return self._state

            user = self._require_user()
            try:
                tokens = await self._adapter.token_refresh(
                    self._state.refresh_token,
                    self._state.provider or IdentityProviderKind.PASSWORD,
                )
                fresh_user = await self._profile_call(
                    self._profiles.fetch(user.id, tokens.id_token)
                )
            except Exception as exc:
                self._logger.warning(
                    "Session refresh failed for %s; signing out: %s", user.id, exc,
                    extra={"event": "SESSION_REFRESH_FAILED", "user_id": user.id},
                )
                await self._logout_locked("SESSION_REFRESH_FAILED")
                return self._state

            refresh_token = tokens.refresh_token or self._state.refresh_token
            self._dispatch(TokensRefreshed(
                user=fresh_user,
                token=tokens.id_token,
                refresh_token=refresh_token,
            ))
            await self._persist_if_remembered()
            self._logger.info(
                "Session refreshed for %s.", user.id,
                extra={"event": "SESSION_REFRESHED", "user_id": user.id},
            )
            return self._state

    async def _logout_locked(self, action: str) -> None:
        user_id = self._state.user.id if self._state.user is not None else ""
        await self._adapter.sign_out_all()
        await self._store.clear_envelope()
        self._dispatch(LoggedOut())
        self._logger.info(
            "Signed out %s.", user_id,
            extra={"event": action, "user_id": user_id},
        )
        await self._audit(action, user_id)

    # ------------------------------------------------------------------
    # Biometric flag
    # ------------------------------------------------------------------

    async def enable_biometric(self) -> SessionState:
        """Turn biometric sign-in on after an explicit confirmation.

        Raises
        ------
        AuthError
            ``BiometricUnavailable`` without a supported sensor, or the
            mapped sensor failure when the gesture is rejected.
        """
        async with self._lock:
            await self._require_sensor()
            await self._adapter.biometric_confirm(self._config.BIOMETRIC_ENABLE_PROMPT)
            await self._set_biometric_flag(True)
            return self._state

    async def disable_biometric(self) -> SessionState:
        async with self._lock:
            await self._require_sensor()
            await self._set_biometric_flag(False)
            return self._state

    async def _require_sensor(self) -> None:
        if not await self._adapter.biometric_is_supported():
            raise AuthError(
                AuthErrorKind.BIOMETRIC_UNAVAILABLE,
                "This device has no usable biometric sensor.",
            )

    async def _set_biometric_flag(self, enabled: bool) -> None:
        # The flag has its own slot and is written whatever rememberMe says.
        await self._store.save_biometric_flag(enabled)
        self._dispatch(BiometricFlagChanged(enabled=enabled))
        action = "BIOMETRIC_ENABLED" if enabled else "BIOMETRIC_DISABLED"
        self._logger.info("Biometric sign-in %s.", "enabled" if enabled else "disabled",
                          extra={"event": action})
        user_id = self._state.user.id if self._state.user is not None else ""
        await self._audit(action, user_id)

    # ------------------------------------------------------------------
    # Account maintenance
    # ------------------------------------------------------------------

    async def update_profile(self, partial: Mapping[str, Any]) -> SessionState:
        """Apply *partial* to the current user.

        The change is validated locally with :meth:`UserRecord.merge`
        before it is sent.  Fields the profile service returns are merged
        over the locally merged record, so nested siblings the service
        omits keep their current values.

        Raises
        ------
        AuthError
            ``NotAuthenticated`` without an active session, ``Unknown``
            for an invalid change, or the mapped profile failure.
        """
        async with self._lock:
            user = self._require_user()
            token = self._state.token or ""
            try:
                merged = user.merge(partial)
            except (ValueError, ValidationError) as exc:
                raise AuthError(
                    AuthErrorKind.UNKNOWN, "The profile change is invalid.", detail=str(exc),
                ) from exc

            self._dispatch(OperationStarted())
            try:
                updated = await self._profile_call(
                    self._profiles.update(user.id, partial, token)
                )
            except AuthError:
                self._dispatch(OperationFinished())
                raise
            except Exception as exc:
                self._dispatch(OperationFinished())
                raise AuthError(AuthErrorKind.UNKNOWN, detail=str(exc)) from exc

            try:
                final = merged.merge(updated.model_dump(exclude_unset=True))
            except (ValueError, ValidationError) as exc:
                self._dispatch(OperationFinished())
                raise AuthError(
                    AuthErrorKind.UNKNOWN,
                    "The profile service returned an unusable record.",
                    detail=str(exc),
                ) from exc

            self._dispatch(ProfileUpdated(user=final))
            await self._persist_if_remembered()
            await self._audit(
                "PROFILE_UPDATE", user.id, {"fields": ",".join(sorted(partial))},
            )
            return self._state

    async def change_password(self, current_password: str, new_password: str) -> None:
        """Re-authenticate with *current_password*, then set *new_password*.

        Neither password is retained and the credential store is not
        touched.

        Raises
        ------
        AuthError
            ``NotAuthenticated`` without an active session,
            ``InvalidCredentials`` when the current password is wrong,
            ``WeakCredential`` when the new one is too short.
        """
        async with self._lock:
            user = self._require_user()
            if not current_password:
                raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)
            check = validate_password(new_password, self._config.MIN_PASSWORD_LENGTH)
            if not check.is_valid:
                raise AuthError(AuthErrorKind.WEAK_CREDENTIAL, check.error_message)

            self._dispatch(OperationStarted())
            try:
                await self._adapter.reauthenticate(user.email, current_password)
                await self._adapter.change_password(new_password)
            except AuthError:
                raise
            except Exception as exc:
                self._logger.error("Unexpected password change failure: %s", exc, exc_info=True)
                raise AuthError(AuthErrorKind.UNKNOWN, detail=str(exc)) from exc
            finally:
                self._dispatch(OperationFinished())

            self._logger.info(
                "Password changed for %s.", user.id,
                extra={"event": "PASSWORD_CHANGED", "user_id": user.id},
            )
            await self._audit("PASSWORD_CHANGED", user.id)

    async def reset_password(self, email: str) -> None:
        """Ask the identity provider to send a password reset e-mail."""
        async with self._lock:
            email = normalize_email(email)
            check = validate_email(email)
            if not check.is_valid:
                raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, check.error_message)
            await self._adapter.send_password_reset(email)

    async def set_remember_me(self, remember_me: bool) -> SessionState:
        """Change whether the session is persisted across restarts.

        Turning it on while signed in persists the current session right
        away; turning it off clears whatever was persisted.
        """
        async with self._lock:
            self._dispatch(RememberMeChanged(remember_me=remember_me))
            if not remember_me:
                await self._store.clear_envelope()
                await self._store.save_remember_me(False)
            elif self._state.is_authenticated:
                await self._persist_if_remembered()
            else:
                await self._store.save_remember_me(True)
            return self._state

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _dispatch(self, event: SessionEvent) -> SessionState:
        self._state = transition(self._state, event)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as exc:
                self._logger.error("Session state listener failed: %s", exc, exc_info=True)
        return self._state

    def _require_user(self) -> UserRecord:
        if not self._state.is_authenticated or self._state.user is None:
            raise AuthError(AuthErrorKind.NOT_AUTHENTICATED)
        return self._state.user

    async def _profile_call(self, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except ProviderError as exc:
            raise to_auth_error(exc) from exc

    async def _resolve_profile(self, identity: ProviderIdentity) -> UserRecord:
        """Fetch the profile of a returning identity, creating it if missing."""
        try:
            return await self._profile_call(
                self._profiles.fetch(identity.external_id, identity.id_token)
            )
        except AuthError as exc:
            if exc.kind is not AuthErrorKind.ACCOUNT_NOT_FOUND:
                raise
        self._logger.info(
            "No profile for %s yet; provisioning one.", identity.external_id,
            extra={"event": "PROFILE_PROVISIONED", "user_id": identity.external_id},
        )
        return await self._create_profile(identity, ProfileDraft(
            id=identity.external_id,
            email=identity.email,
            display_name=identity.display_name,
        ))

    async def _create_profile(self, identity: ProviderIdentity, draft: ProfileDraft) -> UserRecord:
        return await self._profile_call(self._profiles.create(draft, identity.id_token))

    async def _complete_login(
        self,
        identity: ProviderIdentity,
        user: UserRecord,
        action: str,
    ) -> SessionState:
        user = user.merge({"lastLoginAt": datetime.now(tz=timezone.utc)})
        self._dispatch(LoginSucceeded(
            user=user,
            token=identity.id_token,
            refresh_token=identity.refresh_token,
            provider=identity.provider,
        ))
        remembered = await self._persist_if_remembered()
        self._logger.info(
            "Signed in %s via %s.", user.id, identity.provider,
            extra={"event": action, "user_id": user.id},
        )
        await self._audit(action, user.id, {
            "provider": str(identity.provider),
            "remembered": remembered,
            "new_account": identity.is_new_account,
        })
        return self._state

    def _fail_login(self, exc: AuthError, provider: IdentityProviderKind) -> None:
        self._dispatch(LoginFailed())
        self._logger.info(
            "Sign-in via %s failed: %s", provider, exc.kind,
            extra={"event": "LOGIN_FAILED", "error_kind": str(exc.kind)},
        )

    def _unexpected_login_failure(self, exc: Exception, provider: IdentityProviderKind) -> AuthError:
        self._dispatch(LoginFailed())
        self._logger.error(
            "Unexpected failure during %s sign-in: %s", provider, exc, exc_info=True,
        )
        return AuthError(AuthErrorKind.UNKNOWN, detail=str(exc))

    async def _persist_if_remembered(self) -> bool:
        state = self._state
        if not state.remember_me or state.user is None or state.token is None:
            return False
        return await self._store.save_envelope(SessionEnvelope(
            user=state.user,
            token=state.token,
            refresh_token=state.refresh_token,
            provider=state.provider or IdentityProviderKind.PASSWORD,
        ))

    def _is_expired(self, user: UserRecord) -> bool:
        max_age = self._config.session_max_age_hours
        if max_age is None:
            return False
        last_login = user.last_login_at
        if last_login.tzinfo is None:
            last_login = last_login.replace(tzinfo=timezone.utc)
        return datetime.now(tz=timezone.utc) - last_login > timedelta(hours=max_age)

    async def _audit(
        self,
        action: str,
        user_id: str,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> None:
        if self._db is None:
            log_audit_event(self._logger, action, _ENTITY, user_id, user_id, details)
            return
        db = self._db

        def _write() -> None:
            with db.write_lock:
                log_audit_event(
                    self._logger, action, _ENTITY, user_id, user_id, details, conn=db.sqlite,
                )

        await asyncio.to_thread(_write)
