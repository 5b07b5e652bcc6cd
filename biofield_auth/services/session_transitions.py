"""
Session Transition Function.

Typed events and the pure ``transition(state, event)`` function that is
the only producer of new :class:`SessionState` values.  No I/O happens
here; :class:`~biofield_auth.services.session_machine.SessionStateMachine`
performs the effects and feeds their results back in as events.

Transition table (phase, event) -> phase::

    INITIALIZING        RestoreSucceeded          AUTHENTICATED
    INITIALIZING        RestoreFailed             UNAUTHENTICATED
    UNAUTHENTICATED     LoginStarted              AUTHENTICATING
    AUTHENTICATING      LoginSucceeded            AUTHENTICATED
    AUTHENTICATING      LoginFailed               UNAUTHENTICATED
    UNAUTHENTICATED     BiometricRestoreStarted   RESTORING_BIOMETRIC
    RESTORING_BIOMETRIC BiometricRestoreSucceeded AUTHENTICATED
    RESTORING_BIOMETRIC BiometricRestoreFailed    UNAUTHENTICATED
    AUTHENTICATED       LoggedOut                 UNAUTHENTICATED
    UNAUTHENTICATED     LoggedOut                 UNAUTHENTICATED
    AUTHENTICATED       ProfileUpdated            AUTHENTICATED
    AUTHENTICATED       TokensRefreshed           AUTHENTICATED
    UNAUTH / AUTH       OperationStarted          (unchanged, loading)
    UNAUTH / AUTH       OperationFinished         (unchanged, idle)
    UNAUTH / AUTH       BiometricFlagChanged      (unchanged)
    UNAUTH / AUTH       RememberMeChanged         (unchanged)

Any other pair raises :class:`~biofield_auth.errors.InvalidTransitionError`.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel

from biofield_auth.errors import InvalidTransitionError
from biofield_auth.models.auth_models import SessionEnvelope, SessionState
from biofield_auth.models.enums import IdentityProviderKind, SessionPhase
from biofield_auth.models.user import UserRecord

_EVENT_CONFIG = {"frozen": True}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class RestoreSucceeded(BaseModel):
    envelope: SessionEnvelope
    biometric_enabled: bool

    model_config = _EVENT_CONFIG


class RestoreFailed(BaseModel):
    biometric_enabled: bool = False
    remember_me: bool = False

    model_config = _EVENT_CONFIG


class LoginStarted(BaseModel):
    model_config = _EVENT_CONFIG


class LoginSucceeded(BaseModel):
    user: UserRecord
    token: str
    refresh_token: Optional[str] = None
    provider: IdentityProviderKind = IdentityProviderKind.PASSWORD

    model_config = _EVENT_CONFIG


class LoginFailed(BaseModel):
    model_config = _EVENT_CONFIG


class BiometricRestoreStarted(BaseModel):
    model_config = _EVENT_CONFIG


class BiometricRestoreSucceeded(BaseModel):
    envelope: SessionEnvelope

    model_config = _EVENT_CONFIG


class BiometricRestoreFailed(BaseModel):
    model_config = _EVENT_CONFIG


class LoggedOut(BaseModel):
    model_config = _EVENT_CONFIG


class ProfileUpdated(BaseModel):
    user: UserRecord

    model_config = _EVENT_CONFIG


class TokensRefreshed(BaseModel):
    user: UserRecord
    token: str
    refresh_token: Optional[str] = None

    model_config = _EVENT_CONFIG


class OperationStarted(BaseModel):
    model_config = _EVENT_CONFIG


class OperationFinished(BaseModel):
    model_config = _EVENT_CONFIG


class BiometricFlagChanged(BaseModel):
    enabled: bool

    model_config = _EVENT_CONFIG


class RememberMeChanged(BaseModel):
    remember_me: bool

    model_config = _EVENT_CONFIG


SessionEvent = Union[
    RestoreSucceeded,
    RestoreFailed,
    LoginStarted,
    LoginSucceeded,
    LoginFailed,
    BiometricRestoreStarted,
    BiometricRestoreSucceeded,
    BiometricRestoreFailed,
    LoggedOut,
    ProfileUpdated,
    TokensRefreshed,
    OperationStarted,
    OperationFinished,
    BiometricFlagChanged,
    RememberMeChanged,
]


# ---------------------------------------------------------------------------
# Transition function
# ---------------------------------------------------------------------------

_IDLE_PHASES: frozenset[SessionPhase] = frozenset({
    SessionPhase.UNAUTHENTICATED,
    SessionPhase.AUTHENTICATED,
})

_ALLOWED: dict[type[BaseModel], frozenset[SessionPhase]] = {
    RestoreSucceeded: frozenset({SessionPhase.INITIALIZING}),
    RestoreFailed: frozenset({SessionPhase.INITIALIZING}),
    LoginStarted: frozenset({SessionPhase.UNAUTHENTICATED}),
    LoginSucceeded: frozenset({SessionPhase.AUTHENTICATING}),
    LoginFailed: frozenset({SessionPhase.AUTHENTICATING}),
    BiometricRestoreStarted: frozenset({SessionPhase.UNAUTHENTICATED}),
    BiometricRestoreSucceeded: frozenset({SessionPhase.RESTORING_BIOMETRIC}),
    BiometricRestoreFailed: frozenset({SessionPhase.RESTORING_BIOMETRIC}),
    LoggedOut: _IDLE_PHASES,
    ProfileUpdated: frozenset({SessionPhase.AUTHENTICATED}),
    TokensRefreshed: frozenset({SessionPhase.AUTHENTICATED}),
    OperationStarted: _IDLE_PHASES,
    OperationFinished: _IDLE_PHASES,
    BiometricFlagChanged: _IDLE_PHASES,
    RememberMeChanged: _IDLE_PHASES,
}


def unauthenticated_state(biometric_enabled: bool, remember_me: bool = False) -> SessionState:
    """The default signed-out state, keeping the device biometric flag."""
    return SessionState(
        phase=SessionPhase.UNAUTHENTICATED,
        is_loading=False,
        biometric_enabled=biometric_enabled,
        remember_me=remember_me,
    )


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state that follows *state* after *event*.

    Raises
    ------
    InvalidTransitionError
        If *event* is not allowed in ``state.phase``.
    """
    allowed = _ALLOWED.get(type(event))
    if allowed is None or state.phase not in allowed:
        raise InvalidTransitionError(
            f"{type(event).__name__} is not allowed in phase {state.phase.value}."
        )

    if isinstance(event, RestoreSucceeded):
        return SessionState(
            phase=SessionPhase.AUTHENTICATED,
            user=event.envelope.user,
            token=event.envelope.token,
            refresh_token=event.envelope.refresh_token,
            provider=event.envelope.provider,
            is_loading=False,
            biometric_enabled=event.biometric_enabled,
            remember_me=True,
        )

    if isinstance(event, RestoreFailed):
        return unauthenticated_state(event.biometric_enabled, event.remember_me)

    if isinstance(event, LoginStarted):
        return state.model_copy(
            update={"phase": SessionPhase.AUTHENTICATING, "is_loading": True},
        )

    if isinstance(event, LoginSucceeded):
        return state.model_copy(update={
            "phase": SessionPhase.AUTHENTICATED,
            "user": event.user,
            "token": event.token,
            "refresh_token": event.refresh_token,
            "provider": event.provider,
            "is_loading": False,
        })

    if isinstance(event, TokensRefreshed):
        return state.model_copy(update={
            "user": event.user,
            "token": event.token,
            "refresh_token": event.refresh_token,
            "is_loading": False,
        })

    if isinstance(event, (LoginFailed, BiometricRestoreFailed)):
        return state.model_copy(
            update={"phase": SessionPhase.UNAUTHENTICATED, "is_loading": False},
        )

    if isinstance(event, BiometricRestoreStarted):
        return state.model_copy(
            update={"phase": SessionPhase.RESTORING_BIOMETRIC, "is_loading": True},
        )

    if isinstance(event, BiometricRestoreSucceeded):
        return state.model_copy(update={
            "phase": SessionPhase.AUTHENTICATED,
            "user": event.envelope.user,
            "token": event.envelope.token,
            "refresh_token": event.envelope.refresh_token,
            "provider": event.envelope.provider,
            "is_loading": False,
        })

    if isinstance(event, LoggedOut):
        return unauthenticated_state(state.biometric_enabled)

    if isinstance(event, ProfileUpdated):
        return state.model_copy(update={"user": event.user, "is_loading": False})

    if isinstance(event, OperationStarted):
        return state.model_copy(update={"is_loading": True})

    if isinstance(event, OperationFinished):
        return state.model_copy(update={"is_loading": False})

    if isinstance(event, BiometricFlagChanged):
        return state.model_copy(update={"biometric_enabled": event.enabled})

    if isinstance(event, RememberMeChanged):
        return state.model_copy(update={"remember_me": event.remember_me})

    raise InvalidTransitionError(f"Unhandled event {type(event).__name__}.")
