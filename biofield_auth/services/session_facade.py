"""
Session Facade.

The public API the rest of the application uses for authentication:
read-only state fields plus the lifecycle operations.  Every operation
delegates to :class:`SessionStateMachine`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Optional

from biofield_auth.models.auth_models import RegisterData, SessionState
from biofield_auth.models.enums import SessionPhase
from biofield_auth.models.user import UserRecord
from biofield_auth.services.session_machine import SessionStateMachine, StateListener


class SessionFacade:
    """Single consistent view of the authentication state.

    Parameters
    ----------
    machine:
        The session state machine to delegate to.
    """

    def __init__(self, machine: SessionStateMachine) -> None:
        self._machine: SessionStateMachine = machine

    # -- State --------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._machine.state

    @property
    def phase(self) -> SessionPhase:
        return self._machine.state.phase

    @property
    def user(self) -> Optional[UserRecord]:
        return self._machine.state.user

    @property
    def token(self) -> Optional[str]:
        return self._machine.state.token

    @property
    def is_authenticated(self) -> bool:
        return self._machine.state.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self._machine.state.is_loading

    @property
    def biometric_enabled(self) -> bool:
        return self._machine.state.biometric_enabled

    @property
    def remember_me(self) -> bool:
        return self._machine.state.remember_me

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with every new state; returns an unsubscribe callable."""
        return self._machine.subscribe(listener)

    # -- Lifecycle ----------------------------------------------------------

    async def initialize(self) -> SessionState:
        return await self._machine.initialize()

    async def login(self, email: str, password: str) -> SessionState:
        return await self._machine.login(email, password)

    async def register(self, data: RegisterData) -> SessionState:
        return await self._machine.register(data)

    async def login_with_google(self) -> SessionState:
        return await self._machine.login_with_google()

    async def login_with_facebook(self) -> SessionState:
        return await self._machine.login_with_facebook()

    async def login_with_biometric(self) -> SessionState:
        return await self._machine.login_with_biometric()

    async def logout(self) -> SessionState:
        return await self._machine.logout()

    async def refresh_session(self) -> SessionState:
        return await self._machine.refresh_session()

    async def enable_biometric(self) -> SessionState:
        return await self._machine.enable_biometric()

    async def disable_biometric(self) -> SessionState:
        return await self._machine.disable_biometric()

    async def update_profile(self, partial: Mapping[str, Any]) -> SessionState:
        return await self._machine.update_profile(partial)

    async def change_password(self, current_password: str, new_password: str) -> None:
        await self._machine.change_password(current_password, new_password)

    async def reset_password(self, email: str) -> None:
        await self._machine.reset_password(email)

    async def set_remember_me(self, remember_me: bool) -> SessionState:
        return await self._machine.set_remember_me(remember_me)
