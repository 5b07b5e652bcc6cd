"""
Identity Provider Contracts.

Narrow request/response contracts for the external identity backends.
Every concrete provider implements the subset of capabilities it
supports and reports failures as :class:`~biofield_auth.errors.ProviderError`;
the :class:`~biofield_auth.providers.adapter.IdentityProviderAdapter`
is the only caller and converts those into ``AuthError``.

Native SDK clients (Google Sign-In, Facebook Login, the biometric sensor)
are injected behind the ``*Client`` / ``BiometricSensor`` protocols so the
session core never holds a globally configured SDK instance.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Protocol, runtime_checkable

from biofield_auth.models.auth_models import ProviderIdentity, TokenPair
from biofield_auth.models.enums import IdentityProviderKind


@runtime_checkable
class PasswordProvider(Protocol):
    """E-mail/password identity service."""

    async def sign_in(self, email: str, password: str) -> ProviderIdentity: ...  # noqa: E704

    async def sign_up(self, email: str, password: str) -> ProviderIdentity: ...  # noqa: E704

    async def update_display_name(self, name: str) -> None: ...  # noqa: E704

    async def send_password_reset(self, email: str) -> None: ...  # noqa: E704

    async def reauthenticate(self, email: str, password: str) -> None: ...  # noqa: E704

    async def change_password(self, new_password: str) -> None: ...  # noqa: E704

    async def refresh(self, refresh_token: Optional[str]) -> TokenPair: ...  # noqa: E704

    async def sign_out(self) -> None: ...  # noqa: E704


@runtime_checkable
class FederatedProvider(Protocol):
    """OAuth provider reached through a native sign-in UI."""

    kind: IdentityProviderKind

    async def sign_in(self) -> ProviderIdentity: ...  # noqa: E704

    async def refresh(self, refresh_token: Optional[str]) -> TokenPair: ...  # noqa: E704

    async def sign_out(self) -> None: ...  # noqa: E704


@runtime_checkable
class FederatedSignInClient(Protocol):
    """Native federated SDK wrapper.

    ``sign_in`` receives the SDK options configured for the provider
    (``{"webClientId": ...}`` for Google, ``{"permissions": [...]}`` for
    Facebook) and returns a mapping with ``externalId``, ``email``,
    ``displayName``, ``idToken``, ``isNewAccount`` (and optionally
    ``refreshToken``), or ``{"cancelled": True}`` when the user aborts the
    external UI.  ``refresh`` silently re-signs the current account (no
    UI) and returns ``idToken`` and optionally ``refreshToken``.
    ``sign_out`` must be safe to call when no account is signed in.
    """

    async def sign_in(self, options: Mapping[str, Any]) -> Mapping[str, Any]: ...  # noqa: E704

    async def refresh(self, refresh_token: Optional[str]) -> Mapping[str, Any]: ...  # noqa: E704

    async def sign_out(self) -> None: ...  # noqa: E704


@runtime_checkable
class BiometricSensor(Protocol):
    """Device biometric sensor.

    ``authenticate`` returns ``True`` on a confirmed gesture and ``False``
    on a rejected one; it may raise ``ProviderError`` with a sensor code
    (``UserCancel``, ``NotEnrolled``, ``LockOut`` ...).
    """

    async def is_supported(self) -> bool: ...  # noqa: E704

    async def authenticate(self, prompt: str) -> bool: ...  # noqa: E704
