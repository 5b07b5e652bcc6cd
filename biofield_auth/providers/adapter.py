"""
Identity Provider Adapter.

Uniform capability set over the four identity backends.  This is the
only place ``ProviderError`` is caught: every method either returns a
normalized value or raises :class:`~biofield_auth.errors.AuthError`.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Optional, TypeVar

from biofield_auth.errors import AuthError, AuthErrorKind, ProviderError
from biofield_auth.logger import StructuredLogger
from biofield_auth.models.auth_models import ProviderIdentity, TokenPair
from biofield_auth.models.enums import IdentityProviderKind
from biofield_auth.providers.base import FederatedProvider, PasswordProvider
from biofield_auth.providers.biometric import BiometricProvider
from biofield_auth.providers.error_map import to_auth_error

T = TypeVar("T")


class IdentityProviderAdapter:
    """Composes the password, federated and biometric providers.

    Parameters
    ----------
    password:
        E-mail/password identity service.
    google, facebook:
        Federated providers; ``None`` when the platform has no client
        configured, in which case sign-in fails with ``Unknown``.
    biometric:
        Biometric confirmation provider.
    logger:
        Structured logger.
    """

    def __init__(
        self,
        password: PasswordProvider,
        google: Optional[FederatedProvider],
        facebook: Optional[FederatedProvider],
        biometric: BiometricProvider,
        logger: StructuredLogger,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._password: PasswordProvider = password
        self._federated: dict[IdentityProviderKind, FederatedProvider] = {}
        if google is not None:
            self._federated[IdentityProviderKind.GOOGLE] = google
        if facebook is not None:
            self._federated[IdentityProviderKind.FACEBOOK] = facebook
        self._biometric: BiometricProvider = biometric

    # ------------------------------------------------------------------
    # Password capabilities
    # ------------------------------------------------------------------

    async def password_sign_in(self, email: str, password: str) -> ProviderIdentity:
        return await self._call(self._password.sign_in(email, password))

    async def password_sign_up(self, email: str, password: str) -> ProviderIdentity:
        return await self._call(self._password.sign_up(email, password))

    async def update_display_name(self, name: str) -> None:
        await self._call(self._password.update_display_name(name))

    async def send_password_reset(self, email: str) -> None:
        await self._call(self._password.send_password_reset(email))

    async def reauthenticate(self, email: str, password: str) -> None:
        await self._call(self._password.reauthenticate(email, password))

    async def change_password(self, new_password: str) -> None:
        await self._call(self._password.change_password(new_password))

    async def token_refresh(
        self,
        refresh_token: Optional[str],
        kind: IdentityProviderKind = IdentityProviderKind.PASSWORD,
    ) -> TokenPair:
        """Refresh through the provider that issued the session."""
        if kind is IdentityProviderKind.PASSWORD:
            return await self._call(self._password.refresh(refresh_token))
        return await self._call(self._federated_provider(kind).refresh(refresh_token))

    # ------------------------------------------------------------------
    # Federated and biometric capabilities
    # ------------------------------------------------------------------

    async def federated_sign_in(self, kind: IdentityProviderKind) -> ProviderIdentity:
        return await self._call(self._federated_provider(kind).sign_in())

    async def biometric_is_supported(self) -> bool:
        return await self._biometric.is_supported()

    async def biometric_confirm(self, prompt: str) -> None:
        await self._call(self._biometric.confirm(prompt))

    # ------------------------------------------------------------------
    # Sign-out
    # ------------------------------------------------------------------

    async def sign_out_all(self) -> None:
        """Sign out of every identity provider.

        Idempotent and never raises: a provider that fails to sign out is
        logged and the remaining providers are still signed out.
        """
        providers: list[tuple[str, PasswordProvider | FederatedProvider]] = [
            (str(IdentityProviderKind.PASSWORD), self._password),
        ]
        providers.extend((str(kind), p) for kind, p in self._federated.items())

        for name, provider in providers:
            try:
                await provider.sign_out()
            except Exception as exc:
                self._logger.warning(
                    "Sign-out from %s failed: %s", name, exc,
                    extra={"event": "PROVIDER_SIGN_OUT_FAILED", "provider": name},
                )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _federated_provider(self, kind: IdentityProviderKind) -> FederatedProvider:
        provider = self._federated.get(kind)
        if provider is None:
            raise AuthError(
                AuthErrorKind.UNKNOWN,
                f"{kind} sign-in is not configured on this device.",
            )
        return provider

    async def _call(self, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except ProviderError as exc:
            error = to_auth_error(exc)
            self._logger.info(
                "Provider %s failed with %s (%s).", exc.provider, exc.code, error.kind,
                extra={
                    "event": "PROVIDER_ERROR",
                    "provider": exc.provider,
                    "error_kind": str(error.kind),
                },
            )
            raise error from exc
