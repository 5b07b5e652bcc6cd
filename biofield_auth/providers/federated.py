"""
Federated Identity Providers (Google, Facebook).

Each provider drives the complete native handshake through an injected
``FederatedSignInClient`` and normalizes the result into a
``ProviderIdentity``.  The handshake either yields a full identity or
raises; a user abort raises ``ProviderError(cancelled=True)`` so it can
never be confused with a generic failure.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from biofield_auth.errors import ProviderError
from biofield_auth.logger import StructuredLogger
from biofield_auth.models.auth_models import ProviderIdentity, TokenPair
from biofield_auth.models.enums import IdentityProviderKind
from biofield_auth.providers.base import FederatedSignInClient
from biofield_auth.providers.error_map import classify_exception


class FederatedSignInPayload(BaseModel):
    """Raw ``sign_in()`` result of a native federated SDK wrapper."""

    external_id: str = Field(alias="externalId")
    email: str = ""
    display_name: Optional[str] = Field(default=None, alias="displayName")
    id_token: str = Field(alias="idToken", min_length=1)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    is_new_account: bool = Field(default=False, alias="isNewAccount")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class FederatedTokenPayload(BaseModel):
    """Raw ``refresh()`` result of a native federated SDK wrapper."""

    id_token: str = Field(alias="idToken", min_length=1)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class FederatedIdentityProvider:
    """Shared handshake logic for OAuth providers.

    Subclasses only set :attr:`kind`.

    Parameters
    ----------
    client:
        Injected native SDK wrapper.
    logger:
        Structured logger.
    options:
        SDK options handed to the client on every sign-in.
    """

    kind: IdentityProviderKind

    def __init__(
        self,
        client: FederatedSignInClient,
        logger: StructuredLogger,
        options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._client: FederatedSignInClient = client
        self._logger: StructuredLogger = logger
        self._options: dict[str, Any] = dict(options or {})

    async def sign_in(self) -> ProviderIdentity:
        try:
            raw: Mapping[str, Any] = await self._client.sign_in(self._options)
        except Exception as exc:
            raise classify_exception(self.kind, exc) from exc

        if raw.get("cancelled"):
            self._logger.info(
                "%s sign-in cancelled by the user.", self.kind,
                extra={"event": "PROVIDER_CANCELLED", "provider": str(self.kind)},
            )
            raise ProviderError(
                str(self.kind), "cancelled", "Sign-in was cancelled.", cancelled=True,
            )

        try:
            payload = FederatedSignInPayload.model_validate(raw)
        except ValidationError as exc:
            raise ProviderError(
                str(self.kind),
                "invalid_payload",
                f"Incomplete sign-in result: {exc.error_count()} invalid field(s).",
            ) from exc

        return ProviderIdentity(
            external_id=payload.external_id,
            email=payload.email,
            display_name=payload.display_name or payload.email.split("@")[0],
            is_new_account=payload.is_new_account,
            id_token=payload.id_token,
            refresh_token=payload.refresh_token,
            provider=self.kind,
        )

    async def refresh(self, refresh_token: Optional[str]) -> TokenPair:
        """Silently re-sign the current account for a fresh token.

        The SDK keeps its own session, so *refresh_token* may be ``None``;
        a refresh token the SDK does not rotate is kept.
        """
        try:
            raw: Mapping[str, Any] = await self._client.refresh(refresh_token)
        except Exception as exc:
            raise classify_exception(self.kind, exc) from exc

        try:
            payload = FederatedTokenPayload.model_validate(raw)
        except ValidationError as exc:
            raise ProviderError(
                str(self.kind), "invalid_payload", "Silent sign-in returned no token.",
            ) from exc
        return TokenPair(
            id_token=payload.id_token,
            refresh_token=payload.refresh_token or refresh_token,
        )

    async def sign_out(self) -> None:
        try:
            await self._client.sign_out()
        except Exception as exc:
            raise classify_exception(self.kind, exc) from exc


class GoogleIdentityProvider(FederatedIdentityProvider):
    kind = IdentityProviderKind.GOOGLE


class FacebookIdentityProvider(FederatedIdentityProvider):
    kind = IdentityProviderKind.FACEBOOK
