"""
Password Identity Provider (Supabase Auth).

Wraps the synchronous Supabase client owned by ``DatabaseManager``.
Every call runs on a worker thread via ``asyncio.to_thread`` so the
session core's event loop is never blocked by the HTTP round trip.

Failures are reported as ``ProviderError``; a missing client
(``DatabaseManager.supabase`` raising ``RuntimeError``) becomes the
``network_unavailable`` code.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Optional, TypeVar

from biofield_auth.database import DatabaseManager
from biofield_auth.errors import ProviderError
from biofield_auth.logger import StructuredLogger
from biofield_auth.models.auth_models import ProviderIdentity, TokenPair
from biofield_auth.models.enums import IdentityProviderKind
from biofield_auth.providers.error_map import classify_exception

T = TypeVar("T")

_PROVIDER: str = str(IdentityProviderKind.PASSWORD)


class SupabasePasswordProvider:
    """E-mail/password sign-in against Supabase Auth.

    Parameters
    ----------
    db:
        Database manager exposing the Supabase client.
    logger:
        Structured logger.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db: DatabaseManager = db
        self._logger: StructuredLogger = logger

    # ------------------------------------------------------------------
    # Sign-in / sign-up
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> ProviderIdentity:
        response = await self._run(
            lambda: self._db.supabase.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        )
        return self._to_identity(response, fallback_email=email, is_new_account=False)

    async def sign_up(self, email: str, password: str) -> ProviderIdentity:
        response = await self._run(
            lambda: self._db.supabase.auth.sign_up({
                "email": email,
                "password": password,
            })
        )
        if getattr(response, "session", None) is None:
            # Projects with e-mail confirmation enabled return no session.
            raise ProviderError(
                _PROVIDER,
                "email_confirmation_required",
                "The account was created but must be confirmed by e-mail "
                "before signing in.",
            )
        return self._to_identity(response, fallback_email=email, is_new_account=True)

    # ------------------------------------------------------------------
    # Account maintenance
    # ------------------------------------------------------------------

    async def update_display_name(self, name: str) -> None:
        await self._run(
            lambda: self._db.supabase.auth.update_user({"data": {"full_name": name}})
        )

    async def send_password_reset(self, email: str) -> None:
        await self._run(lambda: self._db.supabase.auth.reset_password_for_email(email))
        self._logger.info(
            "Password reset requested for %s.", email,
            extra={"event": "PASSWORD_RESET_REQUESTED", "email": email},
        )

    async def reauthenticate(self, email: str, password: str) -> None:
        """Confirm the current password by signing in again.

        The identity returned must be the account already signed in;
        anything else is reported as ``reauthentication_mismatch``.
        """
        current_id = await self._current_user_id()
        response = await self._run(
            lambda: self._db.supabase.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        )
        user = getattr(response, "user", None)
        if current_id is not None and (user is None or user.id != current_id):
            raise ProviderError(
                _PROVIDER,
                "reauthentication_mismatch",
                "Re-authentication returned a different account.",
            )

    async def change_password(self, new_password: str) -> None:
        await self._run(
            lambda: self._db.supabase.auth.update_user({"password": new_password})
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def refresh(self, refresh_token: Optional[str]) -> TokenPair:
        response = await self._run(
            lambda: self._db.supabase.auth.refresh_session(refresh_token)
        )
        session = getattr(response, "session", None)
        if session is None or not session.access_token:
            raise ProviderError(
                _PROVIDER, "session_not_found", "Token refresh returned no session.",
            )
        return TokenPair(
            id_token=session.access_token,
            refresh_token=session.refresh_token,
        )

    async def sign_out(self) -> None:
        """Sign out locally; a no-op when the client is not configured."""
        if not self._db.is_online:
            self._logger.debug("Identity service not configured; skipping sign_out.")
            return
        await self._run(lambda: self._db.supabase.auth.sign_out())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run(self, call: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(call)
        except RuntimeError as exc:
            raise ProviderError(_PROVIDER, "network_unavailable", str(exc)) from exc
        except Exception as exc:
            raise classify_exception(IdentityProviderKind.PASSWORD, exc) from exc

    async def _current_user_id(self) -> Optional[str]:
        try:
            response = await asyncio.to_thread(lambda: self._db.supabase.auth.get_user())
        except Exception as exc:
            self._logger.debug("Could not read the signed-in account: %s", exc)
            return None
        user = getattr(response, "user", None)
        return user.id if user is not None else None

    @staticmethod
    def _to_identity(
        response: Any,
        fallback_email: str,
        is_new_account: bool,
    ) -> ProviderIdentity:
        user = getattr(response, "user", None)
        session = getattr(response, "session", None)
        if user is None or session is None:
            raise ProviderError(
                _PROVIDER, "invalid_credentials", "Sign-in returned no session.",
            )

        metadata: dict[str, Any] = getattr(user, "user_metadata", None) or {}
        email: str = getattr(user, "email", None) or fallback_email
        display_name: str = (
            metadata.get("full_name")
            or metadata.get("display_name")
            or email.split("@")[0]
        )
        return ProviderIdentity(
            external_id=user.id,
            email=email,
            display_name=display_name,
            is_new_account=is_new_account,
            id_token=session.access_token,
            refresh_token=session.refresh_token,
            provider=IdentityProviderKind.PASSWORD,
        )
