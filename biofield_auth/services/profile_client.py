"""
Profile Service Client.

Fetches, creates and updates the application-level user record for an
external identity.  Every request carries the identity provider's
bearer token.

Failures are raised as ``ProviderError`` with provider ``"profile"``:

- ``http_<status>`` for non-2xx responses (``http_404`` when the profile
  does not exist yet, ``http_409`` when it already does),
- ``network_error`` for connection failures and timeouts,
- ``invalid_payload`` when the response is not a valid user record.

The session state machine converts these with
:func:`~biofield_auth.providers.error_map.to_auth_error`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from biofield_auth.errors import ProviderError
from biofield_auth.logger import StructuredLogger
from biofield_auth.models.enums import IdentityProviderKind
from biofield_auth.models.user import ProfileDraft, UserRecord
from biofield_auth.services.base_service import BaseService

_PROVIDER: str = str(IdentityProviderKind.PROFILE)


@runtime_checkable
class ProfileServiceClient(Protocol):
    """Request/response contract of the profile service."""

    async def fetch(self, external_id: str, token: str) -> UserRecord: ...  # noqa: E704

    async def create(self, draft: ProfileDraft, token: str) -> UserRecord: ...  # noqa: E704

    async def update(  # noqa: E704
        self, external_id: str, partial: Mapping[str, Any], token: str,
    ) -> UserRecord: ...


class HttpProfileServiceClient(BaseService):
    """``ProfileServiceClient`` over HTTP.

    Routes::

        GET   {base}/users/{id}
        POST  {base}/users
        PATCH {base}/users/{id}

    Parameters
    ----------
    base_url:
        Profile service root URL.
    logger:
        Structured logger.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        logger: StructuredLogger,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(logger)
        self._client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def fetch(self, external_id: str, token: str) -> UserRecord:
        payload = await self._request("GET", f"/users/{external_id}", token)
        return self._to_record(payload)

    async def create(self, draft: ProfileDraft, token: str) -> UserRecord:
        payload = await self._request(
            "POST",
            "/users",
            token,
            json=draft.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        self._logger.info(
            "Profile created for %s.", draft.id,
            extra={"event": "PROFILE_CREATED", "user_id": draft.id},
        )
        return self._to_record(payload)

    async def update(
        self, external_id: str, partial: Mapping[str, Any], token: str,
    ) -> UserRecord:
        payload = await self._request(
            "PATCH", f"/users/{external_id}", token, json=dict(partial),
        )
        return self._to_record(payload)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        json: Optional[Any] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TransportError as exc:
            self._logger.warning(
                "Profile service unreachable (%s %s): %s", method, path, exc,
                extra={"event": "PROFILE_SERVICE_UNREACHABLE"},
            )
            raise ProviderError(_PROVIDER, "network_error", str(exc)) from exc

        if response.is_error:
            raise ProviderError(
                _PROVIDER,
                f"http_{response.status_code}",
                f"{method} {path} returned {response.status_code}.",
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                _PROVIDER, "invalid_payload", "Profile response is not JSON.",
            ) from exc

    @staticmethod
    def _to_record(payload: Any) -> UserRecord:
        # Some deployments wrap the record as {"user": {...}}.
        if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
            payload = payload["user"]
        try:
            return UserRecord.model_validate(payload)
        except ValidationError as exc:
            raise ProviderError(
                _PROVIDER,
                "invalid_payload",
                f"Profile response failed validation: {exc.error_count()} error(s).",
            ) from exc
