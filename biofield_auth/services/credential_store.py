"""
Persistent Credential Store.

Two layers:

``KeyValueStore``
    The device key/value contract (``get`` / ``set`` / ``remove``) over
    UTF-8 string values.  ``SQLiteKeyValueStore`` is the on-device
    implementation backed by the ``credential_store`` table.

``CredentialStore``
    Works exclusively in whole values: a :class:`SessionEnvelope` is
    written, read and cleared in one call, so callers cannot produce a
    half-written session (e.g. a token without its user).  The biometric
    flag has its own slot because it is a device capability and survives
    logout.

Slot layout::

    user            JSON UserRecord (camelCase keys)
    token           bearer token (optionally ``enc:v1:`` encrypted)
    refreshToken    refresh token (optionally encrypted)
    authProvider    issuing provider ("password", "google", "facebook")
    rememberMe      "true" | "false"
    biometricEnabled "true" | "false"

Store I/O failures never break the in-memory session: every public
``CredentialStore`` method logs the failure and reports it through its
return value instead of raising.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from biofield_auth.database import DatabaseManager
from biofield_auth.errors import CredentialStoreError
from biofield_auth.logger import StructuredLogger
from biofield_auth.models.auth_models import SessionEnvelope, StoredCredentials
from biofield_auth.models.enums import IdentityProviderKind
from biofield_auth.models.user import UserRecord
from biofield_auth.services.token_cipher import TokenCipher

KEY_USER: str = "user"
KEY_TOKEN: str = "token"
KEY_REFRESH_TOKEN: str = "refreshToken"
KEY_AUTH_PROVIDER: str = "authProvider"
KEY_BIOMETRIC: str = "biometricEnabled"
KEY_REMEMBER_ME: str = "rememberMe"

# Removal order on logout: the user record goes first so an interrupted
# clear never leaves a user without its token behind as a valid envelope.
ENVELOPE_CLEAR_ORDER: tuple[str, ...] = (
    KEY_USER,
    KEY_TOKEN,
    KEY_REFRESH_TOKEN,
    KEY_AUTH_PROVIDER,
    KEY_REMEMBER_ME,
)


def _encode_flag(value: bool) -> str:
    return "true" if value else "false"


def _decode_flag(value: Optional[str]) -> bool:
    return value == "true"


# ---------------------------------------------------------------------------
# Key/value contract
# ---------------------------------------------------------------------------

@runtime_checkable
class KeyValueStore(Protocol):
    """Device key/value storage.

    Implementations raise :class:`CredentialStoreError` when the
    underlying storage is unavailable.
    """

    async def get(self, key: str) -> Optional[str]: ...  # noqa: E704

    async def set(self, key: str, value: str) -> None: ...  # noqa: E704

    async def remove(self, key: str) -> None: ...  # noqa: E704


class SQLiteKeyValueStore:
    """``KeyValueStore`` backed by the local ``credential_store`` table.

    SQLite calls run on a worker thread via ``asyncio.to_thread`` under
    the database write lock, so the event loop never blocks on disk I/O.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager`` with the schema applied.
    logger:
        Structured logger.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove_sync, key)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _get_sync(self, key: str) -> Optional[str]:
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    "SELECT value FROM credential_store WHERE key = ?",
                    (key,),
                ).fetchone()
        except Exception as exc:
            raise CredentialStoreError(f"Failed to read '{key}': {exc}") from exc
        return row["value"] if row is not None else None

    def _set_sync(self, key: str, value: str) -> None:
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO credential_store (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value      = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
                self._db.sqlite.commit()
        except Exception as exc:
            raise CredentialStoreError(f"Failed to write '{key}': {exc}") from exc

    def _remove_sync(self, key: str) -> None:
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    "DELETE FROM credential_store WHERE key = ?",
                    (key,),
                )
                self._db.sqlite.commit()
        except Exception as exc:
            raise CredentialStoreError(f"Failed to remove '{key}': {exc}") from exc


# ---------------------------------------------------------------------------
# Envelope-level store
# ---------------------------------------------------------------------------

class CredentialStore:
    """Reads and writes the persisted session as one envelope.

    Parameters
    ----------
    store:
        The device key/value store.
    logger:
        Structured logger.
    cipher:
        Optional token cipher.  When given, ``token`` and
        ``refreshToken`` are encrypted before they are written.
    """

    def __init__(
        self,
        store: KeyValueStore,
        logger: StructuredLogger,
        cipher: Optional[TokenCipher] = None,
    ) -> None:
        self._store: KeyValueStore = store
        self._logger: StructuredLogger = logger
        self._cipher: Optional[TokenCipher] = cipher

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load(self) -> StoredCredentials:
        """Read every slot and assemble the stored credentials.

        An envelope is returned only when both the user record and the
        token are present and readable.  A damaged envelope (unparseable
        user JSON, undecryptable token, or a user without a token) is
        reported as absent and logged; :meth:`clear_envelope` should then
        be called to remove the leftovers.

        Store failures are logged and reported as "nothing stored".
        """
        try:
            raw_user = await self._store.get(KEY_USER)
            raw_token = await self._store.get(KEY_TOKEN)
            raw_refresh = await self._store.get(KEY_REFRESH_TOKEN)
            raw_provider = await self._store.get(KEY_AUTH_PROVIDER)
            raw_remember = await self._store.get(KEY_REMEMBER_ME)
            raw_biometric = await self._store.get(KEY_BIOMETRIC)
        except CredentialStoreError as exc:
            self._logger.warning(
                "Credential store unavailable during load: %s", exc,
                extra={"event": "STORE_UNAVAILABLE"},
            )
            return StoredCredentials()

        envelope = self._assemble_envelope(raw_user, raw_token, raw_refresh, raw_provider)
        leftovers = raw_user is not None or raw_token is not None
        return StoredCredentials(
            envelope=envelope,
            remember_me=_decode_flag(raw_remember),
            biometric_enabled=_decode_flag(raw_biometric),
            damaged_envelope=envelope is None and leftovers,
        )

    async def load_envelope(self) -> Optional[SessionEnvelope]:
        """Return the persisted envelope, or ``None`` when there is none."""
        try:
            raw_user = await self._store.get(KEY_USER)
            raw_token = await self._store.get(KEY_TOKEN)
            raw_refresh = await self._store.get(KEY_REFRESH_TOKEN)
            raw_provider = await self._store.get(KEY_AUTH_PROVIDER)
        except CredentialStoreError as exc:
            self._logger.warning(
                "Credential store unavailable during envelope load: %s", exc,
                extra={"event": "STORE_UNAVAILABLE"},
            )
            return None
        return self._assemble_envelope(raw_user, raw_token, raw_refresh, raw_provider)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_envelope(self, envelope: SessionEnvelope) -> bool:
        """Persist *envelope* and mark the session as remembered.

        Returns ``False`` (after logging) if any slot could not be
        written; the caller keeps its in-memory session either way.
        """
        try:
            token_value = self._seal(envelope.token)
            refresh_value = (
                self._seal(envelope.refresh_token)
                if envelope.refresh_token is not None
                else None
            )
        except (OSError, KeyError) as exc:
            self._logger.warning(
                "Token encryption unavailable; session not remembered: %s", exc,
                extra={"event": "STORE_UNAVAILABLE"},
            )
            return False

        try:
            await self._store.set(KEY_USER, envelope.user.to_json())
            await self._store.set(KEY_TOKEN, token_value)
            if refresh_value is not None:
                await self._store.set(KEY_REFRESH_TOKEN, refresh_value)
            else:
                await self._store.remove(KEY_REFRESH_TOKEN)
            await self._store.set(KEY_AUTH_PROVIDER, str(envelope.provider))
            await self._store.set(KEY_REMEMBER_ME, _encode_flag(True))
        except CredentialStoreError as exc:
            self._logger.warning(
                "Failed to persist session for %s; it will not be "
                "remembered: %s",
                envelope.user.id,
                exc,
                extra={"event": "STORE_UNAVAILABLE"},
            )
            return False

        self._logger.debug("Session envelope saved for user %s.", envelope.user.id)
        return True

    async def clear_envelope(self) -> bool:
        """Remove every session slot, keeping the biometric flag.

        Slots are removed in ``user, token, refreshToken, authProvider,
        rememberMe`` order.  A failed removal is logged and the remaining slots are
        still attempted.

        Returns
        -------
        bool
            ``True`` when every slot was removed.
        """
        cleared_all: bool = True
        for key in ENVELOPE_CLEAR_ORDER:
            try:
                await self._store.remove(key)
            except CredentialStoreError as exc:
                cleared_all = False
                self._logger.error(
                    "Failed to clear credential slot '%s': %s", key, exc,
                    extra={"event": "STORE_CLEAR_FAILED", "slot": key},
                )
        if cleared_all:
            self._logger.info("Persisted session cleared.")
        return cleared_all

    async def save_remember_me(self, remember_me: bool) -> bool:
        return await self._save_flag(KEY_REMEMBER_ME, remember_me)

    async def save_biometric_flag(self, enabled: bool) -> bool:
        return await self._save_flag(KEY_BIOMETRIC, enabled)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _save_flag(self, key: str, value: bool) -> bool:
        try:
            await self._store.set(key, _encode_flag(value))
        except CredentialStoreError as exc:
            self._logger.warning(
                "Failed to persist '%s': %s", key, exc,
                extra={"event": "STORE_UNAVAILABLE"},
            )
            return False
        return True

    def _seal(self, token: str) -> str:
        if self._cipher is None:
            return token
        return self._cipher.encrypt(token)

    def _open(self, stored: str) -> Optional[str]:
        if self._cipher is None:
            return stored
        return self._cipher.decrypt(stored)

    def _assemble_envelope(
        self,
        raw_user: Optional[str],
        raw_token: Optional[str],
        raw_refresh: Optional[str],
        raw_provider: Optional[str],
    ) -> Optional[SessionEnvelope]:
        if raw_user is None and raw_token is None:
            return None

        if raw_user is None or raw_token is None:
            self._logger.warning(
                "Partial session found in credential store (user=%s, token=%s); "
                "ignoring it.",
                raw_user is not None,
                raw_token is not None,
                extra={"event": "STORE_PARTIAL_SESSION"},
            )
            return None

        try:
            user = UserRecord.model_validate_json(raw_user)
        except ValidationError as exc:
            self._logger.warning(
                "Persisted user record is malformed: %s", exc,
                extra={"event": "STORE_PARTIAL_SESSION"},
            )
            return None

        token = self._open(raw_token)
        if token is None:
            return None

        try:
            provider = IdentityProviderKind(raw_provider or IdentityProviderKind.PASSWORD)
        except ValueError:
            self._logger.warning(
                "Persisted session names unknown provider %r; ignoring it.", raw_provider,
                extra={"event": "STORE_PARTIAL_SESSION"},
            )
            return None

        refresh_token = self._open(raw_refresh) if raw_refresh is not None else None
        return SessionEnvelope(
            user=user, token=token, refresh_token=refresh_token, provider=provider,
        )
