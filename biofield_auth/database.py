"""
Device Storage and Identity Client Connections.

``DatabaseManager`` owns the two long-lived handles of the session core:
the on-device SQLite credential database and the Supabase client used for
password authentication.  SQLite is mandatory because a remembered session
must be restorable offline.  The Supabase client is optional; without a
URL and key it is simply absent and password calls report
``network_unavailable``.

No query logic lives here.  Callers issue statements under
:attr:`DatabaseManager.write_lock`, usually from a worker thread::

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.CREDENTIAL_DB_PATH),
        logger=get_logger("database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional, Union

from supabase import Client as SupabaseClient
from supabase import create_client

from biofield_auth.logger import StructuredLogger

_MEMORY: str = ":memory:"


class DatabaseManager:
    """Credential database plus optional identity client.

    Parameters
    ----------
    supabase_url, supabase_key:
        Supabase project URL and anon key.  Either one empty disables the
        client.
    sqlite_path:
        Credential database file (parent directories are created) or
        ``":memory:"``.
    logger:
        Structured logger.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Union[Path, str],
        logger: StructuredLogger,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._closed: bool = False
        self._supabase: Optional[SupabaseClient] = self._create_identity_client(
            supabase_url, supabase_key,
        )
        self._sqlite_conn: sqlite3.Connection = self._open_credential_db(sqlite_path)

    @property
    def supabase(self) -> SupabaseClient:
        """The identity client.

        Raises
        ------
        RuntimeError
            When no client is configured.
        """
        if self._supabase is None:
            raise RuntimeError("Supabase client is not initialised; identity service not configured.")
        return self._supabase

    @property
    def is_online(self) -> bool:
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Lock held around every SQLite statement (connection is shared across threads)."""
        return self._write_lock

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the credential database.  Idempotent."""
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._sqlite_conn.close()
            except sqlite3.ProgrammingError as exc:
                self._logger.debug("Credential database already closed: %s", exc)
                return
            self._logger.info("Credential database closed.")

    def _create_identity_client(self, url: str, key: str) -> Optional[SupabaseClient]:
        if not (url and key):
            self._logger.warning(
                "Supabase credentials not configured; password sign-in is unavailable.",
                extra={"event": "IDENTITY_CLIENT_DISABLED"},
            )
            return None
        try:
            client = create_client(url, key)
        except (ValueError, TypeError) as exc:
            self._logger.warning(
                "Invalid Supabase settings (%s); password sign-in is unavailable.", exc,
                extra={"event": "IDENTITY_CLIENT_DISABLED"},
            )
            return None
        except Exception as exc:
            self._logger.error(
                "Supabase client creation failed: %s", exc,
                exc_info=True,
                extra={"event": "IDENTITY_CLIENT_DISABLED"},
            )
            return None
        self._logger.info("Supabase client ready.", extra={"event": "IDENTITY_CLIENT_READY"})
        return client

    def _open_credential_db(self, path: Union[Path, str]) -> sqlite3.Connection:
        """Open (creating if needed) the credential database.

        Raises
        ------
        PermissionError
            When the file or its directory cannot be written.
        """
        target = str(path)
        try:
            if target != _MEMORY:
                Path(target).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(target, check_same_thread=False)
        except PermissionError as exc:
            message = f"Cannot open the credential database at '{target}'; it may be read-only."
            self._logger.error(message)
            raise PermissionError(message) from exc

        conn.row_factory = sqlite3.Row
        if target != _MEMORY:
            conn.execute("PRAGMA journal_mode=WAL;")
        self._logger.info("Credential database opened at %s.", target)
        return conn
