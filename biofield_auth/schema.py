"""
Credential Database Schema.

:func:`initialize_schema` brings the on-device database to
:data:`CURRENT_SCHEMA_VERSION`.  A fresh database gets every table at
once; an older one runs the registered step migrations.  Slots of a
remembered session survive every upgrade.

Version history:

1. ``credential_store`` key/value slots.
2. ``audit_log`` table and its per-user index.

To add version N: bump :data:`CURRENT_SCHEMA_VERSION`, extend
:data:`_TABLES` / :data:`_INDEXES` for fresh installs and register a
step function under N in :data:`_MIGRATIONS`.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from biofield_auth.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 2

_VERSION_TABLE: str = """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

_TABLES: dict[str, str] = {
    "credential_store": """
        CREATE TABLE IF NOT EXISTS credential_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "audit_log": """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            action TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            details TEXT DEFAULT '{}',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

_INDEXES: dict[str, str] = {
    "idx_audit_log_user": (
        "CREATE INDEX IF NOT EXISTS idx_audit_log_user ON audit_log (user_id, timestamp)"
    ),
}

Migration = Callable[[sqlite3.Connection, StructuredLogger], None]


def _add_audit_log(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    conn.execute(_TABLES["audit_log"])
    conn.execute(_INDEXES["idx_audit_log_user"])
    logger.info("Schema v2: audit_log added.")


_MIGRATIONS: dict[int, Migration] = {
    2: _add_audit_log,
}


def _stored_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row is not None else 0


def _create_fresh(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    for ddl in (*_TABLES.values(), *_INDEXES.values()):
        conn.execute(ddl)
    logger.info("Created %d tables for a fresh credential database.", len(_TABLES))


def _upgrade(conn: sqlite3.Connection, logger: StructuredLogger, current: int) -> None:
    for version in sorted(v for v in _MIGRATIONS if current < v <= CURRENT_SCHEMA_VERSION):
        _MIGRATIONS[version](conn, logger)


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create or upgrade the credential database schema.

    Idempotent; safe on every startup.  The upgrade and the version bump
    commit together, so a failed upgrade leaves the stored version as it
    was and is retried on the next start.
    """
    conn.execute(_VERSION_TABLE)
    conn.commit()

    current = _stored_version(conn)
    if current >= CURRENT_SCHEMA_VERSION:
        logger.debug("Credential schema at version %d.", current)
        return

    logger.info(
        "Upgrading credential schema %d -> %d.", current, CURRENT_SCHEMA_VERSION,
        extra={"event": "SCHEMA_UPGRADE"},
    )
    try:
        if current == 0:
            _create_fresh(conn, logger)
        else:
            _upgrade(conn, logger, current)
        conn.execute(
            """
            INSERT INTO schema_version (id, version) VALUES (1, ?)
            ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                          applied_at = CURRENT_TIMESTAMP
            """,
            (CURRENT_SCHEMA_VERSION,),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error(
            "Credential schema upgrade failed; staying at version %d.", current,
            exc_info=True,
        )
        raise
