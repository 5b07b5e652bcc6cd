"""
Session Audit Trail.

Session state changes (sign-in, sign-out, restore, flag changes, profile
edits) are recorded as :class:`AuditEvent` entries: one JSON log line per
event and, when a connection is supplied, one ``audit_log`` row.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from biofield_auth.logger import StructuredLogger

__all__ = ["AuditEvent", "DetailValue", "log_audit_event", "persist_audit_event", "read_audit_trail"]

# Flat scalars only.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> AuditEvent:
    """Record one audit event.

    The event is always logged as ``AUDIT: {json}``.  With *conn* it is
    also inserted into ``audit_log``; a failed insert is logged as a
    warning and does not reach the session operation that produced it.

    Args:
        logger: Destination logger.
        action: Event name, e.g. ``"LOGIN"`` or ``"BIOMETRIC_ENABLED"``.
        entity_type: Affected entity kind, ``"Session"`` for lifecycle events.
        entity_id: Affected entity id.
        user_id: User the event concerns; empty when nobody is signed in.
        details: Extra flat context.
        conn: Credential database connection, if the event should persist.

    Returns:
        The validated event.
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info(
        "AUDIT: %s", event.model_dump_json(),
        extra={"event": "AUDIT", "action": action},
    )

    if conn is not None:
        try:
            persist_audit_event(conn, event)
        except sqlite3.Error as exc:
            logger.warning("Audit event %s not persisted: %s", action, exc)
    return event


def persist_audit_event(conn: sqlite3.Connection, event: AuditEvent) -> None:
    conn.execute(
        "INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            event.timestamp,
            event.action,
            event.entity_type,
            event.entity_id,
            event.user_id,
            json.dumps(event.details),
        ),
    )
    conn.commit()


def read_audit_trail(
    conn: sqlite3.Connection,
    user_id: str,
    limit: int = 50,
) -> list[AuditEvent]:
    """Return the newest *limit* persisted events for *user_id*, newest first."""
    rows = conn.execute(
        "SELECT timestamp, action, entity_type, entity_id, user_id, details "
        "FROM audit_log WHERE user_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
        (user_id, limit),
    ).fetchall()
    return [
        AuditEvent(
            timestamp=row[0],
            action=row[1],
            entity_type=row[2],
            entity_id=row[3],
            user_id=row[4],
            details=json.loads(row[5] or "{}"),
        )
        for row in rows
    ]
