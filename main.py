"""
BioField Session Core Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local credential database, runs the startup restore and reports the
resulting session state.  Every subsystem is wired here; there are no
module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import asyncio
import atexit
import sys
import traceback
from pathlib import Path

from biofield_auth.config import get_config
from biofield_auth.database import DatabaseManager
from biofield_auth.logger import StructuredLogger, get_logger
from biofield_auth.schema import initialize_schema
from biofield_auth.services import create_services
from biofield_auth.services.profile_client import HttpProfileServiceClient


async def _run(logger: StructuredLogger) -> None:
    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (SQLite always, Supabase optional)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.CREDENTIAL_DB_PATH),
        logger=StructuredLogger(name="database"),
    )
    # close() is idempotent; this also covers unclean interpreter exits.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. Credential database schema (idempotent)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 4. Service container (single composition root)
    # ------------------------------------------------------------------
    # Native Google/Facebook clients and the biometric sensor are injected
    # by the host platform; none are available to a plain interpreter.
    services = create_services(db=db, config=config)
    session = services["session_facade"]

    # ------------------------------------------------------------------
    # 5. Startup restore
    # ------------------------------------------------------------------
    try:
        state = await session.initialize()
        user_id = state.user.id if state.user is not None else None
        logger.info(
            "Session ready: phase=%s user=%s biometric=%s remember_me=%s",
            state.phase,
            user_id,
            state.biometric_enabled,
            state.remember_me,
            extra={"event": "SESSION_READY"},
        )
    finally:
        profiles = services["profile_client"]
        if isinstance(profiles, HttpProfileServiceClient):
            await profiles.aclose()
        db.close()


def main() -> None:
    """Entry point: wire dependencies and restore the session."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting BioField session core...")
    asyncio.run(_run(logger))
    logger.info("BioField session core shut down.")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")
        sys.exit(1)
