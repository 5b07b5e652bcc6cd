"""
Application Configuration.

Pydantic Settings model for the BioField session core.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, SecretStr, model_validator


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Identity service (Supabase Auth) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Profile service ---
    PROFILE_SERVICE_URL: str = ""
    PROFILE_SERVICE_TIMEOUT_S: float = 10.0

    # --- Federated sign-in ---
    GOOGLE_WEB_CLIENT_ID: str = ""
    FACEBOOK_PERMISSIONS: list[str] = Field(
        default_factory=lambda: ["public_profile", "email"],
    )

    # --- Biometric prompt copy ---
    BIOMETRIC_LOGIN_PROMPT: str = "Use your biometrics to sign in"
    BIOMETRIC_ENABLE_PROMPT: str = "Confirm to enable biometric sign-in"

    # --- Credential store ---
    CREDENTIAL_DB_PATH: str = "biofield_session.db"
    ENCRYPT_TOKENS_AT_REST: bool = True
    SESSION_SALT_PATH: str = str(Path.home() / ".biofield_session_salt")

    # --- Session policy ---
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_SECONDS: int = 30
    SESSION_MAX_AGE_HOURS: int = 0  # 0 disables the restore age check
    MIN_PASSWORD_LENGTH: int = 6

    # --- Logging ---
    LOG_FILE: str = "biofield_session.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing.
        This validator logs a warning so operators know the core is running
        with placeholder values.
        """
        _log = logging.getLogger("biofield_auth.config")

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; password sign-in is unavailable "
                "until the identity service is configured."
            )

        if not self.PROFILE_SERVICE_URL:
            _log.warning(
                "PROFILE_SERVICE_URL is empty; profile lookups will fail "
                "with a network error."
            )

        return self

    @property
    def session_max_age_hours(self) -> Optional[int]:
        """Restore age limit in hours, or ``None`` when disabled."""
        return self.SESSION_MAX_AGE_HOURS if self.SESSION_MAX_AGE_HOURS > 0 else None


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern to avoid the lock overhead on the fast path while remaining
    thread-safe during first initialisation.

    Prefer direct constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
