"""
Login Throttle.

Per-e-mail failed sign-in counter with a temporary lockout.  State is
in memory only: a restart clears every lockout.

Failures count towards the lockout only while they keep arriving within
``lockout_seconds`` of each other.  Entries that went quiet for that long,
and lockouts that have run out, are pruned whenever a failure is recorded,
so e-mails that never reach the lockout do not pile up.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from biofield_auth.logger import StructuredLogger
from biofield_auth.models.auth_models import RateLimitState
from biofield_auth.services.base_service import BaseService


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class LoginThrottle(BaseService):
    """Tracks failed password sign-ins per normalised e-mail.

    Parameters
    ----------
    logger:
        Structured logger.
    max_failed_attempts:
        Failures that engage the lockout.  ``0`` disables throttling.
    lockout_seconds:
        Lockout duration, and how long a failure is remembered.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        max_failed_attempts: int = 5,
        lockout_seconds: int = 30,
    ) -> None:
        super().__init__(logger)
        self._max_failed_attempts: int = max_failed_attempts
        self._lockout_seconds: int = lockout_seconds
        self._entries: dict[str, RateLimitState] = {}
        self._lock: threading.Lock = threading.Lock()

    @property
    def tracked_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def check(self, email: str) -> tuple[bool, int]:
        """Return ``(is_locked, remaining_seconds)`` for *email*.

        An expired lockout is cleared on the way out.
        """
        with self._lock:
            state = self._entries.get(email)
            if state is None or state.lockout_until is None:
                return False, 0

            now = _utcnow()
            if now >= state.lockout_until:
                self._entries.pop(email, None)
                return False, 0

            remaining = int((state.lockout_until - now).total_seconds()) + 1
            return True, remaining

    def record_failure(self, email: str) -> None:
        if self._max_failed_attempts <= 0:
            return
        with self._lock:
            now = _utcnow()
            self._prune(now)
            state = self._entries.get(email, RateLimitState())
            state.failed_attempts += 1
            state.last_failure_at = now
            if state.failed_attempts >= self._max_failed_attempts:
                state.lockout_until = now + timedelta(seconds=self._lockout_seconds)
                self._logger.warning(
                    "Rate limit engaged for %s: %d failed attempts. Locked for %ds.",
                    email,
                    state.failed_attempts,
                    self._lockout_seconds,
                    extra={"event": "LOGIN_RATE_LIMITED", "email": email},
                )
            self._entries[email] = state

    def reset(self, email: str) -> None:
        with self._lock:
            self._entries.pop(email, None)

    def _prune(self, now: datetime) -> None:
        # Caller holds self._lock.
        window = timedelta(seconds=self._lockout_seconds)
        stale = [
            email
            for email, state in self._entries.items()
            if (state.lockout_until is not None and now >= state.lockout_until)
            or (
                state.lockout_until is None
                and state.last_failure_at is not None
                and now - state.last_failure_at >= window
            )
        ]
        for email in stale:
            del self._entries[email]
        if stale:
            self._logger.debug("Pruned %d stale throttle entries.", len(stale))
