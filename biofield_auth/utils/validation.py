"""Client-side credential validation helpers."""

from __future__ import annotations

import re

from biofield_auth.models.auth_models import ValidationResult

__all__ = ["normalize_email", "validate_email", "validate_password", "validate_name"]

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

# C0 controls, DEL and C1 controls.
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


def validate_email(email: str) -> ValidationResult:
    """Validate an email address against a simplified RFC 5322 regex."""
    if not email or not email.strip():
        return ValidationResult(
            is_valid=False,
            error_message="Email address is required.",
        )
    if not _EMAIL_RE.match(email.strip()):
        return ValidationResult(
            is_valid=False,
            error_message="Please enter a valid email address.",
        )
    return ValidationResult(is_valid=True)


def validate_password(password: str, min_length: int = 6) -> ValidationResult:
    """Enforce the minimum password length accepted by the identity service."""
    if not password:
        return ValidationResult(
            is_valid=False,
            error_message="Password is required.",
        )
    if len(password) < min_length:
        return ValidationResult(
            is_valid=False,
            error_message=f"Password must be at least {min_length} characters.",
        )
    return ValidationResult(is_valid=True)


def validate_name(name: str) -> ValidationResult:
    """Validate a display name.

    Rejects control characters (including newlines and tabs) to prevent
    log injection and display corruption.
    """
    stripped = name.strip()
    if not stripped:
        return ValidationResult(is_valid=False, error_message="Name is required.")
    if _CONTROL_CHAR_RE.search(stripped):
        return ValidationResult(
            is_valid=False,
            error_message=(
                "Name contains invalid characters. "
                "Only printable characters are allowed."
            ),
        )
    return ValidationResult(is_valid=True)
