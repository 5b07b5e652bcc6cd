"""Shared utility functions and models for the BioField session core.

Convenience re-exports so that consumers can import directly from
``biofield_auth.utils`` while full absolute imports remain supported.
"""

from biofield_auth.utils.audit import AuditEvent, log_audit_event, read_audit_trail
from biofield_auth.utils.validation import (
    normalize_email,
    validate_email,
    validate_name,
    validate_password,
)

__all__ = [
    "AuditEvent",
    "log_audit_event",
    "read_audit_trail",
    "normalize_email",
    "validate_email",
    "validate_name",
    "validate_password",
]
