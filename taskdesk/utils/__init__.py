"""Shared utility functions and models for the TaskDesk client.

This package provides convenience re-exports so that consumers can import
directly from ``taskdesk.utils`` (e.g. ``from taskdesk.utils import normalize_keys``)
while full absolute imports (e.g. ``from taskdesk.utils.string_helpers import
normalize_keys``) remain supported.
"""

from taskdesk.utils.audit import AuditEvent, log_audit_event
from taskdesk.utils.string_helpers import (
    normalize_keys,
    sanitize_input,
    to_camel_case,
    to_snake_case,
)

__all__ = [
    "AuditEvent",
    "log_audit_event",
    "normalize_keys",
    "sanitize_input",
    "to_camel_case",
    "to_snake_case",
]
