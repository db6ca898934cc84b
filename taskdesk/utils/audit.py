"""
Structured Audit Logging Utility.

Every session state change (login, registration, logout, wizard commit,
profile change) is logged as one structured JSON object.  Provides a
Pydantic-validated model and a single function for consistent audit
trail entries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from taskdesk.logger import StructuredLogger

__all__ = ["AuditEvent", "DetailValue", "log_audit_event"]

# Scalar values only; nested structures belong in a dedicated model.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
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
) -> AuditEvent:
    """Log a structured JSON audit event and return it.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"LOGIN"``, ``"REGISTER"``,
            ``"LOGOUT"``, ``"WIZARD_COMMIT"``).
        entity_type: Type of entity affected (e.g. ``"Session"``,
            ``"User"``, ``"Profile"``).
        entity_id: Identifier of the affected entity.
        user_id: ID (or email, before an id is known) of the acting user.
        details: Optional additional context.  Never put passwords or
            tokens here.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info(
        "AUDIT: %s", json.dumps(event.model_dump(), default=str),
        extra={"event": "AUDIT", "action": action},
    )
    return event
