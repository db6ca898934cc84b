"""
Session State Snapshot.

Immutable view of the ``UserStateStore`` handed to subscribers and to
callers of ``UserStateStore.snapshot()``.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from taskdesk.models.user import UserRecord


class SessionState(BaseModel):
    """Point-in-time copy of the user-state store.

    ``is_authenticated`` is always ``current_user is not None``; the
    store derives it rather than tracking it separately.
    """

    model_config = ConfigDict(frozen=True)

    current_user: Optional[UserRecord] = None
    is_loading: bool = False
    error: Optional[str] = None
    draft: dict[str, JsonValue] = Field(default_factory=dict)
    generation: int = 0

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None
