"""
User Model.

``UserRecord`` is the committed, authoritative profile of the signed-in
user.  Fields mirror the ``/auth/me`` payload after key normalization
(the backend answers in snake_case, older builds in camelCase).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from taskdesk.models.enums import Gender, Language, ProfileVisibility, Theme
from taskdesk.utils.string_helpers import JsonValue, normalize_keys

# Identity fields that may never change once a record exists.
IMMUTABLE_FIELDS: frozenset[str] = frozenset({"id", "email", "username"})


class SocialLinks(BaseModel):
    twitter: str = ""
    linkedin: str = ""
    github: str = ""
    instagram: str = ""


class UserRecord(BaseModel):
    """Represents the authenticated user's profile.

    Only ``id``, ``email`` and ``username`` are required; every other
    field is independently defaultable so a partial server payload (or
    the synthesized fallback record) still validates.
    """

    # --- Identity ---
    id: int
    email: str
    username: str
    access_token: Optional[str] = None

    # --- Personal ---
    first_name: str = ""
    last_name: str = ""
    middle_name: Optional[str] = None
    gender: Optional[Gender] = None
    birth_date: Optional[str] = None
    age: Optional[int] = None

    # --- Profile ---
    full_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    timezone: Optional[str] = None
    occupation: Optional[str] = None
    profession: Optional[str] = None
    company: Optional[str] = None
    website: Optional[str] = None
    education: Optional[str] = None
    interests: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    social_links: SocialLinks = Field(default_factory=SocialLinks)

    # --- Preferences ---
    theme: Theme = Theme.LIGHT
    language: Language = Language.RU
    email_notifications: bool = True
    push_notifications: bool = True
    desktop_notifications: bool = True
    profile_visibility: ProfileVisibility = ProfileVisibility.PUBLIC
    show_online_status: bool = True
    allow_friend_requests: bool = True

    # --- Status ---
    is_active: bool = True
    is_verified: bool = False
    is_superuser: bool = False
    is_online: bool = False
    last_seen: Optional[datetime] = None

    # --- Social graph (references only) ---
    friends: list[str] = Field(default_factory=list)
    friend_requests: list[str] = Field(default_factory=list)
    teams: list[str] = Field(default_factory=list)
    notifications: list[str] = Field(default_factory=list)
    unread_notifications_count: int = 0

    # --- Timestamps ---
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    model_config = {"from_attributes": True, "validate_assignment": True}

    @classmethod
    def from_api(cls, payload: Mapping[str, JsonValue]) -> "UserRecord":
        """Build a record from a raw ``/auth/me`` style payload.

        Keys are normalized to snake_case and explicit ``null`` values
        are dropped so that field defaults apply instead of failing
        validation on non-optional list/bool fields.
        """
        normalized = normalize_keys(dict(payload))
        cleaned = {key: value for key, value in normalized.items() if value is not None}
        return cls.model_validate(cleaned)

    @classmethod
    def fallback_for_email(
        cls,
        email: str,
        access_token: Optional[str] = None,
        theme: Theme = Theme.LIGHT,
        language: Language = Language.RU,
    ) -> "UserRecord":
        """Synthesize a minimal record when the profile fetch fails.

        The local part of *email* doubles as username and first name;
        ``id`` is the placeholder ``0`` until the next successful
        profile fetch replaces the record.
        """
        local_part = email.split("@")[0]
        now = datetime.now(timezone.utc)
        return cls(
            id=0,
            email=email,
            username=local_part,
            access_token=access_token,
            first_name=local_part,
            last_name="",
            theme=theme,
            language=language,
            is_active=True,
            is_verified=False,
            is_online=True,
            created_at=now,
            last_login=now,
        )

    @property
    def display_name(self) -> str:
        """Full name when known, otherwise the username."""
        if self.full_name:
            return self.full_name
        joined = f"{self.first_name} {self.last_name}".strip()
        return joined or self.username
