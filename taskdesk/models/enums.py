"""
Shared Enumerations for TaskDesk Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so server payloads like ``"theme": "dark"`` validate directly.
"""

from __future__ import annotations
from enum import StrEnum


class Theme(StrEnum):
    """UI colour scheme.  ``AUTO`` follows the operating system."""

    LIGHT = "light"
    DARK = "dark"
    AUTO = "auto"


class Language(StrEnum):
    """Supported interface languages."""

    EN = "en"
    RU = "ru"


class Gender(StrEnum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    PREFER_NOT_TO_SAY = "prefer_not_to_say"


class ProfileVisibility(StrEnum):
    """Who may see the user's profile page."""

    PUBLIC = "public"
    FRIENDS = "friends"
    PRIVATE = "private"


class SubscriptionPlan(StrEnum):
    """Plans offered by the profile-setup wizard.

    ``FREE`` is applied when the subscription step is skipped.
    """

    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class WizardStep(StrEnum):
    """Every step name a wizard can be on.

    ``COMMITTING`` is transient (network calls in flight) and
    ``COMPLETED`` is terminal; neither accepts ``next()`` input.
    """

    WELCOME = "welcome"
    CREDENTIALS = "credentials"
    PERSONAL_DATA = "personal_data"
    PROFESSION = "profession"
    ADDITIONAL = "additional"
    SUBSCRIPTION = "subscription"
    AGREEMENT = "agreement"
    COMMITTING = "committing"
    COMPLETED = "completed"
