from __future__ import annotations

"""
Data Models Package.

Re-exports the Pydantic models for short imports:
    from taskdesk.models import UserRecord, SessionState, AuthResult
    from taskdesk.models import Theme, Language, WizardStep
"""

from taskdesk.models.auth_models import (
    AuthError,
    AuthErrorKind,
    AuthResult,
    AvatarUpload,
    LoginCredentials,
    RegistrationPayload,
    ValidationResult,
)
from taskdesk.models.enums import (
    Gender,
    Language,
    ProfileVisibility,
    SubscriptionPlan,
    Theme,
    WizardStep,
)
from taskdesk.models.service_models import (
    ApiResponse,
    ProfileUpdate,
    ServiceResult,
    SettingsUpdate,
)
from taskdesk.models.session_state import SessionState
from taskdesk.models.user import UserRecord

__all__ = [
    "ApiResponse",
    "AuthError",
    "AuthErrorKind",
    "AuthResult",
    "AvatarUpload",
    "Gender",
    "Language",
    "LoginCredentials",
    "ProfileUpdate",
    "ProfileVisibility",
    "RegistrationPayload",
    "ServiceResult",
    "SessionState",
    "SettingsUpdate",
    "SubscriptionPlan",
    "Theme",
    "UserRecord",
    "ValidationResult",
    "WizardStep",
]
