"""
Authentication Pipeline Models.

Pydantic models and enumerations for the request/response contracts
between ``SessionManager``, the wizards and the UI layer.

Every session operation returns a structured, inspectable
``AuthResult`` rather than raw strings or exception side-channels.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from taskdesk.models.user import UserRecord


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorKind(StrEnum):
    """Exhaustive enumeration of session error categories.

    ``VALIDATION_ERROR`` is local and never reaches the network.
    ``CANCELLED`` marks a result discarded because a newer session
    operation (or a logout) started while it was in flight.
    """

    VALIDATION_ERROR = "validation_error"
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    ACCOUNT_DISABLED = "account_disabled"
    USER_EXISTS = "user_exists"
    SERVER_VALIDATION_ERROR = "server_validation_error"
    SESSION_EXPIRED = "session_expired"
    NETWORK_ERROR = "network_error"
    UNKNOWN_SERVER_ERROR = "unknown_server_error"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Server ``error.type`` discriminator mapping
# ---------------------------------------------------------------------------

# ``None`` as message means "use the server's own message when present".
SERVER_ERROR_MAP: dict[str, tuple[AuthErrorKind, Optional[str]]] = {
    "INVALID_CREDENTIALS": (
        AuthErrorKind.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "USER_NOT_FOUND": (
        AuthErrorKind.USER_NOT_FOUND,
        "User not found.",
    ),
    "ACCOUNT_DISABLED": (
        AuthErrorKind.ACCOUNT_DISABLED,
        "This account has been disabled.",
    ),
    "USER_EXISTS": (
        AuthErrorKind.USER_EXISTS,
        None,
    ),
    "VALIDATION_ERROR": (
        AuthErrorKind.SERVER_VALIDATION_ERROR,
        "Invalid registration data",
    ),
}

DEFAULT_LOGIN_ERROR: str = "Login failed. Please try again."
DEFAULT_REGISTER_ERROR: str = "Registration failed. Please try again."
USER_EXISTS_MESSAGE: str = "A user with this email or username already exists."
SESSION_EXPIRED_MESSAGE: str = "Your session has expired. Please sign in again."
NETWORK_ERROR_MESSAGE: str = "Cannot reach the server. Check your internet connection."
CANCELLED_MESSAGE: str = "The operation was superseded by a newer session change."


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check."""

    is_valid: bool
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Tagged error + unified auth response
# ---------------------------------------------------------------------------

class AuthError(BaseModel):
    """Tagged failure value carried by ``AuthResult``.

    Attributes
    ----------
    kind:
        The taxonomy bucket; UI code branches on this, never on text.
    message:
        A single human-readable message ready to show next to the form.
    details:
        Per-field server validation messages, already folded into
        ``message``; kept for callers that highlight individual fields.
    """

    kind: AuthErrorKind
    message: str
    details: list[str] = Field(default_factory=list)


class AuthResult(BaseModel):
    """Unified response for login, registration and profile commits.

    The UI inspects ``success`` to decide which branch to render and
    ``error_code`` to decide on extra controls (e.g. a "sign in instead"
    link for ``USER_EXISTS``).
    """

    success: bool
    error: Optional[AuthError] = None
    user: Optional[UserRecord] = None

    @property
    def error_code(self) -> Optional[AuthErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    @classmethod
    def ok(cls, user: Optional[UserRecord] = None) -> "AuthResult":
        return cls(success=True, user=user)

    @classmethod
    def fail(
        cls,
        kind: AuthErrorKind,
        message: str,
        details: Optional[list[str]] = None,
    ) -> "AuthResult":
        return cls(
            success=False,
            error=AuthError(kind=kind, message=message, details=details or []),
        )


# ---------------------------------------------------------------------------
# Request / response contracts
# ---------------------------------------------------------------------------

class LoginCredentials(BaseModel):
    """Body of ``POST /auth/login-email``."""

    email: str
    password: str


class TokenResponse(BaseModel):
    """Successful ``POST /auth/login-email`` payload."""

    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None


class AvatarUpload(BaseModel):
    """An avatar image picked by the user, not yet uploaded."""

    filename: str
    content: bytes
    content_type: str = "image/png"

    @property
    def size(self) -> int:
        return len(self.content)


class RegistrationPayload(BaseModel):
    """Flat snake_case record sent to ``POST /auth/register``."""

    email: str
    username: str
    password: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_name: Optional[str] = None
    bio: Optional[str] = None
    phone_number: Optional[str] = None
    occupation: Optional[str] = None
    avatar_url: Optional[str] = None
    offer_accepted: bool = False
    offer_accepted_at: Optional[datetime] = None

    def to_request_body(self) -> dict[str, object]:
        """JSON-ready body; unset optional fields are omitted."""
        return self.model_dump(mode="json", exclude_none=True)

    def credentials(self) -> LoginCredentials:
        return LoginCredentials(email=self.email, password=self.password)
