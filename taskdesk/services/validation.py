"""
Field Validation Engine.

Pure, deterministic checks shared by every form and wizard step.
Nothing here touches the store or the network, so the same rules run
identically before login, during registration and in profile settings.

Password and username checks return *every* failing rule (one message
each) so a form can list them all at once; the single-field checks
return a ``ValidationResult``.
"""

from __future__ import annotations

import re
from typing import Optional

from taskdesk.models.auth_models import AvatarUpload, ValidationResult
from taskdesk.utils.string_helpers import sanitize_input

__all__ = [
    "AVATAR_MAX_BYTES",
    "PASSWORD_MIN_LENGTH",
    "PASSWORD_SYMBOLS",
    "USERNAME_MAX_LENGTH",
    "USERNAME_MIN_LENGTH",
    "normalize_email",
    "password_strength",
    "sanitize_input",
    "validate_avatar",
    "validate_email",
    "validate_name",
    "validate_password",
    "validate_phone",
    "validate_username",
]


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH: int = 8
PASSWORD_SYMBOLS: str = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

USERNAME_MIN_LENGTH: int = 3
USERNAME_MAX_LENGTH: int = 30

AVATAR_MAX_BYTES: int = 5 * 1024 * 1024

_EMAIL_RE: re.Pattern[str] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_USERNAME_RE: re.Pattern[str] = re.compile(r"^[a-zA-Z0-9_-]+$")
_PHONE_RE: re.Pattern[str] = re.compile(r"^\+?[1-9][0-9]{0,15}$")
_SYMBOL_RE: re.Pattern[str] = re.compile(f"[{re.escape(PASSWORD_SYMBOLS)}]")

# Matches C0 controls, DEL and C1 controls.
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")

# (predicate, message) in reporting order.
_PASSWORD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one digit"),
    (_SYMBOL_RE, "Password must contain at least one special character"),
)
_PASSWORD_LENGTH_MESSAGE: str = (
    f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
)


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------

def validate_password(password: str) -> list[str]:
    """Return one message per password rule that *password* breaks.

    Rules, in order: minimum length, a lowercase letter, an uppercase
    letter, a digit, a symbol from ``PASSWORD_SYMBOLS``.  An empty list
    means the password is acceptable.
    """
    errors: list[str] = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(_PASSWORD_LENGTH_MESSAGE)
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(password):
            errors.append(message)
    return errors


def password_strength(password: str) -> int:
    """Score *password* from 0 to 5, one point per satisfied rule."""
    return 5 - len(validate_password(password))


# ---------------------------------------------------------------------------
# Identity fields
# ---------------------------------------------------------------------------

def validate_email(value: str) -> bool:
    """Permissive ``local@domain.tld`` check (not full RFC 5322)."""
    return bool(_EMAIL_RE.match(value.strip()))


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


def validate_username(value: str) -> list[str]:
    """Return every rule *value* breaks; ``[]`` when it is acceptable."""
    if not value or not value.strip():
        return ["Username is required"]

    errors: list[str] = []
    if len(value) < USERNAME_MIN_LENGTH:
        errors.append(
            f"Username must be at least {USERNAME_MIN_LENGTH} characters long"
        )
    if len(value) > USERNAME_MAX_LENGTH:
        errors.append(
            f"Username must be no more than {USERNAME_MAX_LENGTH} characters long"
        )
    if not _USERNAME_RE.match(value):
        errors.append(
            "Username can only contain letters, numbers, underscores and hyphens"
        )
    return errors


# ---------------------------------------------------------------------------
# Profile fields
# ---------------------------------------------------------------------------

def validate_name(name: str, field_label: str) -> ValidationResult:
    """Require a non-empty, printable name.

    Control characters (including newlines and tabs) are rejected so
    names cannot corrupt log lines or headers.
    """
    stripped = name.strip()
    if not stripped:
        return ValidationResult(
            is_valid=False,
            error_message=f"{field_label} is required",
        )
    if _CONTROL_CHAR_RE.search(stripped):
        return ValidationResult(
            is_valid=False,
            error_message=f"{field_label} contains invalid characters",
        )
    return ValidationResult(is_valid=True)


def validate_phone(value: Optional[str]) -> ValidationResult:
    """Optional international phone number; spaces are ignored."""
    if not value:
        return ValidationResult(is_valid=True)
    compact = re.sub(r"\s", "", value)
    if not _PHONE_RE.match(compact):
        return ValidationResult(
            is_valid=False,
            error_message="Enter a valid phone number",
        )
    return ValidationResult(is_valid=True)


def validate_avatar(
    upload: Optional[AvatarUpload],
    max_bytes: int = AVATAR_MAX_BYTES,
) -> ValidationResult:
    """Avatars are optional; when present they must be a small image."""
    if upload is None:
        return ValidationResult(is_valid=True)
    if not upload.content_type.startswith("image/"):
        return ValidationResult(
            is_valid=False,
            error_message="Choose an image file",
        )
    if upload.size > max_bytes:
        return ValidationResult(
            is_valid=False,
            error_message=f"File size must not exceed {max_bytes // (1024 * 1024)}MB",
        )
    return ValidationResult(is_valid=True)
