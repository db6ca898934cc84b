"""
Service Layer Data Transfer Objects.

Pydantic models for validated input/output at service boundaries:
the gateway's uniform response envelope, the generic service result,
and the outbound profile/settings bodies.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, JsonValue

from taskdesk.models.enums import Language, SubscriptionPlan, Theme
from taskdesk.utils.string_helpers import to_camel_case

T = TypeVar("T")

__all__ = [
    "ApiResponse",
    "AvatarUploadResult",
    "ProfileUpdate",
    "ServiceResult",
    "SettingsUpdate",
]


# ---------------------------------------------------------------------------
# Gateway envelope
# ---------------------------------------------------------------------------

class ApiResponse(BaseModel):
    """Uniform ``{success, data, message, error}`` envelope.

    ``error`` is either the server's ``error`` member (a string or a
    ``{type, message, details}`` object) or the whole error body.
    ``status_code`` is ``None`` only for envelopes built without an
    HTTP exchange (tests, fakes).
    """

    success: bool
    data: Optional[JsonValue] = None
    message: Optional[str] = None
    error: Optional[JsonValue] = None
    status_code: Optional[int] = None

    @property
    def data_dict(self) -> dict[str, JsonValue]:
        """``data`` when it is an object, else an empty dict."""
        return self.data if isinstance(self.data, dict) else {}


# ---------------------------------------------------------------------------
# Outbound bodies
# ---------------------------------------------------------------------------

class ProfileUpdate(BaseModel):
    """Body of ``PUT /users/profile``; serialized in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel_case, populate_by_name=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_name: Optional[str] = None
    bio: Optional[str] = None
    phone_number: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    occupation: Optional[str] = None
    profession: Optional[str] = None
    company: Optional[str] = None
    website: Optional[str] = None
    avatar_url: Optional[str] = None
    subscription_plan: Optional[SubscriptionPlan] = None

    def to_request_body(self) -> dict[str, JsonValue]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def store_fields(self) -> dict[str, JsonValue]:
        """The snake_case subset that maps onto ``UserRecord`` fields."""
        fields = self.model_dump(mode="json", exclude_none=True)
        fields.pop("subscription_plan", None)
        return fields

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class SettingsUpdate(BaseModel):
    """Body of ``PUT /users/settings``; serialized in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel_case, populate_by_name=True)

    theme: Optional[Theme] = None
    language: Optional[Language] = None
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
    desktop_notifications: Optional[bool] = None

    def to_request_body(self) -> dict[str, JsonValue]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def store_fields(self) -> dict[str, JsonValue]:
        return self.model_dump(mode="json", exclude_none=True)


class AvatarUploadResult(BaseModel):
    """Successful ``POST /users/avatar`` payload."""

    model_config = ConfigDict(alias_generator=to_camel_case, populate_by_name=True)

    avatar_url: str
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Generic service models
# ---------------------------------------------------------------------------

class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    Non-session services return this, giving the view layer one
    contract to inspect.  Generic over ``T`` so callers can annotate
    return types precisely (e.g. ``ServiceResult[UserRecord]``).
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
