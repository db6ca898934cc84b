"""
Profile Service.

Everything the signed-in user can change about their own account:
profile fields, display/notification settings, avatar and password.
Each call is gated by ``require_session`` and returns a
``ServiceResult``; a successful server response is mirrored into the
``UserStateStore`` so subscribers see the new values immediately.

Endpoints::

    GET    /users/profile
    PUT    /users/profile          (camelCase body)
    PUT    /users/settings         (camelCase body)
    POST   /users/avatar           (multipart, field "avatar")
    DELETE /users/avatar
    PUT    /users/change-password
"""

from __future__ import annotations

from typing import Callable, Optional, TypeVar

from pydantic import ValidationError

from taskdesk.auth import TokenStore
from taskdesk.jwt_auth import AuthenticationError, require_session
from taskdesk.logger import StructuredLogger
from taskdesk.models.auth_models import (
    NETWORK_ERROR_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    AvatarUpload,
)
from taskdesk.models.service_models import (
    ApiResponse,
    AvatarUploadResult,
    ProfileUpdate,
    ServiceResult,
    SettingsUpdate,
)
from taskdesk.models.user import IMMUTABLE_FIELDS, UserRecord
from taskdesk.services.api_gateway import ApiGateway, NetworkError
from taskdesk.services.base_service import BaseService
from taskdesk.services.client_storage import ClientStorage
from taskdesk.services.validation import (
    AVATAR_MAX_BYTES,
    validate_avatar,
    validate_password,
)
from taskdesk.user_store import UserStateStore
from taskdesk.utils.audit import DetailValue, log_audit_event
from taskdesk.utils.string_helpers import normalize_keys

T = TypeVar("T")

PROFILE_PATH: str = "/users/profile"
SETTINGS_PATH: str = "/users/settings"
AVATAR_PATH: str = "/users/avatar"
AVATAR_FIELD: str = "avatar"
CHANGE_PASSWORD_PATH: str = "/users/change-password"


class ProfileService(BaseService):
    """Account self-service operations for the signed-in user.

    Parameters
    ----------
    gateway:
        HTTP adapter for the TaskDesk API.
    tokens:
        Token store; a missing token fails the session guard.
    store:
        User state store updated after every successful call.
    storage:
        Client storage receiving ``theme`` / ``language`` on settings
        updates.
    logger:
        Structured logger instance.
    avatar_max_bytes:
        Upper bound enforced before an avatar upload is attempted.
    """

    def __init__(
        self,
        gateway: ApiGateway,
        tokens: TokenStore,
        store: UserStateStore,
        storage: ClientStorage,
        logger: StructuredLogger,
        avatar_max_bytes: int = AVATAR_MAX_BYTES,
    ) -> None:
        super().__init__(gateway=gateway, logger=logger)
        self._store: UserStateStore = store
        self._storage: ClientStorage = storage
        self._avatar_max_bytes: int = avatar_max_bytes
        self._guard = require_session(store, tokens)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self) -> ServiceResult[UserRecord]:
        """Fetch the server's copy of the profile and refresh the store."""
        return self._run("get_profile", self._get_profile)

    def update_profile(self, update: ProfileUpdate) -> ServiceResult[UserRecord]:
        """Send *update* and merge the changed fields into the store."""
        if update.is_empty:
            return ServiceResult(success=False, error="Nothing to update", status_code=400)
        return self._run("update_profile", self._update_profile, update)

    def update_settings(self, update: SettingsUpdate) -> ServiceResult[UserRecord]:
        """Send *update*; on success persist theme/language locally."""
        return self._run("update_settings", self._update_settings, update)

    # ------------------------------------------------------------------
    # Avatar
    # ------------------------------------------------------------------

    def upload_avatar(self, upload: AvatarUpload) -> ServiceResult[str]:
        """Upload a new avatar image; ``data`` is the resulting URL."""
        check = validate_avatar(upload, self._avatar_max_bytes)
        if not check.is_valid:
            return ServiceResult(success=False, error=check.error_message, status_code=400)
        return self._run("upload_avatar", self._upload_avatar, upload)

    def delete_avatar(self) -> ServiceResult[None]:
        return self._run("delete_avatar", self._delete_avatar)

    # ------------------------------------------------------------------
    # Password
    # ------------------------------------------------------------------

    def change_password(self, current_password: str, new_password: str) -> ServiceResult[str]:
        """Change the password after checking the new one locally."""
        problems = validate_password(new_password)
        if problems:
            return ServiceResult(success=False, error="; ".join(problems), status_code=400)
        if new_password == current_password:
            return ServiceResult(
                success=False,
                error="New password must differ from the current one",
                status_code=400,
            )
        return self._run(
            "change_password", self._change_password, current_password, new_password,
        )

    # ------------------------------------------------------------------
    # Guarded implementations
    # ------------------------------------------------------------------

    def _get_profile(self) -> ServiceResult[UserRecord]:
        response = self._gateway.get(PROFILE_PATH)
        if not response.success:
            return self._failure(response, "Failed to load profile")

        # Only fields the server actually sent; identity and token stay local.
        fields = {
            key: value
            for key, value in normalize_keys(response.data_dict).items()
            if key in UserRecord.model_fields
            and key not in IMMUTABLE_FIELDS
            and key != "access_token"
            and value is not None
        }
        self._store.update_profile(fields)
        return ServiceResult(success=True, data=self._store.current_user)

    def _update_profile(self, update: ProfileUpdate) -> ServiceResult[UserRecord]:
        response = self._gateway.put(PROFILE_PATH, update.to_request_body())
        if not response.success:
            return self._failure(response, "Failed to update profile")

        self._store.update_profile(update.store_fields())
        user = self._store.current_user
        self._audit("UPDATE_PROFILE", user, {"fields": ",".join(sorted(update.store_fields()))})
        return ServiceResult(success=True, data=user)

    def _update_settings(self, update: SettingsUpdate) -> ServiceResult[UserRecord]:
        response = self._gateway.put(SETTINGS_PATH, update.to_request_body())
        if not response.success:
            return self._failure(response, "Failed to update settings")

        self._store.update_profile(update.store_fields())
        if update.theme is not None:
            self._storage.set_theme(str(update.theme))
        if update.language is not None:
            self._storage.set_language(str(update.language))
        return ServiceResult(success=True, data=self._store.current_user)

    def _upload_avatar(self, upload: AvatarUpload) -> ServiceResult[str]:
        response = self._gateway.upload(AVATAR_PATH, AVATAR_FIELD, upload)
        if not response.success:
            return self._failure(response, "Failed to upload avatar")

        url = AvatarUploadResult.model_validate(response.data_dict).avatar_url
        self._store.update_profile({"avatar_url": url})
        self._audit("UPLOAD_AVATAR", self._store.current_user, {"size": upload.size})
        return ServiceResult(success=True, data=url)

    def _delete_avatar(self) -> ServiceResult[None]:
        response = self._gateway.delete(AVATAR_PATH)
        if not response.success:
            return self._failure(response, "Failed to delete avatar")

        self._store.update_profile({"avatar_url": None})
        return ServiceResult(success=True)

    def _change_password(self, current_password: str, new_password: str) -> ServiceResult[str]:
        response = self._gateway.put(
            CHANGE_PASSWORD_PATH,
            {"currentPassword": current_password, "newPassword": new_password},
        )
        if not response.success:
            return self._failure(response, "Failed to change password")

        self._audit("CHANGE_PASSWORD", self._store.current_user, None)
        message = response.data_dict.get("message") or response.message
        return ServiceResult(success=True, data=str(message) if message else None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, action: str, func: Callable[..., ServiceResult[T]], *args: object) -> ServiceResult[T]:
        """Invoke *func* behind the session guard.

        ``AuthenticationError`` and ``NetworkError`` become failed
        results so callers only ever inspect ``ServiceResult``.
        """
        try:
            return self._guard(func)(*args)
        except AuthenticationError as exc:
            self._logger.warning(
                "%s refused: %s", action, exc,
                extra={"event": "PROFILE_UNAUTHENTICATED", "action": action},
            )
            return ServiceResult(success=False, error=str(exc), status_code=401)
        except NetworkError as exc:
            self._logger.warning(
                "%s network failure: %s", action, exc,
                extra={"event": "PROFILE_NETWORK_ERROR", "action": action},
            )
            return ServiceResult(
                success=False,
                error=f"{NETWORK_ERROR_MESSAGE} ({exc})",
                status_code=503,
            )
        except ValidationError as exc:
            self._logger.error(
                "%s got an unexpected payload: %s", action, exc,
                extra={"event": "PROFILE_BAD_PAYLOAD", "action": action},
            )
            return ServiceResult(
                success=False, error="Unexpected response from server", status_code=502,
            )

    def _failure(self, response: ApiResponse, fallback: str) -> ServiceResult[T]:
        if response.status_code == 401:
            return ServiceResult(success=False, error=SESSION_EXPIRED_MESSAGE, status_code=401)
        return ServiceResult(
            success=False,
            error=response.message or fallback,
            status_code=response.status_code or 500,
        )

    def _audit(self, action: str, user: Optional[UserRecord], details: Optional[dict[str, DetailValue]]) -> None:
        user_id = str(user.id) if user is not None else "unknown"
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type="Profile",
            entity_id=user_id,
            user_id=user_id,
            details=details,
        )
