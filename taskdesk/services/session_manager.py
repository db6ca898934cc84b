"""
Session Manager.

Turns credentials into an authenticated session and keeps the
``TokenStore`` in step with the ``UserStateStore``.

Covers:
- Email/password login with profile fetch and a fallback record when
  ``/auth/me`` is unavailable.
- Registration with automatic sign-in afterwards.
- Logout that always succeeds locally.
- Advisory email/username availability checks.
- Session restore at start-up and cancellation of in-flight work.

Every public operation returns an ``AuthResult`` (or a plain bool for
the advisory checks); transport errors and unexpected exceptions are
converted at this boundary and never propagate to the caller.

Overlapping operations are ordered by the store's session generation:
a login result that arrives after a logout (or a newer login) is
discarded with ``AuthErrorKind.CANCELLED`` instead of being committed.
"""

from __future__ import annotations

from typing import Optional

from pydantic import JsonValue, ValidationError

from taskdesk.auth import TokenStore
from taskdesk.config import AppConfig
from taskdesk.logger import StructuredLogger
from taskdesk.models.auth_models import (
    CANCELLED_MESSAGE,
    DEFAULT_LOGIN_ERROR,
    DEFAULT_REGISTER_ERROR,
    NETWORK_ERROR_MESSAGE,
    SERVER_ERROR_MAP,
    SESSION_EXPIRED_MESSAGE,
    USER_EXISTS_MESSAGE,
    AuthErrorKind,
    AuthResult,
    LoginCredentials,
    RegistrationPayload,
    TokenResponse,
)
from taskdesk.models.service_models import ApiResponse
from taskdesk.models.user import UserRecord
from taskdesk.services.api_gateway import ApiGateway, NetworkError
from taskdesk.services.base_service import BaseService
from taskdesk.services.board_cache import BoardCache
from taskdesk.services.client_storage import ClientStorage
from taskdesk.services.validation import (
    normalize_email,
    validate_email,
    validate_password,
    validate_username,
)
from taskdesk.user_store import UserStateStore
from taskdesk.utils.audit import log_audit_event

LOGIN_PATH: str = "/auth/login-email"
ME_PATH: str = "/auth/me"
REGISTER_PATH: str = "/auth/register"
CHECK_EMAIL_PATH: str = "/auth/check-email"
CHECK_USERNAME_PATH: str = "/auth/check-username"


class SessionManager(BaseService):
    """Login, registration and logout orchestration.

    Parameters
    ----------
    gateway:
        HTTP adapter for the TaskDesk API.
    tokens:
        Token store written on login and cleared on logout.
    store:
        User state store; the single place the session is committed.
    storage:
        Client storage holding board/navigation keys.
    board_cache:
        Board list collaborator, cleared and re-hydrated around logins.
    config:
        Application configuration (fallback theme/language, board keys).
    logger:
        Structured logger instance.
    """

    def __init__(
        self,
        gateway: ApiGateway,
        tokens: TokenStore,
        store: UserStateStore,
        storage: ClientStorage,
        board_cache: BoardCache,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(gateway=gateway, logger=logger)
        self._tokens: TokenStore = tokens
        self._store: UserStateStore = store
        self._storage: ClientStorage = storage
        self._board_cache: BoardCache = board_cache
        self._config: AppConfig = config

    @property
    def is_authenticated(self) -> bool:
        return self._store.is_authenticated

    # ==================================================================
    # Login
    # ==================================================================

    def login(self, credentials: LoginCredentials) -> AuthResult:
        """Authenticate with email and password.

        Parameters
        ----------
        credentials:
            The raw email and password entered by the user.

        Returns
        -------
        AuthResult
            ``success=True`` with the committed ``UserRecord``, or a
            structured error.  ``CANCELLED`` means a logout or a newer
            session operation started while this one was in flight.
        """
        email = normalize_email(credentials.email)
        if not email or not credentials.password:
            return AuthResult.fail(
                AuthErrorKind.VALIDATION_ERROR,
                "Email and password are required.",
            )

        previous_token = self._tokens.get_token()
        generation = self._store.begin_operation()
        try:
            self._reset_board_state()
            return self._login(generation, email, credentials.password)
        except NetworkError as exc:
            self._discard_attempt_token(generation, previous_token)
            return self._network_failure(generation, "LOGIN", email, exc)
        except Exception as exc:
            self._discard_attempt_token(generation, previous_token)
            return self._unexpected_failure(generation, "LOGIN", email, exc, DEFAULT_LOGIN_ERROR)
        finally:
            self._store.finish_operation(generation)

    def _login(self, generation: int, email: str, password: str) -> AuthResult:
        response = self._gateway.post(
            LOGIN_PATH,
            LoginCredentials(email=email, password=password).model_dump(),
        )
        if not response.success:
            result = self._classify(response, DEFAULT_LOGIN_ERROR, credential_exchange=True)
            return self._fail_if_current(generation, "LOGIN_FAILED", email, result)

        try:
            token = TokenResponse.model_validate(response.data_dict).access_token
        except ValidationError:
            result = AuthResult.fail(
                AuthErrorKind.UNKNOWN_SERVER_ERROR,
                "The server did not return an access token.",
            )
            return self._fail_if_current(generation, "LOGIN_FAILED", email, result)

        if not self._store.apply_if_current(generation, lambda: self._tokens.set_token(token)):
            return self._cancelled("LOGIN", email, token)

        user = self._fetch_profile(email, token)
        if not self._store.apply_if_current(generation, lambda: self._store.set_current_user(user)):
            return self._cancelled("LOGIN", email, token)

        self._logger.info(
            "User authenticated: %s", user.username,
            extra={"event": "LOGIN", "email": user.email, "user_id": user.id},
        )
        log_audit_event(
            logger=self._logger,
            action="LOGIN",
            entity_type="Session",
            entity_id=str(user.id),
            user_id=str(user.id),
            details={"email": user.email, "fallback_profile": user.id == 0},
        )

        self._hydrate_boards(generation)
        return AuthResult.ok(user)

    def _fetch_profile(self, email: str, token: str) -> UserRecord:
        """Return the canonical profile, or a fallback record.

        A failed or id-less ``/auth/me`` must not undo a successful
        credential exchange.
        """
        reason: Optional[str]
        try:
            response = self._gateway.get(ME_PATH)
            payload = response.data_dict
            if response.success and payload.get("id") is not None:
                return UserRecord.from_api({**payload, "access_token": token})
            reason = response.message if not response.success else "profile has no id"
        except ValidationError as exc:
            reason = f"invalid profile payload ({exc.error_count()} errors)"
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"

        self._logger.warning(
            "Profile fetch failed for %s, using fallback record: %s", email, reason,
            extra={"event": "PROFILE_FALLBACK", "email": email},
        )
        return UserRecord.fallback_for_email(
            email,
            access_token=token,
            theme=self._config.DEFAULT_THEME,
            language=self._config.DEFAULT_LANGUAGE,
        )

    def _hydrate_boards(self, generation: int) -> None:
        """Load the board list; failures are logged only."""
        try:
            result = self._board_cache.load_user_boards()
            if not result.success:
                self._logger.warning(
                    "Board hydration failed: %s", result.error,
                    extra={"event": "BOARDS_HYDRATION_FAILED"},
                )
        except Exception as exc:
            self._logger.warning(
                "Board hydration failed: %s", exc,
                extra={"event": "BOARDS_HYDRATION_FAILED"},
            )
        if not self._store.is_current(generation):
            # The session changed while the list was loading.
            self._board_cache.clear()

    # ==================================================================
    # Registration
    # ==================================================================

    def register(self, payload: RegistrationPayload) -> AuthResult:
        """Create an account, then sign in with the same credentials.

        On success the returned result is the result of ``login``, so
        the session state is identical to a manual sign-in.
        """
        payload = payload.model_copy(update={"email": normalize_email(payload.email)})
        problems = self._validate_registration(payload)
        if problems:
            return AuthResult.fail(
                AuthErrorKind.VALIDATION_ERROR, "; ".join(problems), problems,
            )

        generation = self._store.begin_operation()
        try:
            self._reset_board_state()
            response = self._gateway.post(REGISTER_PATH, payload.to_request_body())
            if not response.success:
                result = self._classify(response, DEFAULT_REGISTER_ERROR, credential_exchange=False)
                return self._fail_if_current(generation, "REGISTER_FAILED", payload.email, result)

            if not self._store.is_current(generation):
                return self._cancelled("REGISTER", payload.email)

            self._logger.info(
                "Account created: %s", payload.username,
                extra={"event": "REGISTER", "email": payload.email},
            )
            log_audit_event(
                logger=self._logger,
                action="REGISTER",
                entity_type="User",
                entity_id=payload.username,
                user_id=payload.email,
                details={"offer_accepted": payload.offer_accepted},
            )
            return self.login(payload.credentials())
        except NetworkError as exc:
            return self._network_failure(generation, "REGISTER", payload.email, exc)
        except Exception as exc:
            return self._unexpected_failure(
                generation, "REGISTER", payload.email, exc, DEFAULT_REGISTER_ERROR,
            )
        finally:
            self._store.finish_operation(generation)

    @staticmethod
    def _validate_registration(payload: RegistrationPayload) -> list[str]:
        problems: list[str] = []
        if not validate_email(payload.email):
            problems.append("Enter a valid email address")
        problems.extend(validate_username(payload.username))
        problems.extend(validate_password(payload.password))
        return problems

    # ==================================================================
    # Logout
    # ==================================================================

    def logout(self) -> None:
        """Sign out locally.  Never raises.

        The store is cleared first: that advances the session generation,
        so a login still in flight can no longer set a token afterwards.
        """
        user = self._store.current_user
        user_email = user.email if user is not None else "unknown"
        user_id = str(user.id) if user is not None else "unknown"

        steps = (
            ("user state", self._store.clear_current_user),
            ("access token", self._tokens.clear_token),
            ("board state keys", lambda: self._storage.remove_keys(self._config.BOARD_STATE_KEYS)),
            ("board cache", self._board_cache.clear),
        )
        for label, step in steps:
            try:
                step()
            except Exception as exc:
                self._logger.warning(
                    "Logout step '%s' failed: %s", label, exc,
                    extra={"event": "LOGOUT_STEP_FAILED", "step": label},
                )

        self._logger.info(
            "User logged out: %s", user_email,
            extra={"event": "LOGOUT", "email": user_email, "user_id": user_id},
        )
        try:
            log_audit_event(
                logger=self._logger,
                action="LOGOUT",
                entity_type="Session",
                entity_id=user_id,
                user_id=user_id,
            )
        except Exception as exc:
            self._logger.warning("Logout audit failed: %s", exc)

    # ==================================================================
    # Availability checks
    # ==================================================================

    def check_email_exists(self, email: str) -> bool:
        """``True`` only when the server confirms the email is taken."""
        return self._check_exists(CHECK_EMAIL_PATH, {"email": normalize_email(email)})

    def check_username_exists(self, username: str) -> bool:
        """``True`` only when the server confirms the username is taken."""
        return self._check_exists(CHECK_USERNAME_PATH, {"username": username.strip()})

    def _check_exists(self, path: str, body: dict[str, JsonValue]) -> bool:
        try:
            response = self._gateway.post(path, body)
            return response.success and bool(response.data_dict.get("exists"))
        except Exception as exc:
            self._logger.warning(
                "Availability check %s failed, treating as available: %s", path, exc,
            )
            return False

    # ==================================================================
    # Restore / cancel
    # ==================================================================

    def restore_session(self, user: Optional[UserRecord] = None) -> bool:
        """Re-activate a persisted session at start-up.

        Uses *user* (or the store's current user) and re-applies its
        access token to the ``TokenStore``.  Returns ``False`` when
        there is nothing to restore.
        """
        user = user or self._store.current_user
        if user is None or not user.access_token:
            return False

        self._tokens.set_token(user.access_token)
        if self._store.current_user is not user:
            self._store.set_current_user(user)
        self._logger.info(
            "Session restored for %s", user.email,
            extra={"event": "SESSION_RESTORED", "user_id": user.id},
        )
        self._hydrate_boards(self._store.generation)
        return True

    def cancel_pending(self) -> None:
        """Discard the result of any login/registration still in flight."""
        generation = self._store.advance_generation()
        self._logger.info(
            "Pending session operations cancelled.",
            extra={"event": "SESSION_CANCELLED", "generation": generation},
        )

    # ==================================================================
    # Helpers
    # ==================================================================

    def _reset_board_state(self) -> None:
        """Drop boards and navigation state left by a previous user."""
        self._board_cache.clear()
        self._storage.remove_keys(self._config.BOARD_STATE_KEYS)

    def _classify(
        self,
        response: ApiResponse,
        default_message: str,
        credential_exchange: bool,
    ) -> AuthResult:
        """Map a failed envelope to an ``AuthResult``.

        Order: the server's ``error.type`` discriminator, then a 401
        status, then the server's free text, then *default_message*.
        """
        error = response.error
        error_obj = error if isinstance(error, dict) else {}

        error_type = error_obj.get("type")
        if isinstance(error_type, str) and error_type in SERVER_ERROR_MAP:
            kind, canned = SERVER_ERROR_MAP[error_type]
            details = _detail_messages(error_obj.get("details"))
            if kind is AuthErrorKind.SERVER_VALIDATION_ERROR:
                message = f"{canned}: {', '.join(details)}" if details else str(canned)
            elif canned is None:
                message = _text(error_obj.get("message")) or USER_EXISTS_MESSAGE
            else:
                message = canned
            return AuthResult.fail(kind, message, details)

        server_text = (
            error if isinstance(error, str) and error else None
        ) or _text(error_obj.get("message")) or response.message

        if response.status_code == 401:
            if credential_exchange:
                return AuthResult.fail(
                    AuthErrorKind.INVALID_CREDENTIALS,
                    SERVER_ERROR_MAP["INVALID_CREDENTIALS"][1] or DEFAULT_LOGIN_ERROR,
                )
            return AuthResult.fail(AuthErrorKind.SESSION_EXPIRED, SESSION_EXPIRED_MESSAGE)

        return AuthResult.fail(
            AuthErrorKind.UNKNOWN_SERVER_ERROR, server_text or default_message,
        )

    def _fail_if_current(
        self,
        generation: int,
        event: str,
        email: str,
        result: AuthResult,
    ) -> AuthResult:
        """Publish *result*'s message to the store unless superseded."""
        message = result.error_message or ""
        if not self._store.apply_if_current(generation, lambda: self._store.set_error(message)):
            return AuthResult.fail(AuthErrorKind.CANCELLED, CANCELLED_MESSAGE)
        self._logger.warning(
            "%s for %s: %s", event, email, message,
            extra={"event": event, "email": email, "error_code": str(result.error_code)},
        )
        return result

    def _network_failure(
        self,
        generation: int,
        action: str,
        email: str,
        exc: NetworkError,
    ) -> AuthResult:
        self._logger.warning(
            "Network error during %s: %s", action.lower(), exc,
            extra={"event": f"{action}_NETWORK_ERROR", "email": email},
        )
        result = AuthResult.fail(AuthErrorKind.NETWORK_ERROR, NETWORK_ERROR_MESSAGE, [str(exc)])
        return self._fail_if_current(generation, f"{action}_FAILED", email, result)

    def _unexpected_failure(
        self,
        generation: int,
        action: str,
        email: str,
        exc: Exception,
        default_message: str,
    ) -> AuthResult:
        self._logger.exception(
            "Unexpected error during %s: %s", action.lower(), exc,
            extra={"event": f"{action}_FAILED", "email": email},
        )
        result = AuthResult.fail(AuthErrorKind.UNKNOWN_SERVER_ERROR, default_message)
        return self._fail_if_current(generation, f"{action}_FAILED", email, result)

    def _discard_attempt_token(self, generation: int, previous: Optional[str]) -> None:
        """Put back the token held before a login that failed part-way.

        A token the committed user already owns is left alone.
        """
        def restore() -> None:
            current = self._tokens.get_token()
            user = self._store.current_user
            if current == previous or (user is not None and user.access_token == current):
                return
            if previous is None:
                self._tokens.clear_token()
            else:
                self._tokens.set_token(previous)

        self._store.apply_if_current(generation, restore)

    def _cancelled(self, action: str, email: str, token: Optional[str] = None) -> AuthResult:
        # A token set by this attempt must not outlive it.
        if token is not None and self._tokens.get_token() == token and not self._store.is_authenticated:
            self._tokens.clear_token()
        self._logger.info(
            "%s for %s superseded by a newer session change.", action, email,
            extra={"event": f"{action}_CANCELLED", "email": email},
        )
        return AuthResult.fail(AuthErrorKind.CANCELLED, CANCELLED_MESSAGE)


def _text(value: JsonValue) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _detail_messages(details: JsonValue) -> list[str]:
    """Flatten ``[{message}, "text", ...]`` into a list of strings."""
    if not isinstance(details, list):
        return []
    messages: list[str] = []
    for item in details:
        if isinstance(item, dict):
            text = _text(item.get("message")) or _text(item.get("msg"))
        else:
            text = _text(item)
        if text:
            messages.append(text)
    return messages
