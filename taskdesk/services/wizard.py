"""
Onboarding Wizards.

A linear step machine shared by the two account-setup flows:

- ``REGISTRATION_WIZARD``: welcome, credentials, personal data,
  profession, agreement.  Committing registers the account (which signs
  in), then uploads the avatar and saves the remaining profile fields.
- ``PROFILE_SETUP_WIZARD``: profession, additional info, subscription
  (skippable), agreement.  Committing uploads the avatar and saves the
  profile of the already signed-in user.

Only ``commit()`` and ``check_availability()`` touch the network; every
other transition is local.  ``next()`` runs the current step's validator
and refuses to advance on failure, exposing the problems through
``field_errors``.  ``back()`` never discards entered data.

Usage::

    wizard = WizardController(REGISTRATION_WIZARD, session, profile, store, logger)
    wizard.next()                                   # welcome
    wizard.next({"email": "ann@example.com", ...})  # credentials
    ...
    result = wizard.commit()
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from pydantic import JsonValue

from taskdesk.logger import StructuredLogger
from taskdesk.models.auth_models import (
    AuthErrorKind,
    AuthResult,
    AvatarUpload,
    RegistrationPayload,
)
from taskdesk.models.enums import SubscriptionPlan, WizardStep
from taskdesk.models.service_models import ProfileUpdate, ServiceResult
from taskdesk.services.profile_service import ProfileService
from taskdesk.services.session_manager import SessionManager
from taskdesk.services.validation import (
    normalize_email,
    sanitize_input,
    validate_avatar,
    validate_email,
    validate_name,
    validate_password,
    validate_phone,
    validate_username,
)
from taskdesk.user_store import UserStateStore
from taskdesk.utils.audit import log_audit_event

StepPayload = Mapping[str, object]
# (step payload, draft so far) -> {field: message}; empty when valid.
StepValidator = Callable[[StepPayload, Mapping[str, object]], dict[str, str]]


class InvalidTransitionError(RuntimeError):
    """Raised when a transition is requested from a step that forbids it."""


# ---------------------------------------------------------------------------
# Professions
# ---------------------------------------------------------------------------

PROFESSIONS: tuple[tuple[str, str], ...] = (
    ("frontend-developer", "Frontend developer"),
    ("backend-developer", "Backend developer"),
    ("fullstack-developer", "Fullstack developer"),
    ("mobile-developer", "Mobile developer"),
    ("ui-designer", "UI designer"),
    ("ux-designer", "UX designer"),
    ("graphic-designer", "Graphic designer"),
    ("product-designer", "Product designer"),
    ("qa-engineer", "QA engineer"),
    ("devops-engineer", "DevOps engineer"),
    ("data-scientist", "Data scientist"),
    ("product-manager", "Product manager"),
    ("project-manager", "Project manager"),
    ("marketing-manager", "Marketing manager"),
    ("content-manager", "Content manager"),
    ("system-administrator", "System administrator"),
    ("cybersecurity-specialist", "Cybersecurity specialist"),
    ("business-analyst", "Business analyst"),
    ("sales-manager", "Sales manager"),
    ("hr-specialist", "HR specialist"),
    ("other", "Other"),
)
PROFESSION_IDS: frozenset[str] = frozenset(pid for pid, _ in PROFESSIONS)

# Never mirrored into the shared store draft.
_PRIVATE_FIELDS: frozenset[str] = frozenset({"password", "confirm_password", "avatar"})


# ---------------------------------------------------------------------------
# Step validators
# ---------------------------------------------------------------------------

def _text(payload: Mapping[str, object], field: str) -> str:
    value = payload.get(field)
    return value if isinstance(value, str) else ""


def _validate_credentials(payload: StepPayload, draft: Mapping[str, object]) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not validate_email(_text(payload, "email")):
        errors["email"] = "Enter a valid email address"

    username_problems = validate_username(_text(payload, "username"))
    if username_problems:
        errors["username"] = username_problems[0]

    password = _text(payload, "password")
    password_problems = validate_password(password)
    if password_problems:
        errors["password"] = "; ".join(password_problems)
    if _text(payload, "confirm_password") != password:
        errors["confirm_password"] = "Passwords do not match"
    return errors


def _validate_avatar_field(payload: StepPayload, errors: dict[str, str]) -> None:
    avatar = payload.get("avatar")
    if avatar is not None and not isinstance(avatar, AvatarUpload):
        errors["avatar"] = "Choose an image file"
        return
    check = validate_avatar(avatar)
    if not check.is_valid:
        errors["avatar"] = check.error_message or "Invalid avatar"


def _validate_personal_data(payload: StepPayload, draft: Mapping[str, object]) -> dict[str, str]:
    errors: dict[str, str] = {}
    for field, label in (("first_name", "First name"), ("last_name", "Last name")):
        check = validate_name(_text(payload, field), label)
        if not check.is_valid:
            errors[field] = check.error_message or f"{label} is invalid"

    phone = validate_phone(_text(payload, "phone_number"))
    if not phone.is_valid:
        errors["phone_number"] = phone.error_message or "Invalid phone number"
    _validate_avatar_field(payload, errors)
    return errors


def _validate_profession(payload: StepPayload, draft: Mapping[str, object]) -> dict[str, str]:
    if _text(payload, "profession") not in PROFESSION_IDS:
        return {"profession": "Choose your profession"}
    return {}


def _validate_additional(payload: StepPayload, draft: Mapping[str, object]) -> dict[str, str]:
    errors: dict[str, str] = {}
    phone = validate_phone(_text(payload, "phone_number"))
    if not phone.is_valid:
        errors["phone_number"] = phone.error_message or "Invalid phone number"
    _validate_avatar_field(payload, errors)
    return errors


def _validate_subscription(payload: StepPayload, draft: Mapping[str, object]) -> dict[str, str]:
    try:
        SubscriptionPlan(_text(payload, "subscription_plan"))
    except ValueError:
        return {"subscription_plan": "Choose a plan"}
    return {}


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

class WizardDefinition:
    """Static description of one wizard variant.

    Attributes
    ----------
    name:
        Identifier used in logs and audit events.
    steps:
        Ordered data steps; the last one must be ``AGREEMENT``.
    fields:
        Per step, the payload keys ``next()`` keeps.
    validators:
        Per step, the check ``next()`` runs.  Steps without one always
        pass.
    registers_account:
        ``True`` when committing creates the account.
    skip_defaults:
        Steps that ``skip()`` may pass, with the draft values applied.
    decline_notice:
        Message shown after ``decline()``.
    """

    __slots__ = (
        "name",
        "steps",
        "fields",
        "validators",
        "registers_account",
        "skip_defaults",
        "decline_notice",
    )

    def __init__(
        self,
        name: str,
        steps: tuple[WizardStep, ...],
        fields: Mapping[WizardStep, frozenset[str]],
        validators: Mapping[WizardStep, StepValidator],
        registers_account: bool,
        decline_notice: str,
        skip_defaults: Optional[Mapping[WizardStep, Mapping[str, JsonValue]]] = None,
    ) -> None:
        if not steps or steps[-1] is not WizardStep.AGREEMENT:
            raise ValueError(f"Wizard '{name}' must end with the agreement step.")
        self.name = name
        self.steps = steps
        self.fields = fields
        self.validators = validators
        self.registers_account = registers_account
        self.decline_notice = decline_notice
        self.skip_defaults = skip_defaults or {}

    @property
    def first_step(self) -> WizardStep:
        return self.steps[0]

    @property
    def last_data_step(self) -> WizardStep:
        """The step a failed commit returns to."""
        return self.steps[-2]


REGISTRATION_WIZARD = WizardDefinition(
    name="registration",
    steps=(
        WizardStep.WELCOME,
        WizardStep.CREDENTIALS,
        WizardStep.PERSONAL_DATA,
        WizardStep.PROFESSION,
        WizardStep.AGREEMENT,
    ),
    fields={
        WizardStep.CREDENTIALS: frozenset({"email", "username", "password", "confirm_password"}),
        WizardStep.PERSONAL_DATA: frozenset(
            {"first_name", "last_name", "middle_name", "phone_number", "bio", "avatar"}
        ),
        WizardStep.PROFESSION: frozenset({"profession"}),
    },
    validators={
        WizardStep.CREDENTIALS: _validate_credentials,
        WizardStep.PERSONAL_DATA: _validate_personal_data,
        WizardStep.PROFESSION: _validate_profession,
    },
    registers_account=True,
    decline_notice="Registration cancelled: the terms of use were not accepted.",
)

PROFILE_SETUP_WIZARD = WizardDefinition(
    name="profile_setup",
    steps=(
        WizardStep.PROFESSION,
        WizardStep.ADDITIONAL,
        WizardStep.SUBSCRIPTION,
        WizardStep.AGREEMENT,
    ),
    fields={
        WizardStep.PROFESSION: frozenset({"profession"}),
        WizardStep.ADDITIONAL: frozenset({"bio", "phone_number", "avatar"}),
        WizardStep.SUBSCRIPTION: frozenset({"subscription_plan"}),
    },
    validators={
        WizardStep.PROFESSION: _validate_profession,
        WizardStep.ADDITIONAL: _validate_additional,
        WizardStep.SUBSCRIPTION: _validate_subscription,
    },
    registers_account=False,
    decline_notice="Profile setup cancelled: the terms of use were not accepted.",
    skip_defaults={
        WizardStep.SUBSCRIPTION: {"subscription_plan": SubscriptionPlan.FREE.value},
    },
)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class WizardController:
    """Drives one run of a ``WizardDefinition``.

    Parameters
    ----------
    definition:
        ``REGISTRATION_WIZARD`` or ``PROFILE_SETUP_WIZARD``.
    session:
        Session manager used to register (and thereby sign in).
    profile:
        Profile service used for avatar upload and profile updates.
    store:
        User state store; profile-visible draft fields are mirrored to
        its draft so other views can preview them.
    logger:
        Structured logger instance.
    """

    def __init__(
        self,
        definition: WizardDefinition,
        session: SessionManager,
        profile: ProfileService,
        store: UserStateStore,
        logger: StructuredLogger,
    ) -> None:
        self._definition = definition
        self._session = session
        self._profile = profile
        self._store = store
        self._logger = logger
        self._lock = threading.Lock()

        self._current_step: WizardStep = definition.first_step
        self._draft: dict[str, object] = {}
        self._is_committing: bool = False
        self._error: Optional[str] = None
        self._notice: Optional[str] = None
        self._field_errors: dict[str, str] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def definition(self) -> WizardDefinition:
        return self._definition

    @property
    def current_step(self) -> WizardStep:
        return self._current_step

    @property
    def draft(self) -> dict[str, object]:
        return dict(self._draft)

    @property
    def is_committing(self) -> bool:
        return self._is_committing

    @property
    def is_completed(self) -> bool:
        return self._current_step is WizardStep.COMPLETED

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def notice(self) -> Optional[str]:
        return self._notice

    @property
    def field_errors(self) -> dict[str, str]:
        return dict(self._field_errors)

    @property
    def progress(self) -> tuple[int, int]:
        """``(position, total)`` with a 1-based position."""
        total = len(self._definition.steps)
        if self._current_step in (WizardStep.COMMITTING, WizardStep.COMPLETED):
            return total, total
        return self._definition.steps.index(self._current_step) + 1, total

    # ------------------------------------------------------------------
    # Local transitions
    # ------------------------------------------------------------------

    def next(self, payload: Optional[StepPayload] = None) -> bool:
        """Validate *payload* for the current step and advance.

        Fields this step stored on an earlier visit are validated along
        with *payload*, so after ``back()`` only changed fields need to
        be sent.

        Returns ``False`` (and fills ``field_errors``) when validation
        fails; nothing is merged in that case.
        """
        step = self._require_data_step("next")
        if step is WizardStep.AGREEMENT:
            raise InvalidTransitionError("The agreement step ends with commit() or decline().")

        values = self._clean(step, payload or {})
        allowed = self._definition.fields.get(step, frozenset())
        candidate = {
            **{key: value for key, value in self._draft.items() if key in allowed},
            **values,
        }
        validator = self._definition.validators.get(step)
        errors = validator(candidate, self._draft) if validator is not None else {}
        if errors:
            self._field_errors = errors
            self._logger.debug(
                "Wizard %s: step %s rejected fields %s",
                self._definition.name, step, sorted(errors),
            )
            return False

        self._merge(values)
        self._advance(step)
        return True

    def back(self) -> bool:
        """Return to the previous step; ``False`` on the first step."""
        step = self._require_data_step("back")
        index = self._definition.steps.index(step)
        self._field_errors = {}
        if index == 0:
            return False
        self._current_step = self._definition.steps[index - 1]
        return True

    def skip(self) -> None:
        """Pass a skippable step, applying its default values."""
        step = self._require_data_step("skip")
        defaults = self._definition.skip_defaults.get(step)
        if defaults is None:
            raise InvalidTransitionError(f"Step '{step}' cannot be skipped.")
        self._merge(dict(defaults))
        self._advance(step)

    def decline(self) -> None:
        """Refuse the terms: wipe the draft and start over."""
        if self._current_step is not WizardStep.AGREEMENT:
            raise InvalidTransitionError("Only the agreement step can be declined.")
        self._reset()
        self._notice = self._definition.decline_notice
        self._logger.info(
            "Wizard %s declined at the agreement step.", self._definition.name,
            extra={"event": "WIZARD_DECLINED", "wizard": self._definition.name},
        )

    def cancel(self) -> None:
        """Abandon the wizard from any step except while committing."""
        if self._current_step is WizardStep.COMMITTING:
            raise InvalidTransitionError("Cannot cancel while committing.")
        self._reset()

    # ------------------------------------------------------------------
    # Network-bound transitions
    # ------------------------------------------------------------------

    def check_availability(self, payload: Optional[StepPayload] = None) -> dict[str, str]:
        """Advisory "already taken" hints for email and username.

        Uses *payload* when given, else the draft.  Hints are added to
        ``field_errors`` but never block ``next()``.
        """
        if self._current_step is not WizardStep.CREDENTIALS:
            raise InvalidTransitionError("Availability is checked on the credentials step.")

        source = payload if payload is not None else self._draft
        email = _text(source, "email").strip()
        username = _text(source, "username").strip()

        hints: dict[str, str] = {}
        if email and validate_email(email) and self._session.check_email_exists(email):
            hints["email"] = "This email is already registered"
        if username and not validate_username(username) and self._session.check_username_exists(username):
            hints["username"] = "This username is already taken"

        self._field_errors = {
            **{k: v for k, v in self._field_errors.items() if k not in ("email", "username")},
            **hints,
        }
        return hints

    def commit(self) -> AuthResult:
        """Accept the terms and submit everything collected.

        The first network call (registration, or the profile update in
        profile setup) decides the outcome: on failure the wizard goes
        back to the last data step with ``error`` set and the draft
        kept.  Follow-up calls are attempted independently and only
        logged when they fail.
        """
        with self._lock:
            if self._current_step is not WizardStep.AGREEMENT or self._is_committing:
                raise InvalidTransitionError("commit() is only allowed once, from the agreement step.")
            self._current_step = WizardStep.COMMITTING
            self._is_committing = True
            self._error = None
            self._notice = None

        try:
            if self._definition.registers_account:
                result = self._commit_registration()
            else:
                result = self._commit_profile_setup()
        except Exception as exc:
            self._logger.exception(
                "Wizard %s commit crashed: %s", self._definition.name, exc,
            )
            result = AuthResult.fail(
                AuthErrorKind.UNKNOWN_SERVER_ERROR,
                "Something went wrong while saving. Please try again.",
            )

        with self._lock:
            self._is_committing = False
            if result.success:
                self._draft = {}
                self._current_step = WizardStep.COMPLETED
            else:
                self._error = result.error_message
                self._current_step = self._definition.last_data_step

        if result.success:
            self._store.clear_draft()
            user = result.user
            log_audit_event(
                logger=self._logger,
                action="WIZARD_COMMIT",
                entity_type="Profile",
                entity_id=str(user.id) if user is not None else "unknown",
                user_id=str(user.id) if user is not None else "unknown",
                details={"wizard": self._definition.name},
            )
        else:
            self._logger.warning(
                "Wizard %s commit failed: %s", self._definition.name, result.error_message,
                extra={
                    "event": "WIZARD_COMMIT_FAILED",
                    "wizard": self._definition.name,
                    "error_code": str(result.error_code),
                },
            )
        return result

    def _commit_registration(self) -> AuthResult:
        draft = self._draft
        first_name = _text(draft, "first_name")
        last_name = _text(draft, "last_name")
        profession = _text(draft, "profession") or None

        payload = RegistrationPayload(
            email=_text(draft, "email"),
            username=_text(draft, "username"),
            password=_text(draft, "password"),
            full_name=f"{first_name} {last_name}".strip() or None,
            first_name=first_name or None,
            last_name=last_name or None,
            middle_name=_text(draft, "middle_name") or None,
            bio=_text(draft, "bio") or None,
            phone_number=_text(draft, "phone_number") or None,
            occupation=profession,
            offer_accepted=True,
            offer_accepted_at=datetime.now(timezone.utc),
        )
        result = self._session.register(payload)
        if not result.success:
            return result

        self._upload_avatar_isolated()
        self._update_profile_isolated(
            ProfileUpdate(
                first_name=first_name or None,
                last_name=last_name or None,
                bio=payload.bio,
                phone_number=payload.phone_number,
                occupation=profession,
            ),
            "profile details",
        )
        return AuthResult.ok(self._store.current_user or result.user)

    def _commit_profile_setup(self) -> AuthResult:
        draft = self._draft
        self._upload_avatar_isolated()

        plan = _text(draft, "subscription_plan") or SubscriptionPlan.FREE.value
        update = ProfileUpdate(
            profession=_text(draft, "profession") or None,
            bio=_text(draft, "bio") or None,
            phone_number=_text(draft, "phone_number") or None,
            subscription_plan=SubscriptionPlan(plan),
        )
        outcome = self._profile.update_profile(update)
        if not outcome.success:
            return AuthResult.fail(
                _kind_for_status(outcome),
                outcome.error or "Failed to save your profile.",
            )
        return AuthResult.ok(outcome.data or self._store.current_user)

    def _upload_avatar_isolated(self) -> None:
        avatar = self._draft.get("avatar")
        if not isinstance(avatar, AvatarUpload):
            return
        try:
            uploaded = self._profile.upload_avatar(avatar)
            if not uploaded.success or not uploaded.data:
                self._logger.warning(
                    "Avatar upload failed: %s", uploaded.error,
                    extra={"event": "AVATAR_UPLOAD_FAILED", "wizard": self._definition.name},
                )
                return
        except Exception as exc:
            self._logger.warning(
                "Avatar upload failed: %s", exc,
                extra={"event": "AVATAR_UPLOAD_FAILED", "wizard": self._definition.name},
            )
            return
        self._update_profile_isolated(ProfileUpdate(avatar_url=uploaded.data), "avatar url")

    def _update_profile_isolated(self, update: ProfileUpdate, label: str) -> None:
        try:
            outcome = self._profile.update_profile(update)
            if not outcome.success:
                self._logger.warning(
                    "Saving %s failed: %s", label, outcome.error,
                    extra={"event": "PROFILE_UPDATE_FAILED", "wizard": self._definition.name},
                )
        except Exception as exc:
            self._logger.warning(
                "Saving %s failed: %s", label, exc,
                extra={"event": "PROFILE_UPDATE_FAILED", "wizard": self._definition.name},
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_data_step(self, action: str) -> WizardStep:
        step = self._current_step
        if step in (WizardStep.COMMITTING, WizardStep.COMPLETED):
            raise InvalidTransitionError(f"Cannot {action}() while the wizard is {step}.")
        return step

    def _clean(self, step: WizardStep, payload: StepPayload) -> dict[str, object]:
        allowed = self._definition.fields.get(step, frozenset())
        values: dict[str, object] = {}
        for key, value in payload.items():
            if key not in allowed:
                continue
            if isinstance(value, str) and key == "email":
                value = normalize_email(value)
            elif isinstance(value, str) and key not in _PRIVATE_FIELDS:
                value = sanitize_input(value)
            values[key] = value
        return values

    def _merge(self, values: Mapping[str, object]) -> None:
        self._draft.update(values)
        self._field_errors = {}
        self._error = None
        self._notice = None

        visible: dict[str, JsonValue] = {
            key: value
            for key, value in values.items()
            if key not in _PRIVATE_FIELDS and isinstance(value, (str, int, float, bool))
        }
        if visible:
            self._store.set_draft(visible)

    def _advance(self, step: WizardStep) -> None:
        index = self._definition.steps.index(step)
        self._current_step = self._definition.steps[index + 1]

    def _reset(self) -> None:
        self._draft = {}
        self._field_errors = {}
        self._error = None
        self._notice = None
        self._current_step = self._definition.first_step
        self._store.clear_draft()


def _kind_for_status(outcome: ServiceResult) -> AuthErrorKind:
    if outcome.status_code == 401:
        return AuthErrorKind.SESSION_EXPIRED
    if outcome.status_code == 503:
        return AuthErrorKind.NETWORK_ERROR
    if outcome.status_code == 400:
        return AuthErrorKind.VALIDATION_ERROR
    return AuthErrorKind.UNKNOWN_SERVER_ERROR
