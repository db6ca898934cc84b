"""
TaskDesk Client Entry Point.

Bootstraps the dependency graph via constructor injection and runs a
small interactive console that exercises the session and onboarding
services.  Every subsystem is wired here, with no module-level globals.

Usage::

    python main.py
    taskdesk            # installed console script
"""

from __future__ import annotations

import atexit
import getpass
import sys
import traceback
from typing import Callable, Optional

from taskdesk.config import get_config
from taskdesk.logger import StructuredLogger, get_logger
from taskdesk.models.auth_models import AuthResult, LoginCredentials
from taskdesk.models.enums import WizardStep
from taskdesk.services import (
    ServiceContainer,
    create_services,
    create_wizard,
    shutdown_services,
)
from taskdesk.services.wizard import (
    PROFESSIONS,
    PROFILE_SETUP_WIZARD,
    REGISTRATION_WIZARD,
    WizardController,
)

# Prompts per wizard step: (field, label, secret)
_STEP_PROMPTS: dict[WizardStep, tuple[tuple[str, str, bool], ...]] = {
    WizardStep.CREDENTIALS: (
        ("email", "Email", False),
        ("username", "Username", False),
        ("password", "Password", True),
        ("confirm_password", "Repeat password", True),
    ),
    WizardStep.PERSONAL_DATA: (
        ("first_name", "First name", False),
        ("last_name", "Last name", False),
        ("phone_number", "Phone (optional)", False),
        ("bio", "About you (optional)", False),
    ),
    WizardStep.PROFESSION: (("profession", "Profession id", False),),
    WizardStep.ADDITIONAL: (
        ("bio", "About you (optional)", False),
        ("phone_number", "Phone (optional)", False),
    ),
    WizardStep.SUBSCRIPTION: (("subscription_plan", "Plan (basic/pro/enterprise, blank to skip)", False),),
}


def _print_result(result: AuthResult) -> None:
    if result.success:
        user = result.user
        print(f"OK. Signed in as {user.display_name if user else 'unknown'}.")
    else:
        print(f"Failed ({result.error_code}): {result.error_message}")


def _prompt_step(step: WizardStep) -> dict[str, object]:
    values: dict[str, object] = {}
    for field, label, secret in _STEP_PROMPTS.get(step, ()):
        values[field] = getpass.getpass(f"{label}: ") if secret else input(f"{label}: ")
    return values


def _run_wizard(wizard: WizardController) -> Optional[AuthResult]:
    """Walk *wizard* on the console until it completes or is abandoned."""
    while not wizard.is_completed:
        step = wizard.current_step
        position, total = wizard.progress
        print(f"\n[{position}/{total}] {step}")

        if step is WizardStep.PROFESSION:
            print(", ".join(pid for pid, _ in PROFESSIONS))
        if step is WizardStep.AGREEMENT:
            answer = input("Accept the terms of use? [y/n/back]: ").strip().lower()
            if answer == "back":
                wizard.back()
                continue
            if answer != "y":
                wizard.decline()
                print(wizard.notice)
                return None
            result = wizard.commit()
            if not result.success:
                print(f"Error: {wizard.error}")
                continue
            return result

        values = _prompt_step(step)
        if step is WizardStep.CREDENTIALS:
            for field, hint in wizard.check_availability(values).items():
                print(f"  {field}: {hint}")
        if step is WizardStep.SUBSCRIPTION and not values.get("subscription_plan"):
            wizard.skip()
            continue
        if not wizard.next(values):
            for field, message in wizard.field_errors.items():
                print(f"  {field}: {message}")
            continue
    return None


def _command_table(services: ServiceContainer) -> dict[str, Callable[[], None]]:
    session = services["session_manager"]
    store = services["user_store"]

    def login() -> None:
        email = input("Email: ")
        password = getpass.getpass("Password: ")
        _print_result(session.login(LoginCredentials(email=email, password=password)))

    def register() -> None:
        result = _run_wizard(create_wizard(services, REGISTRATION_WIZARD))
        if result is not None:
            _print_result(result)

    def setup_profile() -> None:
        result = _run_wizard(create_wizard(services, PROFILE_SETUP_WIZARD))
        if result is not None:
            _print_result(result)

    def whoami() -> None:
        user = store.current_user
        print(user.model_dump_json(indent=2, exclude={"access_token"}) if user else "Not signed in.")

    def logout() -> None:
        session.logout()
        print("Signed out.")

    return {
        "login": login,
        "register": register,
        "profile": setup_profile,
        "whoami": whoami,
        "logout": logout,
    }


def main() -> None:
    """Application entry point: wire dependencies and run the console."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting TaskDesk client...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Service Container (single composition root)
    # ------------------------------------------------------------------
    services = create_services(config=config)
    atexit.register(shutdown_services, services)

    # ------------------------------------------------------------------
    # 3. Command loop (blocks until "quit" or EOF)
    # ------------------------------------------------------------------
    commands = _command_table(services)
    print(f"TaskDesk client ({config.API_BASE_URL}). Commands: {', '.join(commands)}, quit")
    while True:
        try:
            line = input("> ").strip().lower()
        except EOFError:
            break
        if line in ("quit", "exit"):
            break
        command = commands.get(line)
        if command is None:
            print("Unknown command.")
            continue
        command()

    atexit.unregister(shutdown_services)
    shutdown_services(services)
    logger.info("TaskDesk client shut down.")


def run() -> None:
    """Console-script wrapper with fatal-error reporting."""
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")
        sys.exit(1)


if __name__ == "__main__":
    run()
