"""
Application Configuration.

Pydantic Settings model for the TaskDesk client core.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import ClassVar, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings

from taskdesk.models.enums import Language, Theme


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Backend API ---
    API_BASE_URL: str = "http://localhost:8000/api/v1"
    API_TIMEOUT_S: float = 10.0

    # --- Client storage (local preferences, board/navigation keys) ---
    STORAGE_PATH: str = "taskdesk_client.db"

    # --- Logging ---
    LOG_FILE: str = "taskdesk.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    # --- Defaults applied to synthesized / new user records ---
    DEFAULT_THEME: Theme = Theme.LIGHT
    DEFAULT_LANGUAGE: Language = Language.RU

    # --- Avatar upload ---
    AVATAR_MAX_BYTES: int = 5 * 1024 * 1024

    # Keys owned by the board UI that must not survive a change of user.
    # ClassVar so pydantic-settings does not try to load it from the env.
    BOARD_STATE_KEYS: ClassVar[tuple[str, ...]] = (
        "selectedBoardId",
        "viewMode",
        "activeNavItem",
        "todoViewMode",
        "todoActiveNavItem",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when the API endpoint looks unconfigured.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so the operator gets a hint that the client talks to localhost.
        """
        _log = logging.getLogger("taskdesk.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if self.API_TIMEOUT_S <= 0:
            raise ValueError("API_TIMEOUT_S must be positive")

        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path takes no lock.
    Prefer constructor injection of ``AppConfig`` in new code; this
    factory exists for the logger, which is created before any
    container is wired.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
