"""
Client Storage Service.

Read/write access to the client's persisted key-value preferences, the
desktop counterpart of the browser's local storage.  Board/navigation
UI state (``selectedBoardId``, ``viewMode``...) and the ``theme`` /
``language`` preferences live here.

Backed by a single SQLite table::

    CREATE TABLE IF NOT EXISTS client_storage (
        key        TEXT PRIMARY KEY,
        value      TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )

Every accessor swallows and logs SQLite errors: persisted preferences
are a convenience and must never break a session operation.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Iterable, Optional

from taskdesk.logger import StructuredLogger
from taskdesk.models.session_state import SessionState

KEY_THEME: str = "theme"
KEY_LANGUAGE: str = "language"

_CREATE_TABLE_SQL: str = """
    CREATE TABLE IF NOT EXISTS client_storage (
        key        TEXT PRIMARY KEY,
        value      TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""


class ClientStorage:
    """Persistent client preferences in a local SQLite file.

    Parameters
    ----------
    path:
        SQLite database path; ``":memory:"`` keeps everything in RAM.
    logger:
        Structured logger instance.
    """

    def __init__(self, path: str, logger: StructuredLogger) -> None:
        self._logger = logger
        self._write_lock = threading.Lock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._write_lock:
            self._conn.execute(_CREATE_TABLE_SQL)
            self._conn.commit()

    # ------------------------------------------------------------------
    # Generic key-value access
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        """Read a value by key.  Returns ``None`` if not found."""
        try:
            row = self._conn.execute(
                "SELECT value FROM client_storage WHERE key = ?",
                (key,),
            ).fetchone()
            return row["value"] if row is not None else None
        except sqlite3.Error as exc:
            self._logger.warning("Failed to read client_storage[%s]: %s", key, exc)
            return None

    def set(self, key: str, value: str) -> bool:
        """Upsert a value.  Returns ``True`` on success."""
        try:
            with self._write_lock:
                self._conn.execute(
                    """
                    INSERT INTO client_storage (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value      = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
                self._conn.commit()
            self._logger.debug("client_storage[%s] updated.", key)
            return True
        except sqlite3.Error as exc:
            self._logger.error("Failed to write client_storage[%s]: %s", key, exc)
            return False

    def remove_keys(self, keys: Iterable[str]) -> bool:
        """Delete every key in *keys*; missing keys are ignored."""
        key_list = list(keys)
        if not key_list:
            return True
        placeholders = ", ".join("?" for _ in key_list)
        try:
            with self._write_lock:
                self._conn.execute(
                    f"DELETE FROM client_storage WHERE key IN ({placeholders})",
                    key_list,
                )
                self._conn.commit()
            return True
        except sqlite3.Error as exc:
            self._logger.error("Failed to clear client_storage keys %s: %s", key_list, exc)
            return False

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Typed convenience: display preferences
    # ------------------------------------------------------------------

    def get_theme(self) -> Optional[str]:
        return self.get(KEY_THEME)

    def set_theme(self, theme: str) -> bool:
        return self.set(KEY_THEME, theme)

    def get_language(self) -> Optional[str]:
        return self.get(KEY_LANGUAGE)

    def set_language(self, language: str) -> bool:
        return self.set(KEY_LANGUAGE, language)


class PreferenceSync:
    """Store listener that mirrors the user's theme/language to storage.

    Attach with ``store.subscribe(PreferenceSync(storage))``.  Values
    are written only when they change, and nothing is written while
    signed out so the last preferences survive a logout.
    """

    def __init__(self, storage: ClientStorage) -> None:
        self._storage = storage
        self._last: tuple[Optional[str], Optional[str]] = (
            storage.get_theme(),
            storage.get_language(),
        )

    def __call__(self, state: SessionState) -> None:
        user = state.current_user
        if user is None:
            return
        theme, language = str(user.theme), str(user.language)
        last_theme, last_language = self._last
        if theme != last_theme:
            self._storage.set_theme(theme)
        if language != last_language:
            self._storage.set_language(language)
        self._last = (theme, language)
