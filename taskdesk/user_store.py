"""
User State Store.

Single source of truth for the signed-in user: the committed
``UserRecord``, a mutable draft used by in-progress forms, and the
loading / error flags.  Every mutation goes through a named transition
executed under one re-entrant lock, so no reader can observe a
half-applied change.

The store also owns the *session generation*: a counter advanced by
every session-mutating operation (login, register, logout, cancel).
Network-bound callers remember the generation they started under and
commit their result through ``apply_if_current``; a result that comes
back after a newer operation began is discarded instead of resurrecting
a session the user already left.

Usage::

    store = UserStateStore(logger=get_logger("store"))
    unsubscribe = store.subscribe(lambda state: print(state.is_authenticated))
    store.set_current_user(user)
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from pydantic import JsonValue

from taskdesk.logger import StructuredLogger
from taskdesk.models.enums import Language, Theme
from taskdesk.models.session_state import SessionState
from taskdesk.models.user import IMMUTABLE_FIELDS, UserRecord
from taskdesk.utils.string_helpers import normalize_keys

StateListener = Callable[[SessionState], None]

_THEME_CYCLE: tuple[Theme, ...] = (Theme.LIGHT, Theme.DARK, Theme.AUTO)


class UserStateStore:
    """Lock-protected container for ``SessionState``.

    Parameters
    ----------
    logger:
        Structured logger; listener failures are reported here.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._lock: threading.RLock = threading.RLock()
        self._current_user: Optional[UserRecord] = None
        self._is_loading: bool = False
        self._error: Optional[str] = None
        self._draft: dict[str, JsonValue] = {}
        self._generation: int = 0
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionState:
        """Return an immutable copy of the current state."""
        with self._lock:
            return SessionState(
                current_user=self._current_user,
                is_loading=self._is_loading,
                error=self._error,
                draft=dict(self._draft),
                generation=self._generation,
            )

    @property
    def current_user(self) -> Optional[UserRecord]:
        with self._lock:
            return self._current_user

    @property
    def is_authenticated(self) -> bool:
        with self._lock:
            return self._current_user is not None

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._is_loading

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def draft(self) -> dict[str, JsonValue]:
        """A copy of the draft; mutate it through ``set_draft`` only."""
        with self._lock:
            return dict(self._draft)

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    # ------------------------------------------------------------------
    # Session transitions
    # ------------------------------------------------------------------

    def set_current_user(self, user: UserRecord) -> None:
        """Commit *user* as the authenticated user."""
        with self._lock:
            self._current_user = user
            self._error = None
            self._is_loading = False
        self._notify()

    def clear_current_user(self) -> None:
        """End the session: drop the user, the flags and the draft.

        Also advances the generation so that any login still in flight
        cannot commit afterwards.
        """
        with self._lock:
            self._current_user = None
            self._error = None
            self._is_loading = False
            self._draft = {}
            self._generation += 1
        self._notify()

    def update_profile(self, partial: Mapping[str, JsonValue]) -> bool:
        """Shallow-merge *partial* into the current user.

        Keys may be camelCase or snake_case.  ``updated_at`` is refreshed.

        Returns
        -------
        bool
            ``False`` when nobody is signed in (nothing changes).

        Raises
        ------
        ValueError
            If *partial* tries to change ``id``, ``email`` or ``username``.
        """
        changes = normalize_keys(dict(partial))
        with self._lock:
            current = self._current_user
            if current is None:
                return False

            for field in IMMUTABLE_FIELDS & changes.keys():
                if changes[field] != getattr(current, field):
                    raise ValueError(f"'{field}' cannot be changed once set.")

            merged = current.model_dump()
            merged.update(changes)
            merged["updated_at"] = datetime.now(timezone.utc)
            self._current_user = UserRecord.model_validate(merged)
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Draft
    # ------------------------------------------------------------------

    def set_draft(self, partial: Mapping[str, JsonValue]) -> None:
        """Merge *partial* into the draft; absent keys keep their values."""
        with self._lock:
            self._draft = {**self._draft, **partial}
        self._notify()

    def clear_draft(self) -> None:
        with self._lock:
            self._draft = {}
        self._notify()

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        with self._lock:
            self._is_loading = loading
        self._notify()

    def set_error(self, message: Optional[str]) -> None:
        with self._lock:
            self._error = message
        self._notify()

    def clear_error(self) -> None:
        self.set_error(None)

    # ------------------------------------------------------------------
    # Operation generation guard
    # ------------------------------------------------------------------

    def begin_operation(self) -> int:
        """Start a session-mutating operation and return its generation.

        Sets loading and clears the previous error.  Any operation that
        started earlier becomes stale.
        """
        with self._lock:
            self._generation += 1
            self._is_loading = True
            self._error = None
            generation = self._generation
        self._notify()
        return generation

    def advance_generation(self) -> int:
        """Invalidate in-flight operations without touching the session."""
        with self._lock:
            self._generation += 1
            self._is_loading = False
            generation = self._generation
        self._notify()
        return generation

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def apply_if_current(self, generation: int, apply: Callable[[], None]) -> bool:
        """Run *apply* under the store lock only if *generation* is current.

        Returns ``True`` when *apply* ran.  Because the lock is held for
        the whole check-and-apply, a concurrent logout either happens
        before (and *apply* is skipped) or after (and clears its effect).
        """
        with self._lock:
            if generation != self._generation:
                return False
            apply()
            return True

    def finish_operation(self, generation: int) -> None:
        """Clear loading, unless a newer operation now owns the flag."""
        with self._lock:
            if generation != self._generation or not self._is_loading:
                return
            self._is_loading = False
        self._notify()

    # ------------------------------------------------------------------
    # Per-user helpers
    # ------------------------------------------------------------------

    def set_online_status(self, online: bool) -> bool:
        return self.update_profile(
            {"is_online": online, "last_seen": datetime.now(timezone.utc).isoformat()}
        )

    def add_friend(self, friend_id: str) -> bool:
        return self._add_reference("friends", friend_id)

    def remove_friend(self, friend_id: str) -> bool:
        return self._remove_reference("friends", friend_id)

    def add_team(self, team_id: str) -> bool:
        return self._add_reference("teams", team_id)

    def remove_team(self, team_id: str) -> bool:
        return self._remove_reference("teams", team_id)

    def set_unread_notifications_count(self, count: int) -> bool:
        return self.update_profile({"unread_notifications_count": max(0, count)})

    def toggle_theme(self) -> Optional[Theme]:
        """Cycle light -> dark -> auto -> light; ``None`` when signed out."""
        with self._lock:
            user = self._current_user
            if user is None:
                return None
            index = _THEME_CYCLE.index(user.theme)
            theme = _THEME_CYCLE[(index + 1) % len(_THEME_CYCLE)]
            self.update_profile({"theme": theme.value})
            return theme

    def toggle_language(self) -> Optional[Language]:
        with self._lock:
            user = self._current_user
            if user is None:
                return None
            language = Language.RU if user.language == Language.EN else Language.EN
            self.update_profile({"language": language.value})
            return language

    def _add_reference(self, field: str, ref_id: str) -> bool:
        with self._lock:
            user = self._current_user
            if user is None:
                return False
            refs: list[str] = getattr(user, field)
            if ref_id in refs:
                return False
            return self.update_profile({field: [*refs, ref_id]})

    def _remove_reference(self, field: str, ref_id: str) -> bool:
        with self._lock:
            user = self._current_user
            if user is None:
                return False
            refs: list[str] = getattr(user, field)
            if ref_id not in refs:
                return False
            return self.update_profile({field: [r for r in refs if r != ref_id]})

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for every future transition.

        Returns a callable that removes the listener again.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.snapshot()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception as exc:
                self._logger.warning(
                    "State listener %r failed: %s", listener, exc,
                )
