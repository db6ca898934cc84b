"""Tests for ClientStorage and the PreferenceSync listener."""
from taskdesk.logger import StructuredLogger
from taskdesk.models.user import UserRecord
from taskdesk.services.client_storage import ClientStorage, PreferenceSync
from taskdesk.user_store import UserStateStore


class TestClientStorage:
    """Key-value access on an in-memory database."""

    def test__get__missing_key_returns_none(self, storage: ClientStorage) -> None:
        assert storage.get("selectedBoardId") is None

    def test__set__upserts(self, storage: ClientStorage) -> None:
        assert storage.set("viewMode", "list") is True
        assert storage.set("viewMode", "kanban") is True
        assert storage.get("viewMode") == "kanban"

    def test__remove_keys__ignores_missing(self, storage: ClientStorage) -> None:
        storage.set("selectedBoardId", "b1")
        storage.set("theme", "dark")

        assert storage.remove_keys(["selectedBoardId", "boardFilters"]) is True

        assert storage.get("selectedBoardId") is None
        assert storage.get("theme") == "dark"

    def test__remove_keys__empty_is_noop(self, storage: ClientStorage) -> None:
        assert storage.remove_keys([]) is True

    def test__theme_and_language_helpers(self, storage: ClientStorage) -> None:
        storage.set_theme("auto")
        storage.set_language("en")
        assert storage.get_theme() == "auto"
        assert storage.get_language() == "en"

    def test__set__after_close_returns_false(self, logger: StructuredLogger) -> None:
        closed = ClientStorage(path=":memory:", logger=logger)
        closed.close()
        assert closed.set("theme", "dark") is False
        assert closed.get("theme") is None


class TestPreferenceSync:
    """Store listener mirroring theme/language."""

    def test__preferences_written_on_sign_in(
        self, store: UserStateStore, storage: ClientStorage,
    ) -> None:
        store.subscribe(PreferenceSync(storage))

        store.set_current_user(
            UserRecord(id=1, email="a@b.co", username="a", theme="dark", language="en")
        )

        assert storage.get_theme() == "dark"
        assert storage.get_language() == "en"

    def test__sign_out_keeps_last_preferences(
        self, store: UserStateStore, storage: ClientStorage,
    ) -> None:
        store.subscribe(PreferenceSync(storage))
        store.set_current_user(UserRecord(id=1, email="a@b.co", username="a", theme="dark"))

        store.clear_current_user()

        assert storage.get_theme() == "dark"

    def test__toggle_theme__is_persisted(
        self, store: UserStateStore, storage: ClientStorage,
    ) -> None:
        store.subscribe(PreferenceSync(storage))
        store.set_current_user(UserRecord(id=1, email="a@b.co", username="a", theme="light"))

        store.toggle_theme()

        assert storage.get_theme() == "dark"
