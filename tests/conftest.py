"""Shared fixtures: an in-memory API double and fully wired services."""
from collections.abc import Callable, Iterator
from typing import Any, Optional, Union

import pytest

from taskdesk.auth import TokenStore
from taskdesk.config import AppConfig
from taskdesk.logger import StructuredLogger
from taskdesk.models.auth_models import AvatarUpload
from taskdesk.models.service_models import ApiResponse
from taskdesk.services.board_cache import BoardCache
from taskdesk.services.client_storage import ClientStorage
from taskdesk.services.profile_service import ProfileService
from taskdesk.services.session_manager import SessionManager
from taskdesk.user_store import UserStateStore

Reply = Union[ApiResponse, BaseException, Callable[[Any], ApiResponse]]


def ok(data: Any = None, status_code: int = 200) -> ApiResponse:
    """Successful envelope carrying ``data``."""
    return ApiResponse(success=True, data=data, message="Success", status_code=status_code)


def failure(status_code: int, message: str, error: Any = None) -> ApiResponse:
    """Failed envelope as the gateway would build it."""
    return ApiResponse(success=False, message=message, error=error, status_code=status_code)


class FakeGateway:
    """Records every call and answers from per-route reply queues.

    The last reply queued for a route is repeated once the others are
    used up.  A reply may be an ``ApiResponse``, an exception to raise,
    or a callable receiving the request body.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.calls: list[tuple[str, str, Any]] = []

    def reply(self, method: str, path: str, *replies: Reply) -> None:
        self.routes.setdefault((method, path), []).extend(replies)

    def paths(self, method: Optional[str] = None) -> list[str]:
        return [path for m, path, _ in self.calls if method is None or m == method]

    def body_of(self, method: str, path: str) -> Any:
        for m, p, body in reversed(self.calls):
            if (m, p) == (method, path):
                return body
        raise AssertionError(f"{method} {path} was never called")

    def get(self, path: str, params: Optional[dict[str, str]] = None) -> ApiResponse:
        return self._dispatch("GET", path, params)

    def post(self, path: str, body: Any = None) -> ApiResponse:
        return self._dispatch("POST", path, body)

    def put(self, path: str, body: Any = None) -> ApiResponse:
        return self._dispatch("PUT", path, body)

    def delete(self, path: str) -> ApiResponse:
        return self._dispatch("DELETE", path, None)

    def upload(self, path: str, field: str, upload: AvatarUpload) -> ApiResponse:
        return self._dispatch("POST", path, {field: upload})

    def close(self) -> None:
        pass

    def _dispatch(self, method: str, path: str, body: Any) -> ApiResponse:
        self.calls.append((method, path, body))
        queue = self.routes.get((method, path))
        if not queue:
            return failure(404, f"No route for {method} {path}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(body)
        return reply


def me_payload(user_id: int = 7, email: str = "ann@example.com", username: str = "ann") -> dict[str, Any]:
    """A camelCase ``/auth/me`` body, as older backends send it."""
    return {
        "id": user_id,
        "email": email,
        "username": username,
        "firstName": "Ann",
        "lastName": "Lee",
        "theme": "dark",
        "language": "en",
        "isActive": True,
        "unreadNotificationsCount": 2,
    }


def prime_login(
    gateway: FakeGateway,
    token: str = "tok-1",
    me: Optional[Reply] = None,
    boards: Optional[Reply] = None,
) -> None:
    """Queue the replies of a successful sign-in round trip."""
    gateway.reply("POST", "/auth/login-email", ok({"access_token": token, "token_type": "bearer"}))
    gateway.reply("GET", "/auth/me", me if me is not None else ok(me_payload()))
    gateway.reply("GET", "/boards/", boards if boards is not None else ok([{"id": "b1", "title": "Inbox"}]))


@pytest.fixture(scope="session")
def logger(tmp_path_factory: pytest.TempPathFactory) -> StructuredLogger:
    log_file = tmp_path_factory.mktemp("logs") / "taskdesk-tests.log"
    return StructuredLogger(name="taskdesk.tests", log_file=str(log_file))


@pytest.fixture
def config(tmp_path: Any) -> AppConfig:
    return AppConfig(
        API_BASE_URL="http://api.test/api/v1",
        STORAGE_PATH=":memory:",
        LOG_FILE=str(tmp_path / "taskdesk.log"),
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def tokens() -> TokenStore:
    return TokenStore()


@pytest.fixture
def store(logger: StructuredLogger) -> UserStateStore:
    return UserStateStore(logger=logger)


@pytest.fixture
def storage(logger: StructuredLogger) -> Iterator[ClientStorage]:
    client_storage = ClientStorage(path=":memory:", logger=logger)
    yield client_storage
    client_storage.close()


@pytest.fixture
def board_cache(gateway: FakeGateway, logger: StructuredLogger) -> BoardCache:
    return BoardCache(gateway=gateway, logger=logger)  # type: ignore[arg-type]


@pytest.fixture
def session(
    gateway: FakeGateway,
    tokens: TokenStore,
    store: UserStateStore,
    storage: ClientStorage,
    board_cache: BoardCache,
    config: AppConfig,
    logger: StructuredLogger,
) -> SessionManager:
    return SessionManager(
        gateway=gateway,  # type: ignore[arg-type]
        tokens=tokens,
        store=store,
        storage=storage,
        board_cache=board_cache,
        config=config,
        logger=logger,
    )


@pytest.fixture
def profile(
    gateway: FakeGateway,
    tokens: TokenStore,
    store: UserStateStore,
    storage: ClientStorage,
    logger: StructuredLogger,
) -> ProfileService:
    return ProfileService(
        gateway=gateway,  # type: ignore[arg-type]
        tokens=tokens,
        store=store,
        storage=storage,
        logger=logger,
    )
