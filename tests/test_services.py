"""End-to-end wiring test: create_services over an httpx.MockTransport."""
import json
from collections.abc import Iterator

import httpx
import pytest

from taskdesk.config import AppConfig
from taskdesk.models.auth_models import LoginCredentials
from taskdesk.services import ServiceContainer, create_services, create_wizard, shutdown_services
from taskdesk.services.wizard import PROFILE_SETUP_WIZARD
from tests.conftest import me_payload


def backend(request: httpx.Request) -> httpx.Response:
    """A tiny stand-in for the REST backend."""
    path = request.url.path.removeprefix("/api/v1")
    authorized = request.headers.get("authorization") == "Bearer tok-e2e"

    if (request.method, path) == ("POST", "/auth/login-email"):
        body = json.loads(request.content)
        if body["password"] != "Secret1!":
            return httpx.Response(401, json={"detail": "Incorrect email or password"})
        return httpx.Response(200, json={"access_token": "tok-e2e", "token_type": "bearer"})
    if not authorized:
        return httpx.Response(401, json={"detail": "Not authenticated"})
    if (request.method, path) == ("GET", "/auth/me"):
        return httpx.Response(200, json=me_payload())
    if (request.method, path) == ("GET", "/boards/"):
        return httpx.Response(200, json=[{"id": "b1"}, {"id": "b2"}])
    if (request.method, path) == ("PUT", "/users/profile"):
        return httpx.Response(200, json={"success": True, "data": None, "message": "Saved"})
    return httpx.Response(404, json={"detail": "Not Found"})


@pytest.fixture
def services(config: AppConfig) -> Iterator[ServiceContainer]:
    container = create_services(config, transport=httpx.MockTransport(backend))
    yield container
    shutdown_services(container)


class TestCreateServices:
    """The composition root wires a working session."""

    def test__login_round_trip(self, services: ServiceContainer) -> None:
        result = services["session_manager"].login(
            LoginCredentials(email="ann@example.com", password="Secret1!"),
        )

        assert result.success is True
        assert services["token_store"].get_token() == "tok-e2e"
        assert services["user_store"].is_authenticated is True
        assert len(services["board_cache"].boards) == 2
        assert services["client_storage"].get_theme() == "dark"
        assert services["client_storage"].get_language() == "en"

    def test__wrong_password(self, services: ServiceContainer) -> None:
        result = services["session_manager"].login(
            LoginCredentials(email="ann@example.com", password="nope"),
        )

        assert result.success is False
        assert services["token_store"].has_token is False

    def test__profile_setup_after_login(self, services: ServiceContainer) -> None:
        services["session_manager"].login(
            LoginCredentials(email="ann@example.com", password="Secret1!"),
        )
        wizard = create_wizard(services, PROFILE_SETUP_WIZARD)
        wizard.next({"profession": "qa-engineer"})
        wizard.next({})
        wizard.skip()

        assert wizard.commit().success is True
        user = services["user_store"].current_user
        assert user is not None and user.profession == "qa-engineer"

    def test__logout_leaves_requests_anonymous(self, services: ServiceContainer) -> None:
        services["session_manager"].login(
            LoginCredentials(email="ann@example.com", password="Secret1!"),
        )
        services["session_manager"].logout()

        response = services["api_gateway"].get("/auth/me")

        assert response.status_code == 401

    def test__undecodable_profile_falls_back(self, config: AppConfig) -> None:
        """A /auth/me body httpx cannot decode still yields a fallback sign-in."""
        def garbled_me(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/auth/me"):
                raise httpx.DecodingError("malformed gzip body", request=request)
            return backend(request)

        container = create_services(config, transport=httpx.MockTransport(garbled_me))
        try:
            result = container["session_manager"].login(
                LoginCredentials(email="ann@example.com", password="Secret1!"),
            )

            assert result.success is True
            assert result.user is not None and result.user.id == 0
            assert container["token_store"].get_token() == "tok-e2e"
            assert container["user_store"].is_authenticated is True
        finally:
            shutdown_services(container)
