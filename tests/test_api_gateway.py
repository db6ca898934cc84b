"""Tests for ApiGateway against an httpx.MockTransport."""
from collections.abc import Callable, Iterator

import httpx
import pytest

from taskdesk.auth import TokenStore
from taskdesk.logger import StructuredLogger
from taskdesk.models.auth_models import AvatarUpload
from taskdesk.services.api_gateway import ApiGateway, NetworkError

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def seen() -> list[httpx.Request]:
    return []


@pytest.fixture
def make_gateway(
    tokens: TokenStore, logger: StructuredLogger, seen: list[httpx.Request],
) -> Iterator[Callable[[Handler], ApiGateway]]:
    created: list[ApiGateway] = []

    def factory(handler: Handler) -> ApiGateway:
        def recording(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        gateway = ApiGateway(
            base_url="http://api.test/api/v1",
            tokens=tokens,
            logger=logger,
            timeout=1.0,
            transport=httpx.MockTransport(recording),
        )
        created.append(gateway)
        return gateway

    yield factory
    for gateway in created:
        gateway.close()


class TestEnvelope:
    """Normalization of HTTP responses into ApiResponse."""

    def test__plain_2xx_body__becomes_data(self, make_gateway) -> None:
        gateway = make_gateway(lambda r: httpx.Response(200, json={"id": 7}))

        response = gateway.get("/auth/me")

        assert response.success is True
        assert response.data == {"id": 7}
        assert response.status_code == 200

    def test__enveloped_2xx_body__is_unwrapped(self, make_gateway) -> None:
        body = {"success": True, "data": {"exists": True}, "message": "ok"}
        gateway = make_gateway(lambda r: httpx.Response(200, json=body))

        response = gateway.post("/auth/check-email", {"email": "a@b.co"})

        assert response.success is True
        assert response.data == {"exists": True}
        assert response.message == "ok"

    def test__error_detail_string(self, make_gateway) -> None:
        gateway = make_gateway(
            lambda r: httpx.Response(401, json={"detail": "Incorrect email or password"})
        )

        response = gateway.post("/auth/login-email", {"email": "a@b.co", "password": "x"})

        assert response.success is False
        assert response.status_code == 401
        assert response.message == "Incorrect email or password"

    def test__error_detail_list__messages_joined(self, make_gateway) -> None:
        body = {"detail": [{"msg": "email invalid"}, {"msg": "password short"}]}
        gateway = make_gateway(lambda r: httpx.Response(422, json=body))

        response = gateway.post("/auth/register", {})

        assert response.message == "email invalid, password short"
        assert response.error == body

    def test__error_member_preferred(self, make_gateway) -> None:
        body = {"message": "Exists", "error": {"type": "USER_EXISTS"}}
        gateway = make_gateway(lambda r: httpx.Response(409, json=body))

        response = gateway.post("/auth/register", {})

        assert response.message == "Exists"
        assert response.error == {"type": "USER_EXISTS"}

    def test__error_without_message__uses_status(self, make_gateway) -> None:
        gateway = make_gateway(lambda r: httpx.Response(500, json={}))
        assert gateway.get("/boards/").message == "HTTP error! status: 500"

    def test__non_json_error__uses_reason_phrase(self, make_gateway) -> None:
        gateway = make_gateway(lambda r: httpx.Response(502, text="<html>bad</html>"))

        response = gateway.get("/boards/")

        assert response.success is False
        assert response.message == "Bad Gateway"


class TestRequests:
    """Outbound request shape."""

    def test__bearer_header_follows_token_store(
        self, make_gateway, tokens: TokenStore, seen: list[httpx.Request],
    ) -> None:
        gateway = make_gateway(lambda r: httpx.Response(200, json={}))

        gateway.get("/auth/me")
        tokens.set_token("tok-9")
        gateway.get("/auth/me")

        assert "authorization" not in seen[0].headers
        assert seen[1].headers["authorization"] == "Bearer tok-9"

    def test__path_joined_to_base_url(self, make_gateway, seen: list[httpx.Request]) -> None:
        gateway = make_gateway(lambda r: httpx.Response(200, json=[]))

        gateway.get("/boards/")

        assert str(seen[0].url) == "http://api.test/api/v1/boards/"

    def test__upload__sends_multipart(self, make_gateway, seen: list[httpx.Request]) -> None:
        gateway = make_gateway(lambda r: httpx.Response(200, json={"avatar_url": "/a.png"}))

        gateway.upload("/users/avatar", "avatar", AvatarUpload(filename="a.png", content=b"png"))

        request = seen[0]
        assert request.method == "POST"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="avatar"' in request.read()


class TestTransportFailures:
    """Transport errors raise NetworkError instead of returning envelopes."""

    def test__timeout__raises_request_timeout(self, make_gateway) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(NetworkError, match="Request timeout"):
            gateway.get("/auth/me")

    def test__connection_refused__raises_network_error(self, make_gateway) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(NetworkError):
            gateway.post("/auth/login-email", {})

    @pytest.mark.parametrize(
        "error",
        [httpx.DecodingError, httpx.TooManyRedirects],
        ids=["decoding", "redirects"],
    )
    def test__non_transport_request_error__raises_network_error(
        self, make_gateway, error: type[httpx.RequestError],
    ) -> None:
        """Every httpx.RequestError surfaces as NetworkError, not a raw httpx type."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise error("bad body", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(NetworkError, match="bad body"):
            gateway.get("/auth/me")
