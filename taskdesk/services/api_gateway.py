"""
API Gateway.

Thin synchronous adapter over ``httpx.Client`` that talks to the
TaskDesk REST backend and folds every HTTP exchange into the uniform
``ApiResponse`` envelope:

- a 2xx body carrying a ``success`` key is unwrapped as-is;
- any other 2xx body becomes ``data``;
- a non-2xx body yields ``success=False`` with ``message`` taken from
  ``detail`` / ``message`` (or ``HTTP error! status: N``) and ``error``
  taken from the body's ``error`` member or the whole body.

Transport failures never become envelopes: they raise ``NetworkError``
so callers can tell "the server said no" from "nobody answered".

Every request carries the current bearer token from the injected
``TokenStore`` and the configured timeout.
"""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import JsonValue

from taskdesk.auth import TokenStore
from taskdesk.logger import StructuredLogger
from taskdesk.models.auth_models import AvatarUpload
from taskdesk.models.service_models import ApiResponse


class NetworkError(ConnectionError):
    """Raised when no usable HTTP response was received (DNS, refused, timeout, bad body)."""


class ApiGateway:
    """HTTP client for the TaskDesk backend.

    Parameters
    ----------
    base_url:
        API root, e.g. ``http://localhost:8000/api/v1``.
    tokens:
        Token store consulted on every request.
    logger:
        Structured logger for transport diagnostics.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport; tests pass ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenStore,
        logger: StructuredLogger,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._tokens: TokenStore = tokens
        self._logger: StructuredLogger = logger
        self._client: httpx.Client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def get(self, path: str, params: Optional[dict[str, str]] = None) -> ApiResponse:
        return self._request("GET", path, params=params)

    def post(self, path: str, body: Optional[dict[str, JsonValue]] = None) -> ApiResponse:
        return self._request("POST", path, json=body)

    def put(self, path: str, body: Optional[dict[str, JsonValue]] = None) -> ApiResponse:
        return self._request("PUT", path, json=body)

    def delete(self, path: str) -> ApiResponse:
        return self._request("DELETE", path)

    def upload(self, path: str, field: str, upload: AvatarUpload) -> ApiResponse:
        """POST *upload* as ``multipart/form-data`` under *field*."""
        files = {field: (upload.filename, upload.content, upload.content_type)}
        return self._request("POST", path, files=files)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ApiGateway":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: object) -> ApiResponse:
        headers = {"Accept": "application/json", **self._tokens.authorization_header()}
        try:
            response = self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            self._logger.warning(
                "%s %s timed out: %s", method, path, exc,
                extra={"event": "HTTP_TIMEOUT"},
            )
            raise NetworkError("Request timeout") from exc
        except httpx.RequestError as exc:
            self._logger.warning(
                "%s %s failed: %s", method, path, exc,
                extra={"event": "HTTP_REQUEST_ERROR"},
            )
            raise NetworkError(str(exc) or "Network error") from exc

        envelope = self._to_envelope(response)
        if not envelope.success:
            self._logger.info(
                "%s %s -> %d: %s", method, path, response.status_code, envelope.message,
            )
        return envelope

    @staticmethod
    def _decode(response: httpx.Response) -> JsonValue:
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                pass
        return {"message": response.reason_phrase or "Non-JSON response"}

    @classmethod
    def _to_envelope(cls, response: httpx.Response) -> ApiResponse:
        body = cls._decode(response)
        status = response.status_code

        if response.is_success:
            if isinstance(body, dict) and "success" in body:
                return ApiResponse(
                    success=bool(body["success"]),
                    data=body.get("data"),
                    message=_as_text(body.get("message")) or "Success",
                    error=body.get("error"),
                    status_code=status,
                )
            return ApiResponse(success=True, data=body, message="Success", status_code=status)

        body_dict = body if isinstance(body, dict) else {}
        message = (
            _as_text(body_dict.get("detail"))
            or _as_text(body_dict.get("message"))
            or f"HTTP error! status: {status}"
        )
        return ApiResponse(
            success=False,
            data=None,
            message=message,
            error=body_dict.get("error") or body,
            status_code=status,
        )


def _as_text(value: JsonValue) -> Optional[str]:
    """Render a ``detail`` / ``message`` member as one line of text.

    FastAPI-style validation details arrive as a list of ``{msg}``
    objects; their messages are joined.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = [
            str(item.get("msg") or item.get("message"))
            if isinstance(item, dict) else str(item)
            for item in value
        ]
        return ", ".join(part for part in parts if part and part != "None") or None
    if isinstance(value, dict):
        return _as_text(value.get("message"))
    return str(value)
