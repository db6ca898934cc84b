"""
Board Cache Service.

In-memory cache of the signed-in user's board list.  The board/task
domain itself lives elsewhere; the session layer only needs to wipe
the cache whenever the session identity changes and to hydrate it
right after a successful sign-in.
"""

from __future__ import annotations

import threading

from pydantic import JsonValue

from taskdesk.logger import StructuredLogger
from taskdesk.models.service_models import ServiceResult
from taskdesk.services.api_gateway import ApiGateway
from taskdesk.services.base_service import BaseService

BOARDS_PATH: str = "/boards/"


class BoardCache(BaseService):
    """Holds the board list fetched from ``GET /boards/``."""

    def __init__(self, gateway: ApiGateway, logger: StructuredLogger) -> None:
        super().__init__(gateway=gateway, logger=logger)
        self._lock = threading.Lock()
        self._boards: list[dict[str, JsonValue]] = []
        self._loaded: bool = False

    @property
    def boards(self) -> list[dict[str, JsonValue]]:
        with self._lock:
            return list(self._boards)

    @property
    def is_loaded(self) -> bool:
        with self._lock:
            return self._loaded

    def clear(self) -> None:
        """Forget every cached board."""
        with self._lock:
            self._boards = []
            self._loaded = False
        self._logger.debug("Board cache cleared.")

    def load_user_boards(self) -> ServiceResult[list[dict[str, JsonValue]]]:
        """Fetch the current user's boards and replace the cache.

        Transport errors propagate as ``NetworkError``; the caller
        decides whether a failed hydration matters.
        """
        response = self._gateway.get(BOARDS_PATH)
        if not response.success:
            return ServiceResult(
                success=False,
                error=response.message or "Failed to load boards",
                status_code=response.status_code or 500,
            )

        data = response.data
        boards = [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []
        with self._lock:
            self._boards = boards
            self._loaded = True
        self._logger.info(
            "Loaded %d board(s).", len(boards),
            extra={"event": "BOARDS_LOADED", "count": len(boards)},
        )
        return ServiceResult(success=True, data=boards)
