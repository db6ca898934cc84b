"""
Base Service Class.

Minimal base class standardizing the logger/gateway pattern for every
service that talks to the TaskDesk API.  Services extend this and add
their own collaborators (store, storage, board cache) via __init__.
"""

from __future__ import annotations

from taskdesk.logger import StructuredLogger
from taskdesk.services.api_gateway import ApiGateway


class BaseService:
    """Base class for API-backed services. Provides a logger and gateway."""

    def __init__(self, gateway: ApiGateway, logger: StructuredLogger) -> None:
        self._gateway: ApiGateway = gateway
        self._logger: StructuredLogger = logger
