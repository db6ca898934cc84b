"""
Client Services Package.

Contains the session, profile, storage and wizard services of the
TaskDesk desktop client.  Services talk to the REST backend through
the ``ApiGateway`` and publish session changes through the injected
``UserStateStore``.

The ``create_services()`` factory wires every service together,
returning a typed dict that the application layer (console commands /
views) can consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Callable, Optional, TypedDict

import httpx

from taskdesk.auth import TokenStore
from taskdesk.config import AppConfig
from taskdesk.logger import get_logger
from taskdesk.services.api_gateway import ApiGateway
from taskdesk.services.board_cache import BoardCache
from taskdesk.services.client_storage import ClientStorage, PreferenceSync
from taskdesk.services.profile_service import ProfileService
from taskdesk.services.session_manager import SessionManager
from taskdesk.services.wizard import WizardController, WizardDefinition
from taskdesk.user_store import UserStateStore


class ServiceContainer(TypedDict):
    """Typed container for all client services and shared state."""

    # --- Shared state ---
    token_store: TokenStore
    user_store: UserStateStore

    # --- Infrastructure ---
    api_gateway: ApiGateway
    client_storage: ClientStorage
    board_cache: BoardCache

    # --- Session & profile ---
    session_manager: SessionManager
    profile_service: ProfileService

    # --- Subscriptions ---
    unsubscribe_preferences: Callable[[], None]


def create_services(
    config: AppConfig,
    transport: Optional[httpx.BaseTransport] = None,
) -> ServiceContainer:
    """
    Wire the token store, user store and every service together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup and passes the
    returned dict to commands / views as needed.

    Args:
        config: Application configuration (API URL, timeouts, storage path).
        transport: Optional ``httpx`` transport; tests pass a mock.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services", config)

    # ------------------------------------------------------------------
    # 1. Shared state
    # ------------------------------------------------------------------
    token_store = TokenStore()
    user_store = UserStateStore(logger=logger)

    # ------------------------------------------------------------------
    # 2. Infrastructure
    # ------------------------------------------------------------------
    api_gateway = ApiGateway(
        base_url=config.API_BASE_URL,
        tokens=token_store,
        logger=logger,
        timeout=config.API_TIMEOUT_S,
        transport=transport,
    )
    client_storage = ClientStorage(path=config.STORAGE_PATH, logger=logger)
    board_cache = BoardCache(gateway=api_gateway, logger=logger)

    # ------------------------------------------------------------------
    # 3. Session & profile services
    # ------------------------------------------------------------------
    session_manager = SessionManager(
        gateway=api_gateway,
        tokens=token_store,
        store=user_store,
        storage=client_storage,
        board_cache=board_cache,
        config=config,
        logger=logger,
    )
    profile_service = ProfileService(
        gateway=api_gateway,
        tokens=token_store,
        store=user_store,
        storage=client_storage,
        logger=logger,
        avatar_max_bytes=config.AVATAR_MAX_BYTES,
    )

    # ------------------------------------------------------------------
    # 4. Subscriptions: keep theme/language keys in step with the user
    # ------------------------------------------------------------------
    unsubscribe_preferences = user_store.subscribe(PreferenceSync(client_storage))

    return ServiceContainer(
        token_store=token_store,
        user_store=user_store,
        api_gateway=api_gateway,
        client_storage=client_storage,
        board_cache=board_cache,
        session_manager=session_manager,
        profile_service=profile_service,
        unsubscribe_preferences=unsubscribe_preferences,
    )


def create_wizard(services: ServiceContainer, definition: WizardDefinition) -> WizardController:
    """Start a fresh run of *definition* bound to *services*."""
    return WizardController(
        definition=definition,
        session=services["session_manager"],
        profile=services["profile_service"],
        store=services["user_store"],
        logger=get_logger("wizard"),
    )


def shutdown_services(services: ServiceContainer) -> None:
    """Release network and storage handles."""
    services["unsubscribe_preferences"]()
    services["api_gateway"].close()
    services["client_storage"].close()
