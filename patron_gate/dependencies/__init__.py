"""Expose dependency helpers for FastAPI routers."""

from .config import get_app_settings
from .container import ServiceContainer, build_container
from .services import (
    get_container,
    get_current_patron,
    get_patreon_client,
    get_session,
    get_token_lifecycle_manager,
    get_webhook_service,
    require_patron,
)

__all__ = [
    "ServiceContainer",
    "build_container",
    "get_app_settings",
    "get_container",
    "get_current_patron",
    "get_patreon_client",
    "get_session",
    "get_token_lifecycle_manager",
    "get_webhook_service",
    "require_patron",
]
