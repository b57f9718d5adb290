"""
FastAPI dependencies resolving collaborators from the service container.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request

from patron_gate.clients import PatreonOAuthClient
from patron_gate.core.session import PatronSession
from patron_gate.services import (
    AuthenticatedPatron,
    PatreonWebhookService,
    TokenLifecycleManager,
)

from .container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container missing; was the app started through its lifespan?")
    return container


ContainerDependency = Annotated[ServiceContainer, Depends(get_container)]


def get_patreon_client(container: ContainerDependency) -> PatreonOAuthClient:
    return container.oauth_client


def get_token_lifecycle_manager(container: ContainerDependency) -> TokenLifecycleManager:
    return container.lifecycle


def get_webhook_service(container: ContainerDependency) -> PatreonWebhookService:
    return container.webhooks


def get_session(request: Request) -> PatronSession:
    session = getattr(request.state, "session", None)
    if session is None:
        session = PatronSession()
        request.state.session = session
    return session


async def get_current_patron(
    session: Annotated[PatronSession, Depends(get_session)],
    lifecycle: Annotated[TokenLifecycleManager, Depends(get_token_lifecycle_manager)],
) -> Optional[AuthenticatedPatron]:
    """Resolve the session's Patreon ID into an identity, refreshing tokens if needed."""
    resolution = await lifecycle.resolve(session.patreon_id)
    if resolution.clear_session:
        session.clear()
    return resolution.patron


async def require_patron(
    patron: Annotated[Optional[AuthenticatedPatron], Depends(get_current_patron)],
) -> AuthenticatedPatron:
    if patron is None:
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Unauthorized")
    return patron


__all__ = [
    "get_container",
    "get_current_patron",
    "get_patreon_client",
    "get_session",
    "get_token_lifecycle_manager",
    "get_webhook_service",
    "require_patron",
]
