"""
FastAPI application entrypoint for the patron verification service.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from patron_gate import __version__
from patron_gate.api.routes import api_router, oauth_router, router, webhook_router
from patron_gate.core.config import AppSettings, get_settings
from patron_gate.core.logging import configure_logging
from patron_gate.core.session import SessionCookieCodec, SessionCookieMiddleware
from patron_gate.dependencies import build_container


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Factory for the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        container = build_container(settings)
        app.state.container = container
        try:
            yield
        finally:
            await container.aclose()

    app = FastAPI(
        title="Patron Gate",
        version=__version__,
        description="Patreon login, membership verification and webhook ingestion.",
        lifespan=lifespan,
    )
    security = settings.security
    app.add_middleware(
        SessionCookieMiddleware,
        codec=SessionCookieCodec(
            security.session_secret, max_age_seconds=security.session_max_age_seconds
        ),
        cookie_name=security.session_cookie_name,
        max_age_seconds=security.session_max_age_seconds,
        https_only=settings.environment == "production",
    )
    app.include_router(router)
    app.include_router(oauth_router)
    app.include_router(api_router)
    app.include_router(webhook_router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
