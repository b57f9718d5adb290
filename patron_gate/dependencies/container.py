"""
Explicitly constructed service graph.

The container is built once in the application lifespan and hung off
``app.state``; FastAPI dependencies read from it. Nothing here is created
lazily on first use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from patron_gate.clients import (
    DynamoDBCredentialStore,
    PatreonOAuthClient,
    SQLiteCredentialStore,
)
from patron_gate.clients.storage import CredentialBackend
from patron_gate.core.config import AppSettings
from patron_gate.services import (
    CredentialStore,
    PatreonWebhookService,
    TierPolicy,
    TokenCipherService,
    TokenLifecycleManager,
    WebhookSignatureVerifier,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: AppSettings
    oauth_client: PatreonOAuthClient
    credential_store: CredentialStore
    tier_policy: TierPolicy
    lifecycle: TokenLifecycleManager
    webhooks: PatreonWebhookService

    async def aclose(self) -> None:
        await self.oauth_client.aclose()


def _build_backend(settings: AppSettings) -> CredentialBackend:
    if settings.storage.backend == "dynamodb":
        return DynamoDBCredentialStore(settings.storage)
    return SQLiteCredentialStore(settings.storage.sqlite_path)


def build_container(settings: AppSettings) -> ServiceContainer:
    """Wire every long-lived collaborator from ``settings``."""
    patreon = settings.patreon
    if not patreon.oauth_configured:
        logger.error(
            "Patreon OAuth is not configured; login and refresh will fail with invalid_client"
        )
    if not patreon.tier_ids:
        logger.warning("PATREON_TIER_IDS is empty; every membership check will fail closed")

    cipher = TokenCipherService(
        secrets=settings.security.token_encryption_secrets
        or (settings.security.session_secret,)
    )
    store = CredentialStore(_build_backend(settings), cipher)
    oauth_client = PatreonOAuthClient(patreon)
    policy = TierPolicy.from_ids(patreon.tier_ids, patreon.min_tier_amount_cents)
    return ServiceContainer(
        settings=settings,
        oauth_client=oauth_client,
        credential_store=store,
        tier_policy=policy,
        lifecycle=TokenLifecycleManager(store, oauth_client, policy),
        webhooks=PatreonWebhookService(
            store,
            WebhookSignatureVerifier(patreon.webhook_secret, patreon.webhook_digest),
        ),
    )


__all__ = ["ServiceContainer", "build_container"]
