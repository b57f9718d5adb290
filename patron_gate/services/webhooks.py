"""
Patreon webhook ingestion.

Deliveries are verified against the exact bytes received, then member events
are applied to the credential store. Store failures are raised, never
swallowed, so the endpoint answers non-2xx and Patreon redelivers.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from enum import Enum
from typing import Optional

from patron_gate.models.credentials import MembershipUpdate
from patron_gate.schemas.membership import JsonApiDocument
from patron_gate.services.credential_store import CredentialStore
from patron_gate.utils.clock import Clock, epoch_ms

logger = logging.getLogger(__name__)

MEMBER_EVENTS = frozenset(
    {
        "members:create",
        "members:update",
        "members:delete",
        "members:pledge:create",
        "members:pledge:update",
        "members:pledge:delete",
    }
)


class WebhookSignatureError(Exception):
    """Raised when a delivery's signature does not match its body."""


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    UNKNOWN_USER = "unknown_user"
    NO_SUBJECT = "no_subject"
    IGNORED = "ignored"


class WebhookSignatureVerifier:
    """
    HMAC check for ``X-Patreon-Signature``.

    Patreon signs with HMAC-MD5; the digest is configurable only so it can
    track the sender, not as a hardening knob.
    """

    def __init__(self, secret: Optional[str], digest: str = "md5") -> None:
        self._secret = secret.encode("utf-8") if secret else None
        hashlib.new(digest)  # fail fast on an unknown algorithm name
        self._digest = digest
        if self._secret is None:
            logger.warning(
                "PATREON_WEBHOOK_SECRET is not set; webhook signatures will not be verified"
            )

    def verify(self, body: bytes, signature: Optional[str]) -> None:
        if self._secret is None:
            logger.warning("Accepting unsigned webhook delivery (no secret configured)")
            return
        if not signature:
            raise WebhookSignatureError("Missing webhook signature.")
        expected = hmac.new(self._secret, body, self._digest).hexdigest()
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            raise WebhookSignatureError("Webhook signature mismatch.")


class PatreonWebhookService:
    """Verify a delivery and apply the membership delta it carries."""

    def __init__(
        self,
        store: CredentialStore,
        verifier: WebhookSignatureVerifier,
        *,
        clock: Clock = epoch_ms,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._clock = clock

    async def handle(
        self, body: bytes, event_type: Optional[str], signature: Optional[str]
    ) -> WebhookOutcome:
        self._verifier.verify(body, signature)

        if event_type not in MEMBER_EVENTS:
            logger.info("Unhandled webhook event: %s", event_type)
            return WebhookOutcome.IGNORED

        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("Webhook %s body is not JSON; acknowledging without changes", event_type)
            return WebhookOutcome.IGNORED

        member = JsonApiDocument.parse(payload).primary
        user = member.related_one("user") if member else None
        if user is None:
            logger.info("Webhook %s has no user relationship; nothing to update", event_type)
            return WebhookOutcome.NO_SUBJECT

        update = MembershipUpdate(
            status=member.attr_str("patron_status") or "unknown",
            amount_cents=member.attr_int("currently_entitled_amount_cents"),
            event_type=event_type,
            at_ms=self._clock(),
        )
        matched = await self._store.apply_membership_update(user.id, update)
        logger.info(
            "Webhook %s for Patreon user %s: status=%s amount=%s",
            event_type,
            user.id,
            update.status,
            update.amount_cents,
        )
        return WebhookOutcome.PROCESSED if matched else WebhookOutcome.UNKNOWN_USER


__all__ = [
    "MEMBER_EVENTS",
    "PatreonWebhookService",
    "WebhookOutcome",
    "WebhookSignatureError",
    "WebhookSignatureVerifier",
]
