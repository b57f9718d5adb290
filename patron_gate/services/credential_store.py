"""
Persistence of per-user credential records.

The store wraps a synchronous backend (SQLite or DynamoDB) and runs every
call in a worker thread. Tokens are encrypted before they reach the backend.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from patron_gate.clients.storage import CredentialBackend, CredentialStoreUnavailableError
from patron_gate.models.credentials import (
    CredentialRecord,
    MembershipUpdate,
    ProfileFields,
    TokenTriple,
)
from patron_gate.services.token_cipher import TokenCipherService, TokenDecryptionError
from patron_gate.utils.clock import Clock, epoch_ms

logger = logging.getLogger(__name__)


class CredentialStore:
    """Get and upsert credential records keyed by Patreon user ID."""

    def __init__(
        self,
        backend: CredentialBackend,
        cipher: TokenCipherService,
        *,
        clock: Clock = epoch_ms,
    ) -> None:
        self._backend = backend
        self._cipher = cipher
        self._clock = clock

    async def get(self, patreon_id: str) -> Optional[CredentialRecord]:
        """
        Load the record for ``patreon_id``.

        Returns ``None`` when no usable record exists. Raises
        ``CredentialStoreUnavailableError`` when the backend cannot be reached.
        """
        item = await asyncio.to_thread(self._backend.get_item, patreon_id)
        if not item:
            return None

        try:
            access_token = self._cipher.decrypt(item["access_token"])
            refresh_token = self._cipher.decrypt(item["refresh_token"])
        except (KeyError, TokenDecryptionError) as exc:
            logger.warning("Stored tokens for %s are unreadable: %s", patreon_id, exc)
            return None

        return CredentialRecord(
            **{
                **item,
                "patreon_id": patreon_id,
                "access_token": access_token,
                "refresh_token": refresh_token,
            }
        )

    async def upsert(
        self,
        patreon_id: str,
        profile: ProfileFields,
        tokens: TokenTriple,
        *,
        now_ms: Optional[int] = None,
    ) -> int:
        """
        Write profile fields and the token triple together.

        ``created_at_ms`` is only set when the record is first inserted.
        Returns the absolute expiry that was stored.
        """
        now = now_ms if now_ms is not None else self._clock()
        token_expiry_ms = now + tokens.expires_in * 1000
        fields = {
            "email": profile.email,
            "full_name": profile.full_name,
            "access_token": self._cipher.encrypt(tokens.access_token),
            "refresh_token": self._cipher.encrypt(tokens.refresh_token),
            "token_expiry_ms": token_expiry_ms,
            "updated_at_ms": now,
        }
        await asyncio.to_thread(
            self._backend.upsert_credentials, patreon_id, fields, created_at_ms=now
        )
        logger.info("Stored credentials for Patreon user %s", patreon_id)
        return token_expiry_ms

    async def apply_membership_update(self, patreon_id: str, update: MembershipUpdate) -> bool:
        """
        Record a webhook-delivered membership change.

        Token fields are neither read nor validated. Returns ``False`` when no
        record exists for ``patreon_id``.
        """
        fields = {
            "membership_status": update.status,
            "membership_amount_cents": update.amount_cents,
            "membership_last_updated_ms": update.at_ms,
            "last_webhook_event_type": update.event_type,
        }
        matched = await asyncio.to_thread(self._backend.update_membership, patreon_id, fields)
        if not matched:
            logger.info("Membership update for unknown Patreon user %s ignored", patreon_id)
        return matched


__all__ = ["CredentialStore", "CredentialStoreUnavailableError"]
