"""Contract shared by the credential storage backends."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

# Columns written together on every login or refresh.
CREDENTIAL_FIELDS = (
    "email",
    "full_name",
    "access_token",
    "refresh_token",
    "token_expiry_ms",
    "updated_at_ms",
)

MEMBERSHIP_FIELDS = (
    "membership_status",
    "membership_amount_cents",
    "membership_last_updated_ms",
    "last_webhook_event_type",
)


class CredentialStoreUnavailableError(Exception):
    """Raised when the backing store cannot be reached, as opposed to a missing record."""


class CredentialBackend(Protocol):
    def get_item(self, patreon_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored fields for ``patreon_id`` or ``None``."""

    def upsert_credentials(self, patreon_id: str, fields: Dict[str, Any], *, created_at_ms: int) -> None:
        """Write ``CREDENTIAL_FIELDS`` atomically; ``created_at_ms`` only applies on insert."""

    def update_membership(self, patreon_id: str, fields: Dict[str, Any]) -> bool:
        """Write ``MEMBERSHIP_FIELDS`` on an existing record; return whether one matched."""


__all__ = [
    "CREDENTIAL_FIELDS",
    "CredentialBackend",
    "CredentialStoreUnavailableError",
    "MEMBERSHIP_FIELDS",
]
