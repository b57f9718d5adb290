"""
Domain models for credential persistence.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenTriple(BaseModel):
    """Tokens as issued by the Patreon token endpoint."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    expires_in: int = Field(..., description="Lifetime in seconds, relative to issue time.")

    def __repr__(self) -> str:  # keep secrets out of logs and tracebacks
        return f"TokenTriple(expires_in={self.expires_in})"

    __str__ = __repr__


class ProfileFields(BaseModel):
    """Denormalized profile data refreshed on every successful login."""

    email: str = ""
    full_name: str = ""


class MembershipUpdate(BaseModel):
    """Membership delta delivered by a webhook."""

    status: str = "unknown"
    amount_cents: int = 0
    event_type: str
    at_ms: int


class CredentialRecord(BaseModel):
    """Represents one persisted credential record, keyed by Patreon user ID."""

    patreon_id: str = Field(..., description="Patreon user ID; primary key.")
    email: str = ""
    full_name: str = ""
    access_token: str = Field(..., repr=False)
    refresh_token: str = Field(..., repr=False)
    token_expiry_ms: int = Field(..., description="Absolute epoch ms the access token expires.")
    created_at_ms: int
    updated_at_ms: int
    membership_status: Optional[str] = None
    membership_amount_cents: Optional[int] = None
    membership_last_updated_ms: Optional[int] = None
    last_webhook_event_type: Optional[str] = None

    @property
    def profile(self) -> ProfileFields:
        return ProfileFields(email=self.email, full_name=self.full_name)


__all__ = ["CredentialRecord", "MembershipUpdate", "ProfileFields", "TokenTriple"]
