"""
Pydantic models for HTTP responses.
"""

from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, Field

from patron_gate.schemas.membership import Membership, TierDescriptor

if TYPE_CHECKING:
    from patron_gate.services.tier_policy import TierVerification


class VerificationResponse(BaseModel):
    verified: bool
    status: str

    @classmethod
    def from_verification(cls, verification: "TierVerification") -> "VerificationResponse":
        return cls(verified=verification.is_patron, status=verification.status)


class TierInfoResponse(BaseModel):
    tier_name: str = "None"
    amount_cents: int = 0
    is_active: bool = False
    has_tier: bool = False
    status: str = "inactive"

    @classmethod
    def from_verification(cls, verification: "TierVerification") -> "TierInfoResponse":
        return cls(
            tier_name=verification.tier_name,
            amount_cents=verification.amount_cents,
            is_active=verification.is_patron,
            has_tier=verification.has_tier,
            status=verification.status,
        )


class TierSummary(BaseModel):
    id: str
    title: str
    amount_cents: int
    amount_formatted: str

    @classmethod
    def from_descriptor(cls, tier: TierDescriptor, currency_symbol: str = "€") -> "TierSummary":
        formatted = (
            f"{currency_symbol}{tier.amount_cents / 100:.2f}" if tier.amount_cents else "Free"
        )
        return cls(
            id=tier.id,
            title=tier.title,
            amount_cents=tier.amount_cents,
            amount_formatted=formatted,
        )


class TierListResponse(BaseModel):
    """Tier IDs an operator can copy into ``PATREON_TIER_IDS``."""

    tiers: List[TierSummary] = Field(default_factory=list)
    suggested_config: str
    campaign_id: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def build(
        cls,
        tiers: List[TierDescriptor],
        *,
        campaign_id: Optional[str] = None,
        message: Optional[str] = None,
        currency_symbol: str = "€",
    ) -> "TierListResponse":
        summaries = [TierSummary.from_descriptor(tier, currency_symbol) for tier in tiers]
        return cls(
            tiers=summaries,
            suggested_config="PATREON_TIER_IDS=" + ",".join(tier.id for tier in summaries),
            campaign_id=campaign_id,
            message=message,
        )


class MemberSummary(BaseModel):
    id: str
    user_id: Optional[str] = None
    full_name: str = ""
    patron_status: Optional[str] = None
    amount_cents: int = 0
    tier_ids: List[str] = Field(default_factory=list)

    @classmethod
    def from_membership(cls, member: Membership) -> "MemberSummary":
        return cls(
            id=member.id,
            user_id=member.user_id,
            full_name=member.full_name,
            patron_status=member.patron_status.value if member.patron_status else None,
            amount_cents=member.amount_cents,
            tier_ids=list(member.tier_ids),
        )


class MemberPageResponse(BaseModel):
    members: List[MemberSummary] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    total: Optional[int] = None


class LoginResponse(BaseModel):
    status: str = "connected"
    patreon_id: str
    full_name: str = ""
    persisted: bool = True
    membership: TierInfoResponse


class WebhookAck(BaseModel):
    status: str


__all__ = [
    "LoginResponse",
    "MemberPageResponse",
    "MemberSummary",
    "TierInfoResponse",
    "TierListResponse",
    "TierSummary",
    "VerificationResponse",
    "WebhookAck",
]
