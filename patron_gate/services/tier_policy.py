"""
Decide whether a membership snapshot grants access.

The policy is pure: no I/O, no clock. It looks for the first active
membership entitled to one of the configured tiers and reports its pledge.
An empty allow-list matches nothing, so an unconfigured deployment grants
access to nobody.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from patron_gate.schemas.membership import Membership, MembershipSnapshot, TierDescriptor

logger = logging.getLogger(__name__)

NO_TIER_NAME = "None"
UNKNOWN_TIER_NAME = "Unknown"


@dataclass(frozen=True, slots=True)
class TierVerification:
    is_patron: bool = False
    has_tier: bool = False
    amount_cents: int = 0
    tier_name: str = NO_TIER_NAME

    @property
    def status(self) -> str:
        return "active" if self.is_patron else "inactive"


NOT_A_PATRON = TierVerification()


@dataclass(frozen=True)
class TierPolicy:
    """Process-wide access policy built from configuration."""

    allowed_tier_ids: frozenset[str]
    min_amount_cents: int = 300

    @classmethod
    def from_ids(cls, tier_ids: Iterable[str], min_amount_cents: int = 300) -> "TierPolicy":
        return cls(frozenset(tier_ids), min_amount_cents)

    def evaluate(self, snapshot: Optional[MembershipSnapshot]) -> TierVerification:
        return evaluate(snapshot, self.allowed_tier_ids, self.min_amount_cents)


def _first_qualifying(
    memberships: Iterable[Membership], allowed: frozenset[str]
) -> Optional[Membership]:
    # Snapshot order decides ties; Patreon does not sort members by amount.
    for membership in memberships:
        if allowed.intersection(membership.tier_ids):
            return membership
    return None


def evaluate(
    snapshot: Optional[MembershipSnapshot],
    allow_list: Iterable[str],
    min_amount_cents: int = 300,
) -> TierVerification:
    """Return the verification result for ``snapshot`` under the given policy."""
    if snapshot is None:
        return NOT_A_PATRON

    memberships = snapshot.memberships()
    if not memberships:
        return NOT_A_PATRON

    active = [membership for membership in memberships if membership.is_active]
    if not active:
        return NOT_A_PATRON

    allowed = frozenset(allow_list)
    if not allowed:
        logger.warning("PATREON_TIER_IDS is empty; no membership can be verified")
        return NOT_A_PATRON

    match = _first_qualifying(active, allowed)
    if match is None:
        return NOT_A_PATRON

    tier_name = UNKNOWN_TIER_NAME
    if match.tier_ids:
        tier = snapshot.tier(match.tier_ids[0])
        if tier is not None:
            tier_name = tier.title

    return TierVerification(
        is_patron=True,
        has_tier=match.amount_cents >= min_amount_cents,
        amount_cents=match.amount_cents,
        tier_name=tier_name,
    )


def list_tiers(snapshot: Optional[MembershipSnapshot]) -> list[TierDescriptor]:
    """Every tier descriptor included in the snapshot, in document order."""
    if snapshot is None:
        return []
    return snapshot.tiers()


__all__ = [
    "NOT_A_PATRON",
    "TierPolicy",
    "TierVerification",
    "evaluate",
    "list_tiers",
]
