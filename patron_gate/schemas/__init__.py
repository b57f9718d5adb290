"""Public schema exports."""

from .api import (
    LoginResponse,
    MemberPageResponse,
    MemberSummary,
    TierInfoResponse,
    TierListResponse,
    TierSummary,
    VerificationResponse,
    WebhookAck,
)
from .membership import (
    JsonApiDocument,
    MemberPage,
    Membership,
    MembershipSnapshot,
    PatronStatus,
    TierDescriptor,
    UserProfile,
)

__all__ = [
    "JsonApiDocument",
    "LoginResponse",
    "MemberPage",
    "MemberPageResponse",
    "MemberSummary",
    "Membership",
    "MembershipSnapshot",
    "PatronStatus",
    "TierDescriptor",
    "TierInfoResponse",
    "TierListResponse",
    "TierSummary",
    "UserProfile",
    "VerificationResponse",
    "WebhookAck",
]
