"""Service layer exports."""

from .credential_store import CredentialStore
from .tier_policy import TierPolicy, TierVerification, evaluate
from .token_cipher import TokenCipherService
from .token_lifecycle import AuthenticatedPatron, SessionResolution, TokenLifecycleManager
from .webhooks import PatreonWebhookService, WebhookSignatureError, WebhookSignatureVerifier

__all__ = [
    "AuthenticatedPatron",
    "CredentialStore",
    "PatreonWebhookService",
    "SessionResolution",
    "TierPolicy",
    "TierVerification",
    "TokenCipherService",
    "TokenLifecycleManager",
    "WebhookSignatureError",
    "WebhookSignatureVerifier",
    "evaluate",
]
