"""
Credential lifecycle: load, check expiry, refresh on demand, persist.

Every request carrying a session runs through ``TokenLifecycleManager.resolve``.
A failed refresh is not an error for the caller: the visitor is simply
treated as logged out and the session is cleared. Concurrent requests for the
same user may each refresh; the last write to the store wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from patron_gate.clients.patreon import (
    FetchErrorKind,
    OAuthTokenExchangeError,
    PatreonFetchError,
    PatreonOAuthClient,
)
from patron_gate.clients.storage import CredentialStoreUnavailableError
from patron_gate.models.credentials import CredentialRecord, ProfileFields
from patron_gate.schemas.membership import MembershipSnapshot
from patron_gate.services.credential_store import CredentialStore
from patron_gate.services.tier_policy import TierPolicy, TierVerification
from patron_gate.utils.clock import Clock, epoch_ms

logger = logging.getLogger(__name__)

REFRESH_BUFFER_MS = 5 * 60 * 1000


def is_token_expired(
    record: CredentialRecord, now_ms: int, buffer_ms: int = REFRESH_BUFFER_MS
) -> bool:
    """True once ``now_ms`` is within ``buffer_ms`` of the access token's expiry."""
    return now_ms >= record.token_expiry_ms - buffer_ms


class AuthenticatedPatron:
    """The identity attached to a request, with lazy access to live membership data."""

    def __init__(
        self,
        record: CredentialRecord,
        oauth_client: PatreonOAuthClient,
        policy: TierPolicy,
        *,
        snapshot: Optional[MembershipSnapshot] = None,
    ) -> None:
        self.record = record
        self._oauth = oauth_client
        self._policy = policy
        self._snapshot = snapshot

    @property
    def patreon_id(self) -> str:
        return self.record.patreon_id

    async def membership_snapshot(self) -> MembershipSnapshot:
        """Fetch identity and membership data with the current access token, once."""
        if self._snapshot is None:
            self._snapshot = await self._oauth.fetch_membership_snapshot(
                self.record.access_token
            )
        return self._snapshot

    async def verify(self) -> TierVerification:
        return self._policy.evaluate(await self.membership_snapshot())


@dataclass(frozen=True)
class SessionResolution:
    patron: Optional[AuthenticatedPatron] = None
    clear_session: bool = False
    degraded: bool = False

    @property
    def authenticated(self) -> bool:
        return self.patron is not None


ANONYMOUS = SessionResolution()
LOGGED_OUT = SessionResolution(clear_session=True)


@dataclass(frozen=True)
class LoginResult:
    patron: AuthenticatedPatron
    persisted: bool


class TokenLifecycleManager:
    """Turn a session-carried Patreon ID into an authenticated identity."""

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: PatreonOAuthClient,
        policy: TierPolicy,
        *,
        clock: Clock = epoch_ms,
        refresh_buffer_ms: int = REFRESH_BUFFER_MS,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._policy = policy
        self._clock = clock
        self._buffer_ms = refresh_buffer_ms

    def _attach(
        self, record: CredentialRecord, snapshot: Optional[MembershipSnapshot] = None
    ) -> AuthenticatedPatron:
        return AuthenticatedPatron(record, self._oauth, self._policy, snapshot=snapshot)

    async def resolve(self, patreon_id: Optional[str]) -> SessionResolution:
        if not patreon_id:
            return ANONYMOUS

        try:
            record = await self._store.get(patreon_id)
        except CredentialStoreUnavailableError as exc:
            logger.warning("Credential store unavailable, serving anonymously: %s", exc)
            return SessionResolution(degraded=True)

        if record is None:
            logger.info("No credential record for session user %s; clearing session", patreon_id)
            return LOGGED_OUT

        now = self._clock()
        if not is_token_expired(record, now, self._buffer_ms):
            return SessionResolution(patron=self._attach(record))

        return await self._refresh(record, now)

    async def _refresh(self, record: CredentialRecord, now: int) -> SessionResolution:
        try:
            tokens = await self._oauth.refresh(record.refresh_token)
        except OAuthTokenExchangeError as exc:
            logger.info(
                "Token refresh for %s failed (%s); treating as logged out",
                record.patreon_id,
                exc.kind.value,
            )
            return LOGGED_OUT

        try:
            token_expiry_ms = await self._store.upsert(
                record.patreon_id, record.profile, tokens, now_ms=now
            )
        except CredentialStoreUnavailableError as exc:
            logger.warning("Refreshed tokens for %s not persisted: %s", record.patreon_id, exc)
            token_expiry_ms = now + tokens.expires_in * 1000

        refreshed = record.model_copy(
            update={
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "token_expiry_ms": token_expiry_ms,
                "updated_at_ms": now,
            }
        )
        return SessionResolution(patron=self._attach(refreshed))

    async def login_with_code(self, code: str) -> LoginResult:
        """
        Complete the OAuth callback: exchange ``code``, identify the user, persist.

        Raises ``OAuthTokenExchangeError`` or ``PatreonFetchError``. A store
        outage does not fail the login; ``persisted`` reports it.
        """
        tokens = await self._oauth.exchange_code(code)
        snapshot = await self._oauth.fetch_membership_snapshot(tokens.access_token)
        profile = snapshot.profile()
        if profile is None:
            raise PatreonFetchError(
                FetchErrorKind.UPSTREAM_ERROR, "Identity response did not include a user."
            )

        now = self._clock()
        fields = ProfileFields(email=profile.email, full_name=profile.full_name)
        persisted = True
        try:
            token_expiry_ms = await self._store.upsert(
                profile.patreon_id, fields, tokens, now_ms=now
            )
        except CredentialStoreUnavailableError as exc:
            logger.warning("Credentials for %s not persisted: %s", profile.patreon_id, exc)
            persisted = False
            token_expiry_ms = now + tokens.expires_in * 1000

        record = CredentialRecord(
            patreon_id=profile.patreon_id,
            email=profile.email,
            full_name=profile.full_name,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_expiry_ms=token_expiry_ms,
            created_at_ms=now,
            updated_at_ms=now,
        )
        return LoginResult(patron=self._attach(record, snapshot), persisted=persisted)


__all__ = [
    "AuthenticatedPatron",
    "LoginResult",
    "REFRESH_BUFFER_MS",
    "SessionResolution",
    "TokenLifecycleManager",
    "is_token_expired",
]
