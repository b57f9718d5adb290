"""
Patreon OAuth and API v2 client.

Covers the authorization redirect, the token endpoint (code exchange and
refresh) and the identity and campaign-members endpoints. Transport failures
and unexpected responses are never leaked as raw ``httpx`` exceptions: they
are raised as ``OAuthTokenExchangeError`` or ``PatreonFetchError`` carrying a
``kind`` the caller can branch on.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote, urlencode

import httpx

from patron_gate.core.config import PatreonSettings
from patron_gate.models.credentials import TokenTriple
from patron_gate.schemas.membership import (
    JsonApiDocument,
    MemberPage,
    Membership,
    MembershipSnapshot,
)
from patron_gate.utils.http import NO_RETRY, RetryConfig, send_with_retry

logger = logging.getLogger(__name__)


class ExchangeErrorKind(str, Enum):
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    NETWORK_ERROR = "network_error"
    REMOTE_ERROR = "remote_error"


class FetchErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    UPSTREAM_ERROR = "upstream_error"
    NETWORK_ERROR = "network_error"


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint cannot produce a usable token triple."""

    def __init__(
        self,
        kind: ExchangeErrorKind,
        detail: str = "",
        *,
        status_code: Optional[int] = None,
        remote_code: Optional[str] = None,
    ) -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.status_code = status_code
        self.remote_code = remote_code


class PatreonFetchError(Exception):
    """Raised when an API read fails."""

    def __init__(
        self, kind: FetchErrorKind, detail: str = "", *, status_code: Optional[int] = None
    ) -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.status_code = status_code


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class PatreonOAuthClient:
    """Talk to Patreon on behalf of this deployment's OAuth client."""

    AUTHORIZE_URL = "https://www.patreon.com/oauth2/authorize"
    TOKEN_URL = "https://www.patreon.com/api/oauth2/token"
    API_BASE = "https://www.patreon.com/api/oauth2/v2"
    SCOPES = (
        "identity",
        "identity[email]",
        "identity.memberships",
        "campaigns",
        "campaigns.members",
    )
    USER_AGENT = "patron-gate - Patron Verification v2"

    _MEMBER_FIELDS = (
        "currently_entitled_amount_cents,patron_status,last_charge_date,"
        "last_charge_status,lifetime_support_cents"
    )
    _TIER_FIELDS = "title,amount_cents"

    def __init__(
        self,
        settings: PatreonSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        refresh_retry: Optional[RetryConfig] = None,
    ) -> None:
        self._settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self._refresh_retry = refresh_retry or RetryConfig(attempts=3)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _require_client_credentials(self) -> None:
        if not self._settings.oauth_configured:
            logger.error(
                "PATREON_CLIENT_ID, PATREON_CLIENT_SECRET and PATREON_REDIRECT_URI must be set"
            )
            raise OAuthTokenExchangeError(
                ExchangeErrorKind.INVALID_CLIENT, "Patreon OAuth client is not configured."
            )

    def build_authorization_url(self) -> str:
        """Construct the Patreon consent URL. No network access."""
        self._require_client_credentials()
        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "scope": " ".join(self.SCOPES),
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params, quote_via=quote)}"

    async def exchange_code(self, code: str) -> TokenTriple:
        """Exchange a single-use authorization code for tokens. Never retried."""
        self._require_client_credentials()
        payload = {
            "code": code,
            "grant_type": "authorization_code",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "redirect_uri": str(self._settings.redirect_uri),
        }
        return await self._request_tokens(payload, retry=NO_RETRY)

    async def refresh(self, refresh_token: str) -> TokenTriple:
        """
        Trade a refresh token for a new token triple.

        Nothing is persisted here; the caller stores the result. Transport
        failures are retried a bounded number of times.
        """
        self._require_client_credentials()
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
        }
        return await self._request_tokens(
            payload, retry=self._refresh_retry, fallback_refresh_token=refresh_token
        )

    async def _request_tokens(
        self,
        payload: Dict[str, Any],
        *,
        retry: RetryConfig,
        fallback_refresh_token: Optional[str] = None,
    ) -> TokenTriple:
        try:
            response = await send_with_retry(
                lambda: self._http.post(
                    self.TOKEN_URL,
                    data=payload,
                    headers={"User-Agent": self.USER_AGENT},
                ),
                retry_config=retry,
            )
        except httpx.HTTPError as exc:
            logger.warning("Token endpoint unreachable: %s", type(exc).__name__)
            raise OAuthTokenExchangeError(
                ExchangeErrorKind.NETWORK_ERROR, "Patreon token endpoint unreachable."
            ) from exc

        body = _json_body(response)
        remote_code = body.get("error") if isinstance(body, dict) else None

        if response.is_success and isinstance(body, dict) and not remote_code:
            access_token = body.get("access_token")
            refresh_token = body.get("refresh_token") or fallback_refresh_token
            try:
                expires_in = int(body.get("expires_in"))
            except (TypeError, ValueError):
                expires_in = 0
            if access_token and refresh_token and expires_in > 0:
                return TokenTriple(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_in=expires_in,
                )
            raise OAuthTokenExchangeError(
                ExchangeErrorKind.REMOTE_ERROR,
                "Incomplete token payload returned from Patreon.",
                status_code=response.status_code,
            )

        logger.warning(
            "Token endpoint rejected %s: status=%s error=%s",
            payload.get("grant_type"),
            response.status_code,
            remote_code,
        )
        if remote_code == "invalid_grant":
            raise OAuthTokenExchangeError(
                ExchangeErrorKind.INVALID_GRANT,
                "Authorization grant was rejected.",
                status_code=response.status_code,
                remote_code=remote_code,
            )
        raise OAuthTokenExchangeError(
            ExchangeErrorKind.REMOTE_ERROR,
            f"Token endpoint returned {response.status_code}.",
            status_code=response.status_code,
            remote_code=str(remote_code) if remote_code else None,
        )

    async def _get_document(
        self,
        path: str,
        params: Dict[str, str],
        access_token: Optional[str],
    ) -> Dict[str, Any]:
        headers = {"User-Agent": self.USER_AGENT}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            response = await self._http.get(
                f"{self.API_BASE}{path}", params=params, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Patreon API unreachable (%s): %s", path, type(exc).__name__)
            raise PatreonFetchError(
                FetchErrorKind.NETWORK_ERROR, "Patreon API unreachable."
            ) from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise PatreonFetchError(
                FetchErrorKind.UNAUTHENTICATED,
                "Access token rejected by Patreon.",
                status_code=response.status_code,
            )
        if not response.is_success:
            logger.warning("Patreon API %s returned %s", path, response.status_code)
            raise PatreonFetchError(
                FetchErrorKind.UPSTREAM_ERROR,
                f"Patreon API returned {response.status_code}.",
                status_code=response.status_code,
            )

        body = _json_body(response)
        if not isinstance(body, dict):
            raise PatreonFetchError(
                FetchErrorKind.UPSTREAM_ERROR,
                "Patreon API returned a malformed body.",
                status_code=response.status_code,
            )
        return body

    async def fetch_membership_snapshot(self, access_token: str) -> MembershipSnapshot:
        """Fetch identity plus memberships and their entitled tiers."""
        params = {
            "include": "memberships,memberships.currently_entitled_tiers",
            "fields[user]": "email,full_name",
            "fields[member]": self._MEMBER_FIELDS,
            "fields[tier]": self._TIER_FIELDS,
        }
        body = await self._get_document("/identity", params, access_token)
        return MembershipSnapshot.parse(body)

    async def fetch_campaign_members(
        self, access_token: str, campaign_id: str, cursor: Optional[str] = None
    ) -> MemberPage:
        """Fetch one page of a campaign's members. ``cursor`` is opaque."""
        params = {
            "include": "currently_entitled_tiers,user",
            "fields[member]": f"{self._MEMBER_FIELDS},full_name",
            "fields[tier]": self._TIER_FIELDS,
            "fields[user]": "email,full_name",
        }
        if cursor:
            params["page[cursor]"] = cursor
        body = await self._get_document(
            f"/campaigns/{quote(campaign_id, safe='')}/members", params, access_token
        )
        return MemberPage.from_document(JsonApiDocument.parse(body))

    async def iter_campaign_members(
        self, access_token: str, campaign_id: str, *, max_pages: int = 100
    ) -> AsyncIterator[Membership]:
        """Yield every member of a campaign, following pagination cursors."""
        cursor: Optional[str] = None
        for _ in range(max_pages):
            page = await self.fetch_campaign_members(access_token, campaign_id, cursor)
            for member in page.members:
                yield member
            if not page.next_cursor or page.next_cursor == cursor:
                return
            cursor = page.next_cursor
        logger.warning("Stopped paging campaign %s after %d pages", campaign_id, max_pages)

    async def fetch_campaign_tiers(
        self, campaign_id: str, access_token: Optional[str] = None
    ) -> JsonApiDocument:
        """Fetch a campaign with its tiers included."""
        params = {"include": "tiers", "fields[tier]": self._TIER_FIELDS}
        return JsonApiDocument.parse(
            await self._get_document(
                f"/campaigns/{quote(campaign_id, safe='')}", params, access_token
            )
        )


__all__ = [
    "ExchangeErrorKind",
    "FetchErrorKind",
    "OAuthTokenExchangeError",
    "PatreonFetchError",
    "PatreonOAuthClient",
]
