"""
FastAPI routes for the patron verification service.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from patron_gate.clients import (
    CredentialStoreUnavailableError,
    ExchangeErrorKind,
    FetchErrorKind,
    OAuthTokenExchangeError,
    PatreonFetchError,
    PatreonOAuthClient,
)
from patron_gate.core.config import AppSettings
from patron_gate.core.session import PatronSession
from patron_gate.dependencies import (
    get_app_settings,
    get_current_patron,
    get_patreon_client,
    get_session,
    get_token_lifecycle_manager,
    get_webhook_service,
    require_patron,
)
from patron_gate.schemas import (
    LoginResponse,
    MemberPageResponse,
    MemberSummary,
    TierInfoResponse,
    TierListResponse,
    VerificationResponse,
    WebhookAck,
)
from patron_gate.services import (
    AuthenticatedPatron,
    PatreonWebhookService,
    TierVerification,
    TokenLifecycleManager,
)
from patron_gate.services.tier_policy import list_tiers
from patron_gate.services.webhooks import WebhookSignatureError

router = APIRouter()
oauth_router = APIRouter(prefix="/oauth", tags=["oauth"])
api_router = APIRouter(prefix="/api", tags=["membership"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = logging.getLogger(__name__)

SessionDependency = Annotated[PatronSession, Depends(get_session)]
PatronDependency = Annotated[AuthenticatedPatron, Depends(require_patron)]

_EXCHANGE_ERROR_STATUS = {
    ExchangeErrorKind.INVALID_GRANT: HTTPStatus.BAD_REQUEST,
    ExchangeErrorKind.INVALID_CLIENT: HTTPStatus.INTERNAL_SERVER_ERROR,
    ExchangeErrorKind.NETWORK_ERROR: HTTPStatus.BAD_GATEWAY,
    ExchangeErrorKind.REMOTE_ERROR: HTTPStatus.BAD_GATEWAY,
}

_SETUP_STEPS = [
    "1. Log in via Patreon (/oauth/login)",
    "2. Visit /api/admin/tiers to get tier IDs",
    "3. Add them to PATREON_TIER_IDS and restart the service",
]


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _fetch_error_to_http(exc: PatreonFetchError, session: PatronSession) -> HTTPException:
    if exc.kind is FetchErrorKind.UNAUTHENTICATED:
        session.clear()
        return HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Patreon authorization expired. Log in again.",
        )
    return HTTPException(
        status_code=HTTPStatus.BAD_GATEWAY,
        detail="Patreon is unavailable; try again shortly.",
    )


async def _verify(patron: AuthenticatedPatron, session: PatronSession) -> TierVerification:
    try:
        return await patron.verify()
    except PatreonFetchError as exc:
        logger.warning("Membership lookup for %s failed: %s", patron.patreon_id, exc.kind.value)
        raise _fetch_error_to_http(exc, session) from exc


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@oauth_router.get("/login")
async def start_patreon_login(
    oauth_client: Annotated[PatreonOAuthClient, Depends(get_patreon_client)],
) -> RedirectResponse:
    """Send the browser to the Patreon consent screen."""
    try:
        authorization_url = oauth_client.build_authorization_url()
    except OAuthTokenExchangeError as exc:
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Patreon login is not configured.",
        ) from exc
    return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)


@oauth_router.get("/redirect")
async def handle_patreon_callback(
    request: Request,
    session: SessionDependency,
    lifecycle: Annotated[TokenLifecycleManager, Depends(get_token_lifecycle_manager)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    code: Optional[str] = Query(None, description="Authorization code returned by Patreon."),
    error: Optional[str] = Query(None, description="Error reported by Patreon, if any."),
) -> Response:
    """Complete the OAuth exchange, store credentials and start the session."""
    if error:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail=f"Patreon authorization failed: {error}"
        )
    if not code:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Authorization code missing."
        )

    try:
        login = await lifecycle.login_with_code(code)
    except OAuthTokenExchangeError as exc:
        logger.warning("Authorization code exchange failed: %s", exc.kind.value)
        raise HTTPException(
            status_code=_EXCHANGE_ERROR_STATUS[exc.kind],
            detail=f"Failed to exchange authorization code ({exc.kind.value}).",
        ) from exc
    except PatreonFetchError as exc:
        logger.warning("Identity lookup after login failed: %s", exc.kind.value)
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail="Could not read your Patreon identity.",
        ) from exc

    session.login(login.patron.patreon_id)
    verification = await _verify(login.patron, session)

    if settings.frontend_base_url and _wants_html(request):
        return RedirectResponse(
            url=str(settings.frontend_base_url), status_code=HTTPStatus.SEE_OTHER
        )

    result = LoginResponse(
        patreon_id=login.patron.patreon_id,
        full_name=login.patron.record.full_name,
        persisted=login.persisted,
        membership=TierInfoResponse.from_verification(verification),
    )
    return JSONResponse(content=result.model_dump())


@oauth_router.api_route("/logout", methods=["GET", "POST"])
async def logout(session: SessionDependency) -> dict:
    """Forget the session. The stored credential record is kept."""
    session.clear()
    return {"status": "logged_out"}


@api_router.get("/verify", response_model=VerificationResponse)
async def verify_patron(
    patron: PatronDependency, session: SessionDependency
) -> VerificationResponse:
    """Report whether the visitor is an active patron of one of our tiers."""
    return VerificationResponse.from_verification(await _verify(patron, session))


@api_router.get("/user/tier", response_model=TierInfoResponse)
async def get_user_tier(patron: PatronDependency, session: SessionDependency) -> TierInfoResponse:
    return TierInfoResponse.from_verification(await _verify(patron, session))


@api_router.get("/admin/tiers", response_model=TierListResponse)
async def list_my_tiers(
    patron: PatronDependency,
    session: SessionDependency,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> TierListResponse:
    """List tiers visible in the caller's membership data, for filling in PATREON_TIER_IDS."""
    try:
        snapshot = await patron.membership_snapshot()
    except PatreonFetchError as exc:
        raise _fetch_error_to_http(exc, session) from exc
    return TierListResponse.build(
        list_tiers(snapshot),
        currency_symbol=settings.patreon.currency_symbol,
        message="Copy these tier IDs to PATREON_TIER_IDS and restart the service.",
    )


@api_router.get("/admin/campaigns/{campaign_id}/members", response_model=MemberPageResponse)
async def list_campaign_members(
    campaign_id: str,
    patron: PatronDependency,
    session: SessionDependency,
    oauth_client: Annotated[PatreonOAuthClient, Depends(get_patreon_client)],
    cursor: Optional[str] = Query(None, description="Opaque cursor from a previous page."),
) -> MemberPageResponse:
    """One page of a campaign's members, using the caller's creator token."""
    try:
        page = await oauth_client.fetch_campaign_members(
            patron.record.access_token, campaign_id, cursor
        )
    except PatreonFetchError as exc:
        raise _fetch_error_to_http(exc, session) from exc
    return MemberPageResponse(
        members=[MemberSummary.from_membership(member) for member in page.members],
        next_cursor=page.next_cursor,
        total=page.total,
    )


@api_router.get("/public/campaign-tiers", response_model=TierListResponse)
async def list_campaign_tiers(
    session: SessionDependency,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    oauth_client: Annotated[PatreonOAuthClient, Depends(get_patreon_client)],
    patron: Annotated[Optional[AuthenticatedPatron], Depends(get_current_patron)],
) -> TierListResponse:
    """Tiers of the configured campaign, or setup instructions when none is set."""
    campaign_id = settings.patreon.campaign_id
    if not campaign_id:
        return TierListResponse.build(
            [],
            message="PATREON_CAMPAIGN_ID is not configured. " + " ".join(_SETUP_STEPS),
        )

    access_token = patron.record.access_token if patron else None
    try:
        document = await oauth_client.fetch_campaign_tiers(campaign_id, access_token)
    except PatreonFetchError as exc:
        raise _fetch_error_to_http(exc, session) from exc
    return TierListResponse.build(
        document.tiers(),
        campaign_id=campaign_id,
        currency_symbol=settings.patreon.currency_symbol,
    )


@webhook_router.post("/patreon", response_model=WebhookAck)
async def patreon_webhook(
    request: Request,
    webhook_service: Annotated[PatreonWebhookService, Depends(get_webhook_service)],
) -> WebhookAck:
    """Apply a signed membership notification from Patreon."""
    body = await request.body()
    try:
        outcome = await webhook_service.handle(
            body,
            request.headers.get("x-patreon-event"),
            request.headers.get("x-patreon-signature"),
        )
    except WebhookSignatureError as exc:
        logger.warning("Rejected webhook: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED, detail="Invalid signature"
        ) from exc
    except CredentialStoreUnavailableError as exc:
        logger.error("Webhook processing failed, asking Patreon to retry: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Error processing webhook",
        ) from exc
    return WebhookAck(status=outcome.value)


__all__ = ["api_router", "oauth_router", "router", "webhook_router"]
