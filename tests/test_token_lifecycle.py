try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from patron_gate.clients.patreon import (
    ExchangeErrorKind,
    FetchErrorKind,
    OAuthTokenExchangeError,
    PatreonFetchError,
)
from patron_gate.clients.storage import CredentialStoreUnavailableError
from patron_gate.models.credentials import CredentialRecord, ProfileFields, TokenTriple
from patron_gate.schemas.membership import MembershipSnapshot
from patron_gate.services.credential_store import CredentialStore
from patron_gate.services.tier_policy import TierPolicy
from patron_gate.services.token_cipher import TokenCipherService
from patron_gate.services.token_lifecycle import (
    REFRESH_BUFFER_MS,
    TokenLifecycleManager,
    is_token_expired,
)

pytestmark = pytest.mark.anyio

NOW = 1_700_000_000_000
MINUTE = 60


class InMemoryBackend:
    def __init__(self) -> None:
        self.items: dict[str, dict] = {}
        self.unavailable = False
        self.writes = 0

    def _check(self) -> None:
        if self.unavailable:
            raise CredentialStoreUnavailableError("backend down")

    def get_item(self, patreon_id: str):
        self._check()
        item = self.items.get(patreon_id)
        return dict(item) if item else None

    def upsert_credentials(self, patreon_id, fields, *, created_at_ms):
        self._check()
        self.writes += 1
        item = self.items.setdefault(
            patreon_id, {"patreon_id": patreon_id, "created_at_ms": created_at_ms}
        )
        item.update(fields)

    def update_membership(self, patreon_id, fields):
        self._check()
        if patreon_id not in self.items:
            return False
        self.items[patreon_id].update(fields)
        return True


def _snapshot(user_id: str = "patron-1", tier_id: str = "T1") -> MembershipSnapshot:
    return MembershipSnapshot.parse(
        {
            "data": {
                "type": "user",
                "id": user_id,
                "attributes": {"email": "pat@example.com", "full_name": "Pat Patron"},
            },
            "included": [
                {
                    "type": "member",
                    "id": "m1",
                    "attributes": {
                        "patron_status": "active_patron",
                        "currently_entitled_amount_cents": 500,
                    },
                    "relationships": {
                        "currently_entitled_tiers": {"data": [{"type": "tier", "id": tier_id}]}
                    },
                },
                {"type": "tier", "id": tier_id, "attributes": {"title": "Gold"}},
            ],
        }
    )


class FakeOAuthClient:
    def __init__(self, *, refresh_error: Exception | None = None) -> None:
        self.refresh_error = refresh_error
        self.refresh_calls: list[str] = []
        self.snapshot_calls: list[str] = []
        self.exchange_calls: list[str] = []

    async def exchange_code(self, code: str) -> TokenTriple:
        self.exchange_calls.append(code)
        return TokenTriple(access_token="login-access", refresh_token="login-refresh", expires_in=3600)

    async def refresh(self, refresh_token: str) -> TokenTriple:
        self.refresh_calls.append(refresh_token)
        if self.refresh_error:
            raise self.refresh_error
        return TokenTriple(
            access_token="refreshed-access", refresh_token="refreshed-refresh", expires_in=3600
        )

    async def fetch_membership_snapshot(self, access_token: str) -> MembershipSnapshot:
        self.snapshot_calls.append(access_token)
        return _snapshot()


@pytest.fixture()
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture()
def store(backend) -> CredentialStore:
    return CredentialStore(backend, TokenCipherService(secrets=["lifecycle"]), clock=lambda: NOW)


async def _seed(store: CredentialStore, *, expires_in_seconds: int) -> None:
    await store.upsert(
        "patron-1",
        ProfileFields(email="pat@example.com", full_name="Pat Patron"),
        TokenTriple(access_token="stored-access", refresh_token="stored-refresh", expires_in=expires_in_seconds),
        now_ms=NOW,
    )


def _manager(store, oauth) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        store, oauth, TierPolicy.from_ids(["T1"], 300), clock=lambda: NOW
    )


def test_is_token_expired_honours_five_minute_buffer() -> None:
    def record(expiry_ms: int) -> CredentialRecord:
        return CredentialRecord(
            patreon_id="p",
            access_token="a",
            refresh_token="r",
            token_expiry_ms=expiry_ms,
            created_at_ms=0,
            updated_at_ms=0,
        )

    assert REFRESH_BUFFER_MS == 300_000
    assert is_token_expired(record(NOW + 4 * MINUTE * 1000), NOW) is True
    assert is_token_expired(record(NOW + 5 * MINUTE * 1000), NOW) is True
    assert is_token_expired(record(NOW + 6 * MINUTE * 1000), NOW) is False
    assert is_token_expired(record(NOW - 1), NOW) is True


async def test_no_session_id_is_anonymous_without_lookup(store, backend) -> None:
    backend.unavailable = True
    resolution = await _manager(store, FakeOAuthClient()).resolve(None)

    assert resolution.patron is None
    assert resolution.clear_session is False


async def test_session_without_record_clears_session(store) -> None:
    resolution = await _manager(store, FakeOAuthClient()).resolve("ghost")

    assert resolution.patron is None
    assert resolution.clear_session is True


async def test_store_outage_degrades_without_clearing_session(store, backend) -> None:
    await _seed(store, expires_in_seconds=6 * MINUTE)
    backend.unavailable = True

    resolution = await _manager(store, FakeOAuthClient()).resolve("patron-1")

    assert resolution.patron is None
    assert resolution.clear_session is False
    assert resolution.degraded is True


async def test_valid_token_attaches_identity_without_refresh(store) -> None:
    await _seed(store, expires_in_seconds=6 * MINUTE)
    oauth = FakeOAuthClient()

    resolution = await _manager(store, oauth).resolve("patron-1")

    assert resolution.authenticated
    assert resolution.patron.record.access_token == "stored-access"
    assert oauth.refresh_calls == []
    assert oauth.snapshot_calls == []


async def test_token_inside_buffer_is_refreshed_and_persisted(store, backend) -> None:
    await _seed(store, expires_in_seconds=4 * MINUTE)
    oauth = FakeOAuthClient()

    resolution = await _manager(store, oauth).resolve("patron-1")

    assert oauth.refresh_calls == ["stored-refresh"]
    patron = resolution.patron
    assert patron.record.access_token == "refreshed-access"
    assert patron.record.refresh_token == "refreshed-refresh"
    assert patron.record.token_expiry_ms == NOW + 3_600_000
    assert patron.record.full_name == "Pat Patron"

    stored = await store.get("patron-1")
    assert stored.access_token == "refreshed-access"
    assert stored.refresh_token == "refreshed-refresh"
    assert stored.token_expiry_ms == NOW + 3_600_000
    assert stored.email == "pat@example.com"
    assert stored.created_at_ms == NOW


@pytest.mark.parametrize(
    "error",
    [
        OAuthTokenExchangeError(ExchangeErrorKind.INVALID_GRANT),
        OAuthTokenExchangeError(ExchangeErrorKind.NETWORK_ERROR),
        OAuthTokenExchangeError(ExchangeErrorKind.INVALID_CLIENT),
    ],
)
async def test_refresh_failure_logs_out_without_raising(store, backend, error) -> None:
    await _seed(store, expires_in_seconds=0)
    writes_before = backend.writes

    resolution = await _manager(store, FakeOAuthClient(refresh_error=error)).resolve("patron-1")

    assert resolution.patron is None
    assert resolution.clear_session is True
    assert backend.writes == writes_before
    assert (await store.get("patron-1")).access_token == "stored-access"


async def test_membership_snapshot_is_lazy_and_uses_refreshed_token(store) -> None:
    await _seed(store, expires_in_seconds=0)
    oauth = FakeOAuthClient()
    resolution = await _manager(store, oauth).resolve("patron-1")

    assert oauth.snapshot_calls == []

    verification = await resolution.patron.verify()
    await resolution.patron.membership_snapshot()

    assert oauth.snapshot_calls == ["refreshed-access"]
    assert verification.is_patron is True
    assert verification.tier_name == "Gold"


async def test_membership_fetch_errors_reach_the_caller(store) -> None:
    await _seed(store, expires_in_seconds=6 * MINUTE)

    class RejectingOAuth(FakeOAuthClient):
        async def fetch_membership_snapshot(self, access_token):
            raise PatreonFetchError(FetchErrorKind.UNAUTHENTICATED)

    resolution = await _manager(store, RejectingOAuth()).resolve("patron-1")

    with pytest.raises(PatreonFetchError):
        await resolution.patron.verify()


async def test_login_with_code_persists_profile_and_tokens(store) -> None:
    oauth = FakeOAuthClient()

    login = await _manager(store, oauth).login_with_code("auth-code")

    assert login.persisted is True
    assert login.patron.patreon_id == "patron-1"
    assert oauth.exchange_calls == ["auth-code"]
    stored = await store.get("patron-1")
    assert stored.access_token == "login-access"
    assert stored.refresh_token == "login-refresh"
    assert stored.token_expiry_ms == NOW + 3_600_000
    assert stored.email == "pat@example.com"
    assert stored.full_name == "Pat Patron"

    await login.patron.verify()
    assert oauth.snapshot_calls == ["login-access"]


async def test_login_survives_store_outage(store, backend) -> None:
    backend.unavailable = True

    login = await _manager(store, FakeOAuthClient()).login_with_code("auth-code")

    assert login.persisted is False
    assert login.patron.record.access_token == "login-access"


async def test_login_without_identity_is_an_upstream_error(store) -> None:
    class NoIdentityOAuth(FakeOAuthClient):
        async def fetch_membership_snapshot(self, access_token):
            return MembershipSnapshot.parse({"data": None})

    with pytest.raises(PatreonFetchError) as excinfo:
        await _manager(store, NoIdentityOAuth()).login_with_code("auth-code")

    assert excinfo.value.kind is FetchErrorKind.UPSTREAM_ERROR
