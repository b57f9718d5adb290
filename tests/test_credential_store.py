try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import sqlite3

import pytest

from patron_gate.clients.sqlite_store import SQLiteCredentialStore
from patron_gate.clients.storage import CredentialStoreUnavailableError
from patron_gate.models.credentials import MembershipUpdate, ProfileFields, TokenTriple
from patron_gate.services.credential_store import CredentialStore
from patron_gate.services.token_cipher import TokenCipherService

pytestmark = pytest.mark.anyio

FIRST_WRITE = 1_700_000_000_000
SECOND_WRITE = FIRST_WRITE + 60_000


@pytest.fixture()
def backend(tmp_path) -> SQLiteCredentialStore:
    return SQLiteCredentialStore(str(tmp_path / "nested" / "credentials.db"))


@pytest.fixture()
def store(backend) -> CredentialStore:
    return CredentialStore(backend, TokenCipherService(secrets=["store-secret"]))


def _count_rows(db_path) -> int:
    with sqlite3.connect(db_path) as conn:
        return conn.execute("SELECT COUNT(*) FROM credentials").fetchone()[0]


async def test_upsert_is_idempotent_and_keeps_created_at(store, tmp_path) -> None:
    await store.upsert(
        "patron-1",
        ProfileFields(email="old@example.com", full_name="Old Name"),
        TokenTriple(access_token="access-1", refresh_token="refresh-1", expires_in=3600),
        now_ms=FIRST_WRITE,
    )
    await store.upsert(
        "patron-1",
        ProfileFields(email="new@example.com", full_name="New Name"),
        TokenTriple(access_token="access-2", refresh_token="refresh-2", expires_in=7200),
        now_ms=SECOND_WRITE,
    )

    record = await store.get("patron-1")

    assert _count_rows(tmp_path / "nested" / "credentials.db") == 1
    assert record is not None
    assert record.access_token == "access-2"
    assert record.refresh_token == "refresh-2"
    assert record.token_expiry_ms == SECOND_WRITE + 7_200_000
    assert record.created_at_ms == FIRST_WRITE
    assert record.updated_at_ms == SECOND_WRITE
    assert record.email == "new@example.com"
    assert record.full_name == "New Name"


async def test_tokens_are_encrypted_at_rest(store, backend) -> None:
    await store.upsert(
        "patron-1",
        ProfileFields(),
        TokenTriple(access_token="plain-access", refresh_token="plain-refresh", expires_in=60),
        now_ms=FIRST_WRITE,
    )

    raw = backend.get_item("patron-1")

    assert raw["access_token"] != "plain-access"
    assert raw["refresh_token"] != "plain-refresh"
    assert "plain" not in raw["access_token"]


async def test_get_missing_record_returns_none(store) -> None:
    assert await store.get("nobody") is None


async def test_record_written_with_unknown_key_reads_as_missing(backend) -> None:
    writer = CredentialStore(backend, TokenCipherService(secrets=["old-secret"]))
    reader = CredentialStore(backend, TokenCipherService(secrets=["different-secret"]))
    await writer.upsert(
        "patron-1",
        ProfileFields(),
        TokenTriple(access_token="a", refresh_token="r", expires_in=60),
        now_ms=FIRST_WRITE,
    )

    assert await reader.get("patron-1") is None


async def test_rotated_secret_still_reads_old_records(backend) -> None:
    writer = CredentialStore(backend, TokenCipherService(secrets=["old-secret"]))
    reader = CredentialStore(backend, TokenCipherService(secrets=["new-secret", "old-secret"]))
    await writer.upsert(
        "patron-1",
        ProfileFields(),
        TokenTriple(access_token="a", refresh_token="r", expires_in=60),
        now_ms=FIRST_WRITE,
    )

    record = await reader.get("patron-1")

    assert record is not None
    assert record.access_token == "a"


async def test_membership_update_touches_only_membership_fields(store) -> None:
    await store.upsert(
        "patron-1",
        ProfileFields(email="p@example.com", full_name="Pat"),
        TokenTriple(access_token="access-1", refresh_token="refresh-1", expires_in=1),
        now_ms=FIRST_WRITE,
    )

    matched = await store.apply_membership_update(
        "patron-1",
        MembershipUpdate(
            status="declined_patron",
            amount_cents=0,
            event_type="members:update",
            at_ms=SECOND_WRITE,
        ),
    )
    record = await store.get("patron-1")

    assert matched is True
    assert record.membership_status == "declined_patron"
    assert record.membership_amount_cents == 0
    assert record.membership_last_updated_ms == SECOND_WRITE
    assert record.last_webhook_event_type == "members:update"
    assert record.access_token == "access-1"
    assert record.token_expiry_ms == FIRST_WRITE + 1000
    assert record.updated_at_ms == FIRST_WRITE


async def test_membership_fields_absent_until_first_webhook(store) -> None:
    await store.upsert(
        "patron-1",
        ProfileFields(),
        TokenTriple(access_token="a", refresh_token="r", expires_in=60),
        now_ms=FIRST_WRITE,
    )

    record = await store.get("patron-1")

    assert record.membership_status is None
    assert record.last_webhook_event_type is None


async def test_membership_update_for_unknown_user_is_a_no_op(store, backend) -> None:
    matched = await store.apply_membership_update(
        "ghost",
        MembershipUpdate(event_type="members:create", at_ms=FIRST_WRITE),
    )

    assert matched is False
    assert backend.get_item("ghost") is None


async def test_unreachable_database_is_distinct_from_missing_record(tmp_path) -> None:
    # A directory cannot be opened as a database file.
    broken = CredentialStore(
        SQLiteCredentialStore(str(tmp_path)), TokenCipherService(secrets=["s"])
    )

    with pytest.raises(CredentialStoreUnavailableError):
        await broken.get("patron-1")

    with pytest.raises(CredentialStoreUnavailableError):
        await broken.apply_membership_update(
            "patron-1", MembershipUpdate(event_type="members:update", at_ms=FIRST_WRITE)
        )
