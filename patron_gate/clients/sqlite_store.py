"""SQLite-backed credential storage."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from patron_gate.clients.storage import (
    CREDENTIAL_FIELDS,
    MEMBERSHIP_FIELDS,
    CredentialStoreUnavailableError,
)

logger = logging.getLogger(__name__)


class SQLiteCredentialStore:
    """One row per Patreon user, upserted in a single statement."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        self._schema_ready = False

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            if self._db_path.parent and not self._db_path.parent.exists():
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._db_path, timeout=5.0, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise CredentialStoreUnavailableError(f"Cannot open {self._db_path}") from exc

        conn.row_factory = sqlite3.Row
        try:
            with conn:
                if not self._schema_ready:
                    self._ensure_schema(conn)
                yield conn
        except sqlite3.Error as exc:
            logger.error("SQLite credential store error: %s", exc)
            raise CredentialStoreUnavailableError(str(exc)) from exc
        finally:
            conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS credentials (
                patreon_id TEXT PRIMARY KEY,
                email TEXT NOT NULL DEFAULT '',
                full_name TEXT NOT NULL DEFAULT '',
                access_token TEXT NOT NULL,
                refresh_token TEXT NOT NULL,
                token_expiry_ms INTEGER NOT NULL,
                created_at_ms INTEGER NOT NULL,
                updated_at_ms INTEGER NOT NULL,
                membership_status TEXT,
                membership_amount_cents INTEGER,
                membership_last_updated_ms INTEGER,
                last_webhook_event_type TEXT
            )
            """
        )
        self._schema_ready = True

    def get_item(self, patreon_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM credentials WHERE patreon_id = ?",
                (patreon_id,),
            ).fetchone()
        if not row:
            return None
        return {key: row[key] for key in row.keys() if row[key] is not None}

    def upsert_credentials(
        self, patreon_id: str, fields: Dict[str, Any], *, created_at_ms: int
    ) -> None:
        missing = [name for name in CREDENTIAL_FIELDS if name not in fields]
        if missing:
            raise ValueError(f"Credential write is missing fields: {', '.join(missing)}")

        columns = ", ".join(CREDENTIAL_FIELDS)
        placeholders = ", ".join("?" for _ in CREDENTIAL_FIELDS)
        assignments = ", ".join(f"{name} = excluded.{name}" for name in CREDENTIAL_FIELDS)
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO credentials (patreon_id, created_at_ms, {columns})
                VALUES (?, ?, {placeholders})
                ON CONFLICT(patreon_id) DO UPDATE SET {assignments}
                """,
                (patreon_id, created_at_ms, *(fields[name] for name in CREDENTIAL_FIELDS)),
            )

    def update_membership(self, patreon_id: str, fields: Dict[str, Any]) -> bool:
        assignments = ", ".join(f"{name} = ?" for name in MEMBERSHIP_FIELDS)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE credentials SET {assignments} WHERE patreon_id = ?",
                (*(fields.get(name) for name in MEMBERSHIP_FIELDS), patreon_id),
            )
        return cursor.rowcount > 0


__all__ = ["SQLiteCredentialStore"]
