from __future__ import annotations

import sqlite3
from typing import Optional

from domain.repositories import KeyValueStorage


class SqliteKeyValueStorage(KeyValueStorage):
    """
    SQLite-backed implementation of `KeyValueStorage`.

    Rows live in a `client_storage` table scoped by `owner`, so several
    clients (chats, users) can share one database file while each still
    sees a single session record under the well-known key.
    """

    def __init__(self, db_path: str, owner: str) -> None:
        self._db_path = db_path
        self._owner = str(owner)
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS client_storage (
                    owner TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (owner, key)
                )
                """
            )
            conn.commit()

    def get(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT value FROM client_storage WHERE owner = ? AND key = ?",
                (self._owner, key),
            )
            row = cur.fetchone()
            if not row:
                return None
            return str(row[0])

    def set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO client_storage (owner, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT (owner, key)
                DO UPDATE SET value = excluded.value
                """,
                (self._owner, key, value),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "DELETE FROM client_storage WHERE owner = ? AND key = ?",
                (self._owner, key),
            )
            conn.commit()
