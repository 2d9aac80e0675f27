from __future__ import annotations

from typing import Optional

import psycopg2

from domain.repositories import KeyValueStorage


class PostgresKeyValueStorage(KeyValueStorage):
    """
    Postgres-backed implementation of `KeyValueStorage`.

    Uses the same `client_storage` layout as the SQLite implementation so
    deployments can move between the two without touching the
    application layer.
    """

    def __init__(self, db_params: dict, owner: str) -> None:
        self._db_params = db_params
        self._owner = str(owner)
        self._ensure_table()

    def _get_connection(self):
        return psycopg2.connect(**self._db_params)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
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
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT value
                    FROM client_storage
                    WHERE owner = %s AND key = %s
                    """,
                    (self._owner, key),
                )
                row = cur.fetchone()
                if not row:
                    return None
                return str(row[0])

    def set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO client_storage (owner, key, value)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (owner, key)
                    DO UPDATE SET value = EXCLUDED.value
                    """,
                    (self._owner, key, value),
                )
                conn.commit()

    def delete(self, key: str) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM client_storage WHERE owner = %s AND key = %s",
                    (self._owner, key),
                )
                conn.commit()
