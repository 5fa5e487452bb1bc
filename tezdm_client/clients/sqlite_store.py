"""SQLite-backed key-value storage for local client state."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, Mapping, Optional


class SQLiteKeyValueStore:
    """Text values keyed by ``(namespace, key)`` in a single table."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path).expanduser()
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_entries (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (namespace, key)
                )
                """
            )

    def put(self, namespace: str, key: str, value: str) -> None:
        self.put_many(namespace, {key: value})

    def put_many(self, namespace: str, values: Mapping[str, str]) -> None:
        """Write several keys in one transaction; either all land or none do."""
        if not namespace:
            raise ValueError("namespace must not be empty")
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO kv_entries (namespace, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET value = excluded.value
                """,
                [(namespace, key, value) for key, value in values.items()],
            )

    def get(self, namespace: str, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM kv_entries WHERE namespace = ? AND key = ?",
                (namespace, key),
            ).fetchone()
        if not row:
            return None
        return row["value"]

    def delete(self, namespace: str, key: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM kv_entries WHERE namespace = ? AND key = ?",
                (namespace, key),
            )

    def clear_namespace(self, namespace: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_entries WHERE namespace = ?", (namespace,))

    def items(self, namespace: str) -> Dict[str, str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key, value FROM kv_entries WHERE namespace = ?",
                (namespace,),
            ).fetchall()
        return {row["key"]: row["value"] for row in rows}


__all__ = ["SQLiteKeyValueStore"]
