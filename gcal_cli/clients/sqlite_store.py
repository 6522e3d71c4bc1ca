"""SQLite-backed durable key-value storage."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class SQLiteKeyValueStore:
    """Simple key-value store using a single table keyed by ``key``.

    Every write commits before returning and the connection runs with
    ``synchronous=FULL``, so a returned ``put`` has reached the disk.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self._db_path, check_same_thread=False)) as conn:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA synchronous=FULL")
            with conn:
                yield conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_records (
                    key TEXT NOT NULL PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def put(self, key: str, value: bytes) -> None:
        if not key:
            raise ValueError("Records must have a non-empty key")

        updated_at = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_records (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, sqlite3.Binary(value), updated_at),
            )

    def get(self, key: str) -> Optional[bytes]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM kv_records WHERE key = ?",
                (key,),
            ).fetchone()
        if not row:
            return None
        return bytes(row["value"])

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM kv_records WHERE key = ?", (key,))
        return cursor.rowcount > 0


__all__ = ["SQLiteKeyValueStore"]
