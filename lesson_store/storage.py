"""Lightweight SQLite-backed key/value store for the local lesson cache."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable


class CacheStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        """Create a connection, ensuring the parent directory exists."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self) -> None:
        schema_sql = Path(__file__).with_name("schema.sql").read_text(encoding="utf-8")
        with self._connect() as con:
            con.executescript(schema_sql)

    def get(self, key: str) -> str | None:
        with self._connect() as con:
            row = con.execute("SELECT value FROM cache_entries WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._connect() as con:
            con.execute(
                "INSERT INTO cache_entries(key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value),
            )
            con.commit()

    def set_many(self, items: Iterable[tuple[str, str]]) -> None:
        """Write several keys in one transaction."""

        buffered = list(items)
        if not buffered:
            return
        with self._connect() as con:
            con.executemany(
                "INSERT INTO cache_entries(key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                buffered,
            )
            con.commit()

    def delete(self, key: str) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            con.commit()

