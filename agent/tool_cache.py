"""SQLite key/value cache for expensive tool results."""

from __future__ import annotations

import json
import os
import sqlite3
import time
from typing import Any


class ToolCache:
    """
    Persistent cache with a per-entry time to live.
    Values must be JSON-serializable. A TTL of 0 means the entry never expires.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ensure_directory()
        self._init_db()

    def store(self, key: str, value: Any, ttl_seconds: float = 0) -> None:
        """Insert or replace a cached value."""
        expires_at = time.time() + ttl_seconds if ttl_seconds > 0 else None
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO cache (key, value_json, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value_json = excluded.value_json,
                    expires_at = excluded.expires_at
                """,
                (key, json.dumps(value), expires_at),
            )

    def retrieve(self, key: str) -> Any | None:
        """Return the cached value, or None when missing or expired."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value_json, expires_at FROM cache WHERE key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] is not None and row["expires_at"] <= time.time():
                conn.execute("DELETE FROM cache WHERE key = ?", (key,))
                return None
        return json.loads(row["value_json"])

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM cache WHERE key = ?", (key,))
            return cur.rowcount > 0

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (time.time(),),
            )
            return cur.rowcount

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    expires_at REAL
                )
                """
            )

    def _ensure_directory(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(directory, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn
