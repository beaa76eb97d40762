# src/cache/sqlite_store.py - v1
"""SQLite-based durable store (DURABLE_CACHE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from galleryai.cache.base_durable_store import BaseDurableStore
from galleryai.cache.models import DurableRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS durable_cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    timestamp REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_durable_cache_ts ON durable_cache(timestamp);
"""


class SqliteDurableStore(BaseDurableStore):
    """SQLite-backed store; expiry cleanup runs as a single DELETE."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, key: str) -> DurableRecord | None:
        row = self._conn.execute(
            "SELECT value, timestamp FROM durable_cache WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        try:
            return DurableRecord(value=json.loads(row[0]), timestamp=row[1])
        except ValueError as e:
            logger.warning("Failed to deserialize durable entry %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO durable_cache (key, value, timestamp) VALUES (?, ?, ?)",
            (key, json.dumps(value, ensure_ascii=False), time.time()),
        )
        self._conn.commit()

    async def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM durable_cache WHERE key = ?", (key,))
        self._conn.commit()

    async def keys(self) -> list[str]:
        rows = self._conn.execute("SELECT key FROM durable_cache ORDER BY key").fetchall()
        return [row[0] for row in rows]

    async def clear(self) -> None:
        self._conn.execute("DELETE FROM durable_cache")
        self._conn.commit()

    async def cleanup(self, ttl_s: float) -> int:
        cursor = self._conn.execute(
            "DELETE FROM durable_cache WHERE timestamp < ?", (time.time() - ttl_s,)
        )
        self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
