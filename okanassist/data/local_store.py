"""
OkanAssist — Local durable key-value store.

Holds the last known session and the user's profile as JSON blobs so a
restart can attempt session restoration before any network call.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

USER_DATA_KEY = "userData"
SESSION_KEY = "session"


class LocalStore:
    """SQLite-backed storage for small JSON values."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from okanassist.config import settings
            db_path = settings.LOCAL_STORE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key        TEXT PRIMARY KEY,
                    value      TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
        logger.debug("Local store initialized at %s", self._db_path)

    def get_json(self, key: str) -> Any | None:
        """Return the decoded value for `key`, or None if absent or corrupt."""
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt local value for '%s'", key)
            self.remove(key)
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, items: dict[str, Any]) -> None:
        """Write several keys in one transaction."""
        now = datetime.now().isoformat()
        rows = [(key, json.dumps(value), now) for key, value in items.items()]
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value, updated_at = excluded.updated_at
                """,
                rows,
            )
        logger.debug("Stored local keys: %s", ", ".join(items))

    def remove(self, *keys: str) -> None:
        if not keys:
            return
        with self._connect() as conn:
            conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
        logger.debug("Removed local keys: %s", ", ".join(keys))

    def has(self, key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM kv WHERE key = ?", (key,)).fetchone()
        return row is not None
