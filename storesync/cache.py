"""Local SQLite cache holding the last known settings document."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import SerializationError

logger = logging.getLogger(__name__)

CACHE_SCHEMA = """
-- One row per document namespace, value is the whole document as JSON
CREATE TABLE IF NOT EXISTS cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class LocalCache:
    """Persisted key/value slot for one document namespace.

    Plain last-write-wins overwrite; no transactions beyond the single
    statement each operation issues.
    """

    def __init__(self, db_path: str | Path, namespace: str = "storesync_settings"):
        """Initialize the cache.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
            namespace: Key under which the document is stored.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self.namespace = namespace
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.executescript(CACHE_SCHEMA)
        self._conn.commit()

        logger.info(f"LocalCache connected to {self.db_path} (key={self.namespace})")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def get(self) -> dict[str, Any] | None:
        """Return the cached document, or None if the slot is empty.

        Raises:
            SerializationError: The stored value is not a JSON object.
        """
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT value FROM cache WHERE key = ?", (self.namespace,)
        ).fetchone()
        if row is None:
            return None

        try:
            document = json.loads(row[0])
        except json.JSONDecodeError as e:
            raise SerializationError(f"Cached document is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise SerializationError("Cached document is not a JSON object")
        return document

    def set(self, document: dict[str, Any]) -> None:
        """Overwrite the slot with ``document``."""
        try:
            value = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Document is not serializable: {e}") from e

        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT INTO cache (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (self.namespace, value, datetime.now().isoformat()),
        )
        conn.commit()
        logger.debug(f"Cached document under {self.namespace} ({len(value)} bytes)")

    def clear(self) -> None:
        """Remove the cached document."""
        conn = self._ensure_connected()
        conn.execute("DELETE FROM cache WHERE key = ?", (self.namespace,))
        conn.commit()

    def updated_at(self) -> datetime | None:
        """When the slot was last written, if ever."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT updated_at FROM cache WHERE key = ?", (self.namespace,)
        ).fetchone()
        return datetime.fromisoformat(row[0]) if row else None
