"""
Database management for RxTutor.
A small SQLite key-value store holding JSON documents under fixed keys.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional

from config import Config

logger = logging.getLogger(__name__)

# Independent keys; each is read and written on its own
PROFILE_KEY = "rxt-learning-profile"
BANKS_KEY = "rxt-question-banks"
CONFIDENCE_KEY = "rxt-histo-conf"
BOOKMARKS_KEY = "rxt-histo-bookmarks"
OBJECTIVES_KEY = "rxt-objectives"


class Database:
    """Manages the SQLite key-value store."""

    def __init__(self, db_path: Optional[Path] = None, timeout: float = 30.0):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. Uses Config.DB_PATH if not provided.
            timeout: Seconds to wait for a competing writer's lock
        """
        self.db_path = Path(db_path or Config.DB_PATH)
        self.timeout = timeout
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Establish database connection.

        Transactions are opened explicitly (see transaction()), so the
        connection runs in autocommit mode.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.conn:
            if self.conn.in_transaction:
                if exc_type is None:
                    self.conn.commit()
                else:
                    self.conn.rollback()
            self.close()

    def initialize(self):
        """Create the schema."""
        if not self.conn:
            self.connect()
        else:
            self._create_tables()

    def _create_tables(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)

    @contextmanager
    def transaction(self, immediate: bool = True) -> Iterator["Database"]:
        """Run a block inside one transaction.

        BEGIN IMMEDIATE takes the write lock up front, so a read-modify-write
        inside the block cannot interleave with another writer's.
        """
        if not self.conn:
            self.connect()
        self.conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield self
        except Exception:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    # Raw values
    def get_raw(self, key: str) -> Optional[str]:
        cursor = self.conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row["value"] if row else None

    def set_raw(self, key: str, value: str):
        self.conn.execute("""
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """, (key, value, datetime.now(timezone.utc).isoformat()))

    # JSON values
    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode the JSON stored under key.

        Missing keys and undecodable values both return `default`; a corrupt
        value is logged and otherwise ignored.
        """
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable value under {key!r}: {e}")
            return default

    def set_json(self, key: str, value: Any):
        self.set_raw(key, json.dumps(value, ensure_ascii=False))

    def delete(self, key: str) -> bool:
        cursor = self.conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def keys(self) -> List[str]:
        cursor = self.conn.execute("SELECT key FROM kv_store ORDER BY key")
        return [row["key"] for row in cursor.fetchall()]
