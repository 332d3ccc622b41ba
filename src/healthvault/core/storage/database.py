"""SQLite working-copy database for the HealthVault metric store.

Handles connection lifecycle and schema creation. The database file handled
here is always the plaintext working copy; EncryptedStore decides when it
exists and seals it back to disk.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per health sample; timestamps are seconds since the Unix epoch
CREATE TABLE IF NOT EXISTS health_metrics (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    type        TEXT NOT NULL,
    value       REAL NOT NULL,
    unit        TEXT,
    start_date  REAL NOT NULL,
    end_date    REAL,
    source      TEXT,
    created_at  REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_health_metrics_type  ON health_metrics(type);
CREATE INDEX IF NOT EXISTS idx_health_metrics_dates ON health_metrics(start_date, end_date);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class MetricDatabase:
    """SQLite connection manager for the plaintext working copy.

    The journal stays in rollback (DELETE) mode so the whole database lives
    in a single file that can be read back and sealed after ``close()``.

    Usage::

        db = MetricDatabase(data_dir / "tmp" / "vault_decrypted.sqlite")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and ensure the schema exists.

        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # Serialization is done by EncryptedStore, not by SQLite's thread check.
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        try:
            self._conn.execute("PRAGMA journal_mode=DELETE")
            self._ensure_schema()
        except sqlite3.DatabaseError:
            self._conn.close()
            self._conn = None
            raise
        logger.debug("Working database opened: %s", self._db_path)

    def _ensure_schema(self) -> None:
        conn = self.connection
        conn.executescript(_SCHEMA_V1)

        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        current_version = row[0] if row[0] is not None else 0
        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def close(self) -> None:
        """Commit pending work and close the connection.

        If the commit fails the connection is left open and the error
        propagates.
        """
        if self._conn is not None:
            self._conn.commit()
            self._conn.close()
            self._conn = None
            logger.debug("Working database closed: %s", self._db_path)
