"""Metric repository — typed reads and writes against the unlocked vault.

Every call goes through ``EncryptedStore.session()``, which holds the
store's lock and raises ``StoreLocked`` when the vault is locked.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime

from healthvault.core.crypto.errors import RecordDecodeError
from healthvault.core.storage.encrypted_store import EncryptedStore
from healthvault.core.storage.models import MetricRecord, from_timestamp, to_timestamp

logger = logging.getLogger(__name__)

_INSERT_SQL = """INSERT INTO health_metrics
    (type, value, unit, start_date, end_date, source, created_at)
    VALUES (?, ?, ?, ?, ?, ?, ?)"""


class MetricRepository:
    """Insert and query health metrics inside the encrypted store.

    Usage::

        repo = MetricRepository(store)
        saved = repo.insert(record)          # saved.id is assigned
        rows = repo.fetch(None, start, end)  # ordered by start
    """

    def __init__(self, store: EncryptedStore) -> None:
        self._store = store

    @property
    def store(self) -> EncryptedStore:
        return self._store

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, record: MetricRecord) -> MetricRecord:
        """Persist a record and return a copy carrying its new id.

        Raises:
            StoreLocked: If the vault is locked.
        """
        with self._store.session() as conn:
            cursor = conn.execute(_INSERT_SQL, self._to_params(record))
            conn.commit()
        return record.with_id(cursor.lastrowid)

    def insert_many(self, records: Iterable[MetricRecord]) -> list[MetricRecord]:
        """Persist several records in a single transaction."""
        saved: list[MetricRecord] = []
        with self._store.session() as conn:
            try:
                for record in records:
                    cursor = conn.execute(_INSERT_SQL, self._to_params(record))
                    saved.append(record.with_id(cursor.lastrowid))
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
        logger.info("Inserted %d metric records", len(saved))
        return saved

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(
        self,
        kind: str | None,
        start: datetime,
        end: datetime,
    ) -> list[MetricRecord]:
        """Return records with ``start >= start`` whose end is absent or ``<= end``.

        The range test is deliberately asymmetric: the lower bound applies
        to the record's start and the upper bound to its end, so a point
        sample is included whenever it starts in range, and an interval
        sample must finish before ``end``. Results are ordered by start,
        ties in insertion order.

        Args:
            kind: Only return records of this kind; ``None`` for all kinds.
            start: Inclusive lower bound on ``record.start``.
            end: Inclusive upper bound on ``record.end``.

        Raises:
            StoreLocked: If the vault is locked.
            RecordDecodeError: If a stored row cannot be decoded.
        """
        sql = (
            "SELECT * FROM health_metrics "
            "WHERE start_date >= ? AND (end_date IS NULL OR end_date <= ?)"
        )
        params: list[object] = [to_timestamp(start), to_timestamp(end)]
        if kind is not None:
            sql += " AND type = ?"
            params.append(kind)
        sql += " ORDER BY start_date ASC, id ASC"

        with self._store.session() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self, kind: str | None = None) -> int:
        """Return the number of stored records, optionally for one kind."""
        with self._store.session() as conn:
            if kind is None:
                row = conn.execute("SELECT COUNT(*) FROM health_metrics").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM health_metrics WHERE type = ?", (kind,)
                ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_params(record: MetricRecord) -> tuple:
        return (
            record.kind,
            record.value,
            record.unit,
            to_timestamp(record.start),
            to_timestamp(record.end) if record.end is not None else None,
            record.source,
            to_timestamp(record.recorded_at),
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> MetricRecord:
        """Convert a row to a MetricRecord, failing loudly on bad data."""
        try:
            end_date = row["end_date"]
            return MetricRecord(
                id=int(row["id"]),
                kind=_text(row["type"], "type"),
                value=_number(row["value"], "value"),
                unit=_optional_text(row["unit"], "unit"),
                start=from_timestamp(_number(row["start_date"], "start_date")),
                end=from_timestamp(_number(end_date, "end_date")) if end_date is not None else None,
                source=_optional_text(row["source"], "source"),
                recorded_at=from_timestamp(_number(row["created_at"], "created_at")),
            )
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise RecordDecodeError(f"Cannot decode metric row: {exc}") from exc


def _number(value: object, column: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"column {column!r} is not numeric")
    return float(value)


def _text(value: object, column: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"column {column!r} is not text")
    return value


def _optional_text(value: object, column: str) -> str | None:
    return None if value is None else _text(value, column)
