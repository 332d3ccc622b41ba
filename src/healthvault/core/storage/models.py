"""Data models for the encrypted metric store."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum


class MetricKind:
    """Known metric kinds. Any other string tag is accepted as well."""

    STEPS = "steps"
    SLEEP_HOURS = "sleep_hours"
    HEART_RATE = "heart_rate"

    ALL = (STEPS, SLEEP_HOURS, HEART_RATE)


class StoreState(Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_timestamp(value: datetime) -> float:
    return ensure_utc(value).timestamp()


def from_timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass(frozen=True)
class MetricRecord:
    """A single health sample as stored in the vault.

    ``start``/``end`` describe the sample's own interval (``end`` is absent
    for point samples); ``recorded_at`` is when it was captured into the
    vault. ``id`` is assigned by storage on insert.
    """

    kind: str
    value: float
    start: datetime
    recorded_at: datetime
    end: datetime | None = None
    unit: str | None = None
    source: str | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.kind:
            raise ValueError("kind must not be empty")
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "recorded_at", ensure_utc(self.recorded_at))
        if self.end is not None:
            object.__setattr__(self, "end", ensure_utc(self.end))
            if self.end < self.start:
                raise ValueError("end must not be earlier than start")

    def with_id(self, record_id: int) -> MetricRecord:
        """Return a copy carrying the storage-assigned id."""
        return replace(self, id=record_id)
