"""Health data connectors — abstraction layer for platform health feeds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class HealthSample:
    """A raw sample as delivered by a health feed."""

    value: float
    unit: str
    start: datetime
    end: datetime | None = None
    source: str | None = None


@runtime_checkable
class HealthFeed(Protocol):
    """Abstract interface for platform health data retrieval.

    The sync layer calls this without knowing whether samples come from an
    Apple Health export, a phone API bridge, or mock generators.
    """

    async def fetch_samples(
        self, kind: str, start: datetime, end: datetime
    ) -> list[HealthSample]:
        """Samples of ``kind`` starting within ``[start, end]``, oldest first."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the feed: 'apple_health' or 'mock'."""
        ...
