"""Pull samples from a health feed into the encrypted vault."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from healthvault.core.crypto.errors import StoreLocked
from healthvault.core.storage.models import MetricKind, MetricRecord
from healthvault.core.storage.queue import StorageQueue
from healthvault.core.storage.repository import MetricRepository
from healthvault.domains.health.connectors import HealthFeed, HealthSample

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync run."""

    synced_at: datetime
    start: datetime
    end: datetime
    inserted: dict[str, int] = field(default_factory=dict)
    from_watch_count: int = 0

    @property
    def total(self) -> int:
        return sum(self.inserted.values())


def is_from_apple_watch(source: str | None) -> bool:
    return source is not None and "apple watch" in source.lower()


def sample_to_record(kind: str, sample: HealthSample, recorded_at: datetime) -> MetricRecord:
    return MetricRecord(
        kind=kind,
        value=sample.value,
        unit=sample.unit,
        start=sample.start,
        end=sample.end,
        source=sample.source,
        recorded_at=recorded_at,
    )


class HealthSync:
    """Copies recent feed samples into the vault.

    Each sample becomes a MetricRecord stamped with the time it was
    inserted. The vault must already be unlocked; syncing never unlocks it.
    """

    def __init__(
        self,
        feed: HealthFeed,
        repository: MetricRepository,
        queue: StorageQueue | None = None,
        kinds: tuple[str, ...] = MetricKind.ALL,
    ) -> None:
        self._feed = feed
        self._repo = repository
        self._queue = queue
        self._kinds = kinds

    async def sync(self, days: int = 7, now: datetime | None = None) -> SyncResult:
        """Fetch the last ``days`` days of samples for every kind and store them.

        Raises:
            StoreLocked: If the vault is locked.
            ValueError: If ``days`` is not positive.
        """
        if days < 1:
            raise ValueError("days must be at least 1")
        if not self._repo.store.is_unlocked:
            raise StoreLocked("Vault is locked; unlock it before syncing")
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(days=days)

        records: list[MetricRecord] = []
        inserted: dict[str, int] = {}
        from_watch = 0
        for kind in self._kinds:
            samples = await self._feed.fetch_samples(kind, start, end)
            recorded_at = datetime.now(timezone.utc)
            for sample in samples:
                if is_from_apple_watch(sample.source):
                    from_watch += 1
                records.append(sample_to_record(kind, sample, recorded_at))
            inserted[kind] = len(samples)

        if self._queue is not None:
            await self._queue.run(self._repo.insert_many, records)
        else:
            self._repo.insert_many(records)

        result = SyncResult(
            synced_at=datetime.now(timezone.utc),
            start=start,
            end=end,
            inserted=inserted,
            from_watch_count=from_watch,
        )
        logger.info(
            "Synced %d samples from %s (%d from Apple Watch)",
            result.total,
            self._feed.data_source,
            from_watch,
        )
        return result
