"""Concrete HealthFeed implementations."""

from __future__ import annotations

from datetime import datetime, timedelta

from healthvault.core.storage.models import MetricKind, ensure_utc
from healthvault.domains.health.connectors import HealthSample

_WATCH = "Apple Watch"
_PHONE = "iPhone"


class MockHealthFeed:
    """Deterministic simulated samples. Always available.

    Produces one step count and one sleep session per day and a heart-rate
    reading every six hours, all starting inside the requested range.
    """

    async def fetch_samples(
        self, kind: str, start: datetime, end: datetime
    ) -> list[HealthSample]:
        start = ensure_utc(start)
        end = ensure_utc(end)
        day0 = start.replace(hour=0, minute=0, second=0, microsecond=0)
        samples: list[HealthSample] = []

        day = day0
        index = 0
        while day <= end:
            if kind == MetricKind.STEPS:
                s = day + timedelta(hours=8)
                samples.append(HealthSample(
                    value=float(6000 + (index * 737) % 5000),
                    unit="count",
                    start=s,
                    end=s + timedelta(hours=12),
                    source=_PHONE if index % 3 == 0 else _WATCH,
                ))
            elif kind == MetricKind.SLEEP_HOURS:
                s = day - timedelta(hours=1)
                hours = 6.0 + (index % 4) * 0.5
                samples.append(HealthSample(
                    value=hours,
                    unit="hr",
                    start=s,
                    end=s + timedelta(hours=hours),
                    source=_WATCH,
                ))
            elif kind == MetricKind.HEART_RATE:
                for slot in range(4):
                    s = day + timedelta(hours=6 * slot)
                    samples.append(HealthSample(
                        value=float(58 + (index * 7 + slot * 5) % 30),
                        unit="count/min",
                        start=s,
                        source=_WATCH,
                    ))
            day += timedelta(days=1)
            index += 1

        return [s for s in samples if start <= s.start <= end]

    @property
    def data_source(self) -> str:
        return "mock"
