"""Tests for the deterministic mock health feed."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from healthvault.core.storage.models import MetricKind
from healthvault.domains.health.connectors import HealthFeed
from healthvault.domains.health.connectors.providers import MockHealthFeed


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


START = datetime(2026, 3, 1, tzinfo=timezone.utc)
END = START + timedelta(days=7)


def test_satisfies_protocol():
    feed = MockHealthFeed()
    assert isinstance(feed, HealthFeed)
    assert feed.data_source == "mock"


def test_deterministic():
    feed = MockHealthFeed()
    first = _run(feed.fetch_samples(MetricKind.STEPS, START, END))
    second = _run(feed.fetch_samples(MetricKind.STEPS, START, END))
    assert first == second


def test_samples_start_inside_range_in_order():
    feed = MockHealthFeed()
    for kind in MetricKind.ALL:
        samples = _run(feed.fetch_samples(kind, START, END))
        assert samples, kind
        assert all(START <= s.start <= END for s in samples)
        assert [s.start for s in samples] == sorted(s.start for s in samples)


def test_one_step_sample_per_day():
    samples = _run(MockHealthFeed().fetch_samples(MetricKind.STEPS, START, END))
    assert len(samples) == 7
    assert all(s.unit == "count" and s.end is not None for s in samples)


def test_heart_rate_are_point_samples():
    samples = _run(MockHealthFeed().fetch_samples(MetricKind.HEART_RATE, START, END))
    assert all(s.end is None for s in samples)
    assert all(s.source == "Apple Watch" for s in samples)


def test_sleep_durations_match_interval():
    samples = _run(MockHealthFeed().fetch_samples(MetricKind.SLEEP_HOURS, START, END))
    for s in samples:
        assert (s.end - s.start).total_seconds() / 3600 == s.value


def test_unknown_kind_is_empty():
    assert _run(MockHealthFeed().fetch_samples("blood_glucose", START, END)) == []
