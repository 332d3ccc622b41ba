"""Tests for StorageQueue — serial execution off the event loop."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from healthvault.core.storage.queue import StorageQueue


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def queue():
    q = StorageQueue("test-storage")
    yield q
    q.shutdown()


def test_returns_result_and_passes_arguments(queue):
    def add(a, b, *, scale=1):
        return (a + b) * scale

    assert _run(queue.run(add, 2, 3, scale=10)) == 50


def test_runs_off_the_calling_thread(queue):
    caller = threading.get_ident()
    worker = _run(queue.run(threading.get_ident))
    assert worker != caller


def test_propagates_exceptions(queue):
    def fail():
        raise ValueError("nope")

    with pytest.raises(ValueError, match="nope"):
        _run(queue.run(fail))


def test_operations_never_overlap(queue):
    active = 0
    peak = 0
    order: list[int] = []
    guard = threading.Lock()

    def work(n):
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        order.append(n)
        with guard:
            active -= 1

    async def _submit_all():
        await asyncio.gather(*(queue.run(work, n) for n in range(5)))

    _run(_submit_all())
    assert peak == 1
    assert order == [0, 1, 2, 3, 4]


def test_cancelled_caller_does_not_abort_started_work(queue):
    started = threading.Event()
    release = threading.Event()
    finished = threading.Event()

    def slow():
        started.set()
        release.wait(timeout=5)
        finished.set()

    async def _scenario():
        task = asyncio.ensure_future(queue.run(slow))
        while not started.is_set():
            await asyncio.sleep(0.001)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    _run(_scenario())
    release.set()
    queue.shutdown(wait=True)
    assert finished.is_set()
