"""Single-worker execution queue for storage and crypto work.

Async callers (the MCP tools, a background lock trigger) hand blocking work
to this queue so key derivation and sealing never run on the event loop.
With one worker, submitted operations execute strictly one at a time in
submission order.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageQueue:
    """Serial executor bridging blocking storage calls into asyncio.

    Cancelling the awaiting task does not interrupt an operation that has
    already started; a derivation or seal always runs to completion.

    Usage::

        queue = StorageQueue()
        await queue.run(store.unlock)
        records = await queue.run(repository.fetch, None, start, end)
        queue.shutdown()
    """

    def __init__(self, name: str = "healthvault-storage") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(*args, **kwargs)`` on the storage worker and await it."""
        loop = asyncio.get_running_loop()
        call = functools.partial(fn, *args, **kwargs)
        return await asyncio.shield(loop.run_in_executor(self._executor, call))

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; by default wait for queued work to finish."""
        self._executor.shutdown(wait=wait)
        logger.debug("Storage queue shut down")
