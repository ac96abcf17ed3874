"""
Per-key coalescing of concurrent async calls.

The first caller for a key starts the call as its own task; every caller,
including the first, awaits that task's outcome (result or exception).
Cancelling any caller leaves the shared call running for the others.
Different keys never wait on each other.
"""

import asyncio
import functools
from typing import Awaitable, Callable, Dict, TypeVar

T = TypeVar("T")


class SingleFlight:
    """In-process single-flight gate keyed by string."""

    def __init__(self):
        self._calls: Dict[str, asyncio.Future] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run fn() unless a call for key is already running, then share its outcome."""
        task = self._calls.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._calls[key] = task
            task.add_done_callback(functools.partial(self._finished, key))
        return await asyncio.shield(task)

    def _finished(self, key: str, task: asyncio.Future) -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        if not task.cancelled():
            # Mark retrieved so an unobserved failure is not reported at GC
            task.exception()
