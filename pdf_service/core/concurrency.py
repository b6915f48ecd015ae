"""
Concurrency Helpers
===================

Per-key single-flight execution for cache population.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


class SingleFlight:
    """Run at most one in-flight call per key; concurrent callers share its outcome."""

    def __init__(self) -> None:
        self._calls: Dict[Hashable, "asyncio.Future[Any]"] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._calls

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        """Await ``fn()`` for ``key``, or join the call already running for it."""
        future = self._calls.get(key)
        if future is None:
            future = asyncio.ensure_future(fn())
            self._calls[key] = future
            future.add_done_callback(lambda done: self._forget(key, done))
        # A cancelled waiter must not cancel the shared call.
        return await asyncio.shield(future)

    def _forget(self, key: Hashable, future: "asyncio.Future[Any]") -> None:
        if self._calls.get(key) is future:
            del self._calls[key]
        if not future.cancelled():
            # Mark the exception retrieved; every waiter re-raises it from await.
            future.exception()
