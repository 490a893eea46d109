"""Collapse concurrent identical operations into one execution."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from obsync.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Run at most one operation per key at a time.

    Callers arriving while an operation for the same key is in flight await that
    operation and receive its result or exception. The shared task is shielded:
    cancelling one caller does not cancel the work the others are waiting on.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[T]] = {}

    def in_flight(self, key: str) -> asyncio.Task[T] | None:
        """Return the running task for ``key``, if any."""
        return self._inflight.get(key)

    def __len__(self) -> int:
        return len(self._inflight)

    async def do(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory`` for ``key`` or join the execution already in flight."""
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            logger.debug("Joining in-flight operation", key=key)

        return await asyncio.shield(task)

    def _forget(self, key: str, task: "asyncio.Task[T]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved; joiners that were cancelled never read it
        if not task.cancelled():
            task.exception()
