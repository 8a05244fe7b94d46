"""Collapse concurrent calls of one coroutine into a single execution."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

__all__ = ["SingleFlight"]

log = logging.getLogger("jackpotiq.auth.singleflight")

T = TypeVar("T")


@dataclass(slots=True)
class _Flight(Generic[T]):
    task: "asyncio.Task[T]"
    waiters: int = 0


class SingleFlight(Generic[T]):
    """Mutex-guarded cache of the one in-flight task.

    The first caller starts ``factory()`` as a task; callers arriving while it
    runs await the same task and receive the same result or exception.  A
    cancelled caller only detaches itself; the task is cancelled once every
    caller waiting on it has been cancelled.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = asyncio.Lock()
        self._flight: _Flight[T] | None = None

    @property
    def in_flight(self) -> bool:
        return self._flight is not None and not self._flight.task.done()

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            flight = self._flight
            if flight is None or flight.task.done():
                task = asyncio.ensure_future(factory())
                flight = _Flight(task)
                self._flight = flight
                task.add_done_callback(lambda _t, f=flight: self._release(f))
                log.debug("%s: started", self.name)
            else:
                log.debug("%s: joined in-flight call", self.name)
            flight.waiters += 1

        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            flight.waiters -= 1
            if flight.waiters <= 0 and not flight.task.done():
                log.debug("%s: all callers cancelled", self.name)
                flight.task.cancel()
            raise

    def _release(self, flight: _Flight[T]) -> None:
        if self._flight is flight:
            self._flight = None
