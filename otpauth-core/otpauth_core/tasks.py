"""
Concurrency Helpers
===================
Per-key locks and periodic background tasks.
"""

import asyncio
import inspect
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import structlog

logger = structlog.get_logger(__name__)


class KeyedLock:
    """
    One ``asyncio.Lock`` per key, dropped once nobody holds or waits on it.

    Example:
        locks = KeyedLock()
        async with locks.acquire("a@example.com"):
            ...
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


SweepFunc = Callable[[], Union[Awaitable[object], object]]


class PeriodicTask:
    """
    Run a callable every ``interval`` seconds until stopped.

    Failures are logged and the loop keeps going; a sweep that fails once
    is retried on the next tick.
    """

    def __init__(self, name: str, func: SweepFunc, interval: float = 300.0):
        self.name = name
        self.func = func
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.info("periodic_task.started", task=self.name, interval=self.interval)

    async def run_once(self) -> object:
        result = self.func()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = await self.run_once()
                logger.debug("periodic_task.tick", task=self.name, result=result)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("periodic_task.failed", task=self.name, error=str(e))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("periodic_task.stopped", task=self.name)


async def stop_all(tasks: List[PeriodicTask]) -> None:
    for task in tasks:
        await task.stop()
