"""Fire-and-forget tasks and periodic workers for best-effort side effects."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class TaskRunner:
    """
    Keeps a strong reference to every spawned task until it finishes and
    logs failures; the caller never awaits the result.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: str = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding tasks (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class PeriodicWorker:
    """
    Runs ``job`` every ``interval`` seconds until stopped.

    Started and stopped with the application lifespan. A failing iteration
    is logged and the loop carries on; stop() waits for a running
    iteration to finish.
    """

    def __init__(self, name: str, job: Callable[[], Awaitable[Any]], interval: float):
        self.name = name
        self.job = job
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info("%s worker started (every %ss)", self.name, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("%s worker stopped", self.name)

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.job()
            except Exception:
                logger.error("%s worker iteration failed", self.name, exc_info=True)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
