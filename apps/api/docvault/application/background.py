import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

Work = Callable[[], Awaitable[None]]


class BackgroundTaskRunner:
    """
    Fire-and-forget execution on the running event loop.

    ``submit`` starts work immediately; ``submit_later`` starts it after a
    delay and keeps the pending task addressable by key so it can be
    cancelled. Callers never await the work itself.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self._delayed: Dict[str, asyncio.Task] = {}

    def submit(self, work: Work, name: Optional[str] = None) -> None:
        task = asyncio.get_running_loop().create_task(work(), name=name)
        self._track(task)

    def submit_later(self, key: str, delay_seconds: float, work: Work) -> None:
        async def _deferred() -> None:
            await asyncio.sleep(max(delay_seconds, 0))
            # Past the timer; a new delayed task for the same key may be registered by work().
            if self._delayed.get(key) is task:
                del self._delayed[key]
            await work()

        task = asyncio.get_running_loop().create_task(_deferred(), name=f"delayed:{key}")
        self._delayed[key] = task
        self._track(task)

    def has_pending(self, key: str) -> bool:
        return key in self._delayed

    def cancel_pending(self, key: str) -> bool:
        """Cancel the delayed task registered under ``key`` if its timer has not fired yet."""
        task = self._delayed.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.join()
        self._delayed.clear()

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        for key, pending in list(self._delayed.items()):
            if pending is task:
                del self._delayed[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
