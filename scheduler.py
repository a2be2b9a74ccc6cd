# scheduler.py
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[Awaitable[Any], Any]]


class TaskScheduler:
    """Fire-once deferred calls keyed by MAC (or any hashable key).

    Scheduling a key that already has a pending task cancels the old one, so at
    most one deferred action exists per key.
    """

    def __init__(self, name: str = "scheduler"):
        self.name = name
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def schedule(self, key: Hashable, delay: float, callback: Callback) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._fire(key, max(delay, 0), callback))
        self._tasks[key] = task
        logger.debug(f"{self.name}: scheduled {key} in {delay:.0f}s")
        return task

    async def _fire(self, key: Hashable, delay: float, callback: Callback) -> None:
        await asyncio.sleep(delay)
        # Past this point the task is no longer cancellable through the key.
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:  # pylint: disable=broad-except
            logger.exception(f"{self.name}: deferred action for {key} failed")

    def cancel(self, key: Hashable) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"{self.name}: cancelled {key}")
        return True

    def pending(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)
