# trailarena/services/scheduling.py
"""Explicit handles for delayed and background coroutines."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Owns one asyncio task; ``cancel`` is idempotent and safe at any time."""

    def __init__(self, name: str, task: asyncio.Task):
        self.name = name
        self._task = task

    @classmethod
    def start(cls, name: str, coro: Awaitable) -> "ScheduledTask":
        return cls(name, asyncio.create_task(coro, name=name))

    @classmethod
    def after(cls, name: str, delay: float, callback: Callable[[], Awaitable]) -> "ScheduledTask":
        """Run ``await callback()`` once, ``delay`` seconds from now."""

        async def _delayed():
            await asyncio.sleep(delay)
            await callback()

        return cls.start(name, _delayed())

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> bool:
        """Cancel the task unless it already finished or is the caller itself."""
        if self._task.done():
            return False
        if self._task is _current_task():
            return False
        self._task.cancel()
        logger.debug("Cancelled %s", self.name)
        return True

    async def wait(self):
        """Wait for the task to finish, swallowing only its cancellation."""
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
