import asyncio
from typing import Awaitable, Callable, Set

from utils.logger import get_logger

_logger = get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class Scheduler:
    """
    Runs a coroutine function after a delay on the running event loop.
    Swapped for a manual one in tests.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: TimerCallback, name: str = "") -> None:
        task = asyncio.get_running_loop().create_task(self._run(delay, callback, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, delay: float, callback: TimerCallback, name: str) -> None:
        await asyncio.sleep(delay)
        try:
            await callback()
        except Exception:
            _logger.exception(f"Timer {name or callback!r} failed")

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def drain(self) -> None:
        """Wait for every pending timer to fire."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
