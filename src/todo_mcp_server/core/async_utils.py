"""Async utilities: thread offloading for blocking file I/O and timers."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used by the file-backed storages so reads and atomic writes never
    stall protocol handling.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        content, encoding = await run_sync(read_file_with_encoding, path)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


class Debouncer:
    """Coalesce rapid calls into one delayed invocation of an async callback.

    Each ``trigger()`` restarts the window; only the last trigger in a
    window runs the callback. The callback's exceptions are logged.

    Args:
        delay: Window length in seconds.
        callback: Coroutine function invoked once the window elapses.
        name: Label used in log messages.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "debouncer",
    ):
        self._delay = delay
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        """True while a trigger is waiting for its window to elapse."""
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("%s callback failed", self._name)

    async def wait(self) -> None:
        """Wait for callbacks already started to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
