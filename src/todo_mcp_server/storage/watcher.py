"""Polling watcher that reports external modifications of a file."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from ..core.async_utils import run_sync
from ..file_handler import file_fingerprint

logger = logging.getLogger(__name__)


class FileWatcher:
    """Poll *path* every *interval* seconds and await *on_change* when the
    file's content fingerprint changes.

    Writes made by the owner should be followed by ``refresh()`` so they
    are not reported back as external changes.
    """

    def __init__(
        self,
        path: Path,
        interval: float,
        on_change: Callable[[], Awaitable[None]],
    ):
        self._path = path
        self._interval = interval
        self._on_change = on_change
        self._fingerprint: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._fingerprint = file_fingerprint(self._path)
        self._task = asyncio.get_running_loop().create_task(self._poll())
        logger.debug(
            "Watching %s every %.2fs", self._path, self._interval
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def refresh(self) -> None:
        """Adopt the current file content as the known baseline."""
        self._fingerprint = await run_sync(file_fingerprint, self._path)

    async def check(self) -> bool:
        """Compare once; await the callback and return True on change."""
        current = await run_sync(file_fingerprint, self._path)
        if current == self._fingerprint:
            return False
        self._fingerprint = current
        logger.info("Detected external change to %s", self._path)
        await self._on_change()
        return True

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.check()
            except Exception:
                logger.exception("Failed to check %s for changes", self._path)
