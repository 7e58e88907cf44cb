"""Write the current list into the workspace instructions file.

When auto-inject is enabled, every change of the bound store re-renders
the ``<todos>`` block of ``<workspace>/<file_path>``. Writes are
serialized through a single drain task that always renders the store's
current state, so a burst of changes ends with one write of the latest
list.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .converters.instructions import embed_block, remove_block, render_block
from .core.async_utils import run_sync
from .events import Disposable
from .file_handler import (
    read_text_if_exists,
    validate_instructions_path,
    write_file_atomic,
)
from .mcp.broadcast import ConfigurationChanged
from .models import TodoListState
from .store import TodoStore

logger = logging.getLogger(__name__)


def _write_block(path: Path, block: str) -> bool:
    document = read_text_if_exists(path) or ""
    updated = embed_block(document, block)
    if updated == document:
        return False
    write_file_atomic(path, updated)
    return True


def _strip_block(path: Path) -> bool:
    document = read_text_if_exists(path)
    if document is None:
        return False
    updated = remove_block(document)
    if updated == document:
        return False
    write_file_atomic(path, updated)
    return True


class InstructionsInjector:
    """Keeps the instructions file's ``<todos>`` block in step with a store.

    Args:
        store: Store whose list is written.
        workspace_root: Directory the file path is relative to.
        file_path: Instructions file, relative to *workspace_root*.
        enabled: Whether writing is active.
        include_subtasks: Whether subtask lines are rendered.

    Raises:
        ValueError: If *file_path* is not a valid instructions path.
    """

    def __init__(
        self,
        store: TodoStore,
        workspace_root: str | Path,
        file_path: str,
        enabled: bool = False,
        include_subtasks: bool = True,
    ):
        self._store = store
        self._workspace_root = Path(workspace_root)
        self._path = validate_instructions_path(file_path, self._workspace_root)
        self._enabled = enabled
        self._include_subtasks = include_subtasks
        self._dirty = False
        self._drain_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._subscription: Disposable | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start(self) -> None:
        """Subscribe to the store and write the current list if enabled."""
        if self._subscription is None:
            self._subscription = self._store.on_did_change(self._on_change)
        if self._enabled:
            self.request_write()

    def _on_change(self, state: TodoListState) -> None:
        if self._enabled:
            self.request_write()

    def request_write(self) -> None:
        """Schedule a write of the store's current state."""
        self._dirty = True
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(
                self._drain()
            )

    async def _drain(self) -> None:
        while self._dirty:
            self._dirty = False
            if not self._enabled:
                return
            await self.write_now()

    async def write_now(self) -> None:
        """Render and write the block immediately. Errors are logged."""
        block = render_block(
            self._store.get_todos(),
            self._store.get_base_title(),
            self._include_subtasks,
        )
        async with self._lock:
            try:
                if await run_sync(_write_block, self._path, block):
                    logger.debug("Updated todos block in %s", self._path)
            except OSError as e:
                logger.error("Failed to write %s: %s", self._path, e)

    async def remove(self, path: Path | None = None) -> None:
        """Remove the block from *path* (default: the current file)."""
        target = path or self._path
        async with self._lock:
            try:
                if await run_sync(_strip_block, target):
                    logger.info("Removed todos block from %s", target)
            except OSError as e:
                logger.error("Failed to update %s: %s", target, e)

    async def apply(self, change: ConfigurationChanged) -> None:
        """Follow a configuration change.

        Disabling removes the block; a new path moves it; toggling
        subtasks re-renders it.
        """
        rewrite = False

        if change.auto_inject_file_path is not None:
            try:
                new_path = validate_instructions_path(
                    change.auto_inject_file_path, self._workspace_root
                )
            except ValueError as e:
                logger.error("Ignoring invalid instructions path: %s", e)
            else:
                if new_path != self._path:
                    old_path = self._path
                    self._path = new_path
                    if self._enabled:
                        await self.remove(old_path)
                        rewrite = True

        if change.enable_subtasks is not None:
            if change.enable_subtasks != self._include_subtasks:
                self._include_subtasks = change.enable_subtasks
                rewrite = rewrite or self._enabled

        if change.auto_inject is not None and change.auto_inject != self._enabled:
            self._enabled = change.auto_inject
            if self._enabled:
                logger.info("Auto-inject enabled: %s", self._path)
                rewrite = True
            else:
                logger.info("Auto-inject disabled")
                await self.wait_idle()
                await self.remove()
                rewrite = False

        if rewrite:
            self.request_write()
            await self.wait_idle()

    async def wait_idle(self) -> None:
        if self._drain_task is not None:
            await asyncio.gather(self._drain_task, return_exceptions=True)

    async def dispose(self) -> None:
        if self._subscription is not None:
            self._subscription.dispose()
            self._subscription = None
        await self.wait_idle()
