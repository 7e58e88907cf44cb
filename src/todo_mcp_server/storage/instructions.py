"""Markdown instructions file storage backend.

The list is stored as the ``<todos>`` block of a markdown document that
people also edit by hand; see ``converters.instructions``. Saved lists
go to a sidecar JSON file next to the document.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from pydantic import ValidationError

from ..converters.instructions import (
    embed_block,
    extract_block,
    remove_block,
    render_block,
)
from ..converters.markdown import parse_markdown, validate_and_sanitize_todos
from ..core.async_utils import run_sync
from ..events import Disposable, EventEmitter
from ..file_handler import read_text_if_exists, write_file_atomic
from ..models import DEFAULT_TITLE, SavedTodoList, TodoItem, TodoListState
from .base import TodoStorage
from .watcher import FileWatcher

logger = logging.getLogger(__name__)


class InstructionsFileStorage(TodoStorage):
    """Store the list inside the ``<todos>`` block of a markdown file.

    Args:
        path: The instructions document.
        include_subtasks: Whether subtask lines are written to the block.
        watch_interval: Poll interval in seconds for hand edits, or None.
    """

    def __init__(
        self,
        path: Path,
        include_subtasks: bool = True,
        watch_interval: float | None = None,
    ):
        self._path = Path(path)
        self._saved_path = self._path.with_suffix(".saved.json")
        self._include_subtasks = include_subtasks
        self._watch_interval = watch_interval
        self._lock = asyncio.Lock()
        self._changes: EventEmitter[TodoListState] = EventEmitter(
            f"storage change ({self._path.name})"
        )
        self._watcher: FileWatcher | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _read_state(self) -> TodoListState:
        document = read_text_if_exists(self._path)
        block = extract_block(document) if document else None
        if block is None:
            return TodoListState()
        title, body = block
        todos, heading = parse_markdown(body)
        return TodoListState(
            todos=tuple(validate_and_sanitize_todos(todos)),
            title=title or heading or DEFAULT_TITLE,
        )

    def _write_block(self, todos: Sequence[TodoItem], title: str) -> None:
        document = read_text_if_exists(self._path) or ""
        block = render_block(todos, title, self._include_subtasks)
        updated = embed_block(document, block)
        if updated != document:
            write_file_atomic(self._path, updated)

    def _remove_block(self) -> None:
        document = read_text_if_exists(self._path)
        if document is None:
            return
        updated = remove_block(document)
        if updated != document:
            write_file_atomic(self._path, updated)

    async def load(self) -> TodoListState:
        return await run_sync(self._read_state)

    async def save(self, todos: Sequence[TodoItem], title: str) -> None:
        async with self._lock:
            await run_sync(self._write_block, list(todos), title)
            if self._watcher is not None:
                await self._watcher.refresh()

    async def clear(self) -> None:
        async with self._lock:
            await run_sync(self._remove_block)
            if self._watcher is not None:
                await self._watcher.refresh()

    # ------------------------------------------------------------------
    # Saved lists (sidecar JSON)
    # ------------------------------------------------------------------

    def _read_saved(self) -> list[SavedTodoList]:
        text = read_text_if_exists(self._saved_path)
        if not text:
            return []
        saved: list[SavedTodoList] = []
        for raw in json.loads(text):
            try:
                saved.append(SavedTodoList.model_validate(raw))
            except ValidationError:
                logger.warning(
                    "Skipping malformed saved list in %s", self._saved_path
                )
        return saved

    async def load_saved_lists(self) -> list[SavedTodoList]:
        return await run_sync(self._read_saved)

    async def save_saved_lists(self, lists: Sequence[SavedTodoList]) -> None:
        payload = json.dumps(
            [saved.to_dict() for saved in lists], indent=2, ensure_ascii=False
        )
        await run_sync(write_file_atomic, self._saved_path, payload)

    # ------------------------------------------------------------------
    # External changes
    # ------------------------------------------------------------------

    def on_did_change(
        self, listener: Callable[[TodoListState], None]
    ) -> Disposable | None:
        if self._watch_interval is None:
            return None
        if self._watcher is None:
            self._watcher = FileWatcher(
                self._path, self._watch_interval, self._reload
            )
            self._watcher.start()
        return self._changes.subscribe(listener)

    async def _reload(self) -> None:
        self._changes.fire(await self.load())

    async def close(self) -> None:
        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None
        self._changes.clear()
