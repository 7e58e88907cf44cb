"""JSON file storage backend.

Persists the list and its archive as one JSON document, typically
``<workspace>/.todo_mcp/todos.json``::

    {
      "version": 1,
      "title": "Docs",
      "todos": [{"id": "t1", "content": "Write docs", ...}],
      "saved_lists": [{"id": "saved-...", "slug": "project-a", ...}]
    }

Writes are atomic (temp file + ``os.replace()``). With a
``watch_interval`` the file is polled so edits by another process (an
editor extension, a second server) reach the store through
``on_did_change``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..converters.markdown import validate_and_sanitize_todos
from ..core.async_utils import run_sync
from ..events import Disposable, EventEmitter
from ..file_handler import read_text_if_exists, write_file_atomic
from ..models import DEFAULT_TITLE, SavedTodoList, TodoItem, TodoListState
from .base import TodoStorage
from .watcher import FileWatcher

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class JsonFileStorage(TodoStorage):
    """Store todos and saved lists in a single JSON file.

    Args:
        path: Location of the JSON document. Parent directories are
            created on first write.
        watch_interval: Poll interval in seconds for external changes,
            or None to disable watching.
    """

    def __init__(self, path: Path, watch_interval: float | None = None):
        self._path = Path(path)
        self._watch_interval = watch_interval
        self._lock = asyncio.Lock()
        self._changes: EventEmitter[TodoListState] = EventEmitter(
            f"storage change ({self._path.name})"
        )
        self._watcher: FileWatcher | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    def _read_document(self) -> dict[str, Any]:
        text = read_text_if_exists(self._path)
        if not text:
            return {"version": STATE_VERSION}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(
                f"State file {self._path} must contain a JSON object"
            )
        return data

    def _write_document(self, document: dict[str, Any]) -> None:
        document["version"] = STATE_VERSION
        write_file_atomic(
            self._path, json.dumps(document, indent=2, ensure_ascii=False)
        )

    async def _update_document(self, **changes: Any) -> None:
        async with self._lock:
            document = await run_sync(self._read_document)
            document.update(changes)
            await run_sync(self._write_document, document)
            if self._watcher is not None:
                await self._watcher.refresh()

    @staticmethod
    def _state_from_document(document: dict[str, Any]) -> TodoListState:
        raw_todos = document.get("todos") or []
        try:
            todos = [TodoItem.model_validate(t) for t in raw_todos]
        except ValidationError:
            logger.warning("Stored todos failed validation; sanitizing")
            todos = validate_and_sanitize_todos(raw_todos)
        title = document.get("title")
        return TodoListState(
            todos=tuple(todos),
            title=title if isinstance(title, str) and title else DEFAULT_TITLE,
        )

    # ------------------------------------------------------------------
    # TodoStorage
    # ------------------------------------------------------------------

    async def load(self) -> TodoListState:
        document = await run_sync(self._read_document)
        return self._state_from_document(document)

    async def save(self, todos: Sequence[TodoItem], title: str) -> None:
        await self._update_document(
            todos=[todo.to_dict() for todo in todos], title=title
        )

    async def clear(self) -> None:
        await self._update_document(todos=[], title=DEFAULT_TITLE)

    async def load_saved_lists(self) -> list[SavedTodoList]:
        document = await run_sync(self._read_document)
        saved: list[SavedTodoList] = []
        for raw in document.get("saved_lists") or []:
            try:
                saved.append(SavedTodoList.model_validate(raw))
            except ValidationError:
                logger.warning(
                    "Skipping malformed saved list in %s", self._path
                )
        return saved

    async def save_saved_lists(self, lists: Sequence[SavedTodoList]) -> None:
        await self._update_document(
            saved_lists=[saved.to_dict() for saved in lists]
        )

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
