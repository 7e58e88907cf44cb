"""Canonical todo store for one replica.

A ``TodoStore`` owns one list (ordered todos plus a title) and the
archive of previously named lists. It persists through an injected
``TodoStorage`` and notifies listeners when content changes.

Key behaviours:

* **Snapshots** -- readers get immutable models in fresh containers;
  nothing returned can mutate the store.
* **Validate first** -- every mutation validates completely before state
  changes; a rejected call leaves the list untouched.
* **Fire-and-forget persistence** -- state changes in memory immediately
  and is written in the background. Writes are serialized so storage
  sees them in call order; failures are logged, never raised.
* **Deduplicated notifications** -- ``on_did_change`` fires only when
  the content hash differs from the last emitted one.
* **Archival** -- renaming a non-empty, non-default list snapshots the
  old list into the archive first, unless an identical archive exists.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from .converters.markdown import format_todos_as_markdown, generate_id
from .events import Disposable, EventEmitter
from .models import (
    DEFAULT_TITLE,
    SavedTodoList,
    Subtask,
    SubtaskStatus,
    TodoItem,
    TodoListState,
    TodoPriority,
    TodoStatus,
    content_hash,
)
from .slugs import generate_unique_slug
from .storage.base import TodoStorage
from .validators import (
    TodoValidationError,
    count_in_progress,
    lists_match,
    sanitize_details,
    validate_single_in_progress,
    validate_todos,
)

logger = logging.getLogger(__name__)

_NEXT_STATUS = {
    TodoStatus.PENDING: TodoStatus.IN_PROGRESS,
    TodoStatus.IN_PROGRESS: TodoStatus.COMPLETED,
    TodoStatus.COMPLETED: TodoStatus.PENDING,
}


class TodoStore:
    """Authoritative list state for one replica.

    Args:
        storage: Persistence backend.
        name: Label used in log messages (e.g. "editor", "protocol").

    Call ``await initialize()`` before use to load persisted state.
    """

    def __init__(self, storage: TodoStorage, name: str = "store"):
        self._storage = storage
        self._name = name
        self._todos: tuple[TodoItem, ...] = ()
        self._title = DEFAULT_TITLE
        self._saved_lists: list[SavedTodoList] = []
        self._last_emitted_hash = content_hash(self._todos, self._title)
        self._changes: EventEmitter[TodoListState] = EventEmitter(
            f"{name} todos"
        )
        self._saved_changes: EventEmitter[list[SavedTodoList]] = (
            EventEmitter(f"{name} saved lists")
        )
        self._persist_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._storage_subscription: Disposable | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def storage(self) -> TodoStorage:
        return self._storage

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load persisted state and start listening for external changes.

        Storage failures are logged and leave the empty default list.
        """
        try:
            state = await self._storage.load()
        except Exception:
            logger.exception("[%s] Failed to load todos", self._name)
        else:
            self._todos = tuple(state.todos)
            self._title = state.title or DEFAULT_TITLE

        try:
            self._saved_lists = list(await self._storage.load_saved_lists())
        except Exception:
            logger.exception("[%s] Failed to load saved lists", self._name)

        logger.info(
            "[%s] Loaded %d todos (title=%r, %d saved lists)",
            self._name,
            len(self._todos),
            self._title,
            len(self._saved_lists),
        )
        self._storage_subscription = self._storage.on_did_change(
            self._apply_external_state
        )
        self._notify()

    async def flush(self) -> None:
        """Wait until every scheduled write has reached storage."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def dispose(self) -> None:
        """Flush pending writes and drop all listeners.

        The storage backend is owned by the caller and is not closed.
        """
        if self._storage_subscription is not None:
            self._storage_subscription.dispose()
            self._storage_subscription = None
        await self.flush()
        self._changes.clear()
        self._saved_changes.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_todos(self) -> list[TodoItem]:
        return list(self._todos)

    def get_todo(self, todo_id: str) -> TodoItem | None:
        for todo in self._todos:
            if todo.id == todo_id:
                return todo
        return None

    def has_todos(self) -> bool:
        return bool(self._todos)

    def get_base_title(self) -> str:
        """The raw title, including the default sentinel."""
        return self._title

    def get_title(self) -> str:
        """Title decorated with progress, e.g. ``"Docs (1/3)"``.

        An empty list with the default title yields ``""``; an empty list
        with a custom title yields the bare title.
        """
        if not self._todos:
            return "" if self._title == DEFAULT_TITLE else self._title
        completed = sum(
            1 for todo in self._todos if todo.status == TodoStatus.COMPLETED
        )
        return f"{self._title} ({completed}/{len(self._todos)})"

    def get_state(self) -> TodoListState:
        return TodoListState(todos=self._todos, title=self._title)

    def get_markdown(self, include_subtasks: bool = True) -> str:
        return format_todos_as_markdown(
            self._todos, self._title, include_subtasks
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_did_change(
        self, listener: Callable[[TodoListState], None]
    ) -> Disposable:
        """Subscribe to content changes of the list."""
        return self._changes.subscribe(listener)

    def on_did_change_saved_lists(
        self, listener: Callable[[list[SavedTodoList]], None]
    ) -> Disposable:
        """Subscribe to changes of the archive collection."""
        return self._saved_changes.subscribe(listener)

    def _notify(self) -> None:
        digest = content_hash(self._todos, self._title)
        if digest == self._last_emitted_hash:
            return
        self._last_emitted_hash = digest
        self._changes.fire(self.get_state())

    # ------------------------------------------------------------------
    # Whole-list mutations
    # ------------------------------------------------------------------

    async def update_todos(
        self,
        todos: Sequence[TodoItem | dict[str, Any]],
        title: str | None = None,
    ) -> None:
        """Replace the list, optionally renaming it.

        Args:
            todos: New records, as models or raw dicts.
            title: New title; None keeps the current one.

        Raises:
            TodoValidationError: If a record is malformed, ids repeat, or
                more than one record is in progress. State is unchanged.
        """
        raw = [
            todo.to_dict() if isinstance(todo, TodoItem) else todo
            for todo in todos
        ]
        is_valid, errors = validate_todos(raw)
        if not is_valid:
            raise TodoValidationError(
                "Invalid todo list: " + "; ".join(errors), errors
            )
        in_progress = count_in_progress(raw)
        if in_progress > 1:
            raise TodoValidationError(
                "Only one todo can be in_progress at a time "
                f"(found {in_progress})"
            )

        items = tuple(TodoItem.model_validate(todo) for todo in raw)
        new_title = self._title if title is None else _normalize_title(title)
        self._archive_if_renamed(new_title)
        self._commit(items, new_title)

    async def set_title(self, title: str) -> None:
        new_title = _normalize_title(title)
        self._archive_if_renamed(new_title)
        self._commit(self._todos, new_title)

    async def clear_todos(self) -> None:
        """Empty the list and reset the title to the default."""
        self._archive_if_renamed(DEFAULT_TITLE)
        self._commit((), DEFAULT_TITLE)

    # ------------------------------------------------------------------
    # Single-todo mutations
    # ------------------------------------------------------------------

    def _index_of(self, todo_id: str) -> int:
        for index, todo in enumerate(self._todos):
            if todo.id == todo_id:
                return index
        raise KeyError(f"Todo not found: {todo_id}")

    def _replace_todo(self, index: int, todo: TodoItem) -> None:
        todos = list(self._todos)
        todos[index] = todo
        self._commit(tuple(todos), self._title)

    async def delete_todo(self, todo_id: str) -> None:
        index = self._index_of(todo_id)
        todos = list(self._todos)
        del todos[index]
        self._commit(tuple(todos), self._title)

    async def set_todo_status(self, todo_id: str, status: TodoStatus | str) -> None:
        """Set a todo's status.

        Raises:
            KeyError: Unknown todo id.
            TodoValidationError: Another todo is already in progress.
        """
        index = self._index_of(todo_id)
        new_status = TodoStatus(status)
        if new_status == TodoStatus.IN_PROGRESS and not validate_single_in_progress(
            self._todos, exclude_id=todo_id
        ):
            raise TodoValidationError(
                "Only one todo can be in_progress at a time. "
                "Complete the current task first."
            )
        self._replace_todo(
            index, self._todos[index].model_copy(update={"status": new_status})
        )

    async def toggle_todo_status(self, todo_id: str) -> TodoStatus:
        """Cycle pending -> in_progress -> completed -> pending.

        Returns:
            The new status.
        """
        index = self._index_of(todo_id)
        next_status = _NEXT_STATUS[self._todos[index].status]
        await self.set_todo_status(todo_id, next_status)
        return next_status

    async def set_todo_priority(
        self, todo_id: str, priority: TodoPriority | str
    ) -> None:
        index = self._index_of(todo_id)
        self._replace_todo(
            index,
            self._todos[index].model_copy(
                update={"priority": TodoPriority(priority)}
            ),
        )

    async def set_todo_details(self, todo_id: str, details: str | None) -> None:
        """Set rationale text; it is trimmed, truncated, and blank clears it."""
        index = self._index_of(todo_id)
        self._replace_todo(
            index,
            self._todos[index].model_copy(
                update={"details": sanitize_details(details)}
            ),
        )

    # ------------------------------------------------------------------
    # Subtasks
    # ------------------------------------------------------------------

    async def add_subtask(self, todo_id: str, content: str) -> Subtask:
        if not content or not content.strip():
            raise TodoValidationError("Subtask content cannot be empty")
        index = self._index_of(todo_id)
        todo = self._todos[index]
        subtask = Subtask(id=generate_id("subtask"), content=content.strip())
        subtasks = (*(todo.subtasks or ()), subtask)
        self._replace_todo(index, todo.model_copy(update={"subtasks": subtasks}))
        return subtask

    def _subtask_index(self, todo: TodoItem, subtask_id: str) -> int:
        for index, subtask in enumerate(todo.subtasks or ()):
            if subtask.id == subtask_id:
                return index
        raise KeyError(f"Subtask not found: {subtask_id} (todo {todo.id})")

    async def toggle_subtask_status(
        self, todo_id: str, subtask_id: str
    ) -> SubtaskStatus:
        index = self._index_of(todo_id)
        todo = self._todos[index]
        sub_index = self._subtask_index(todo, subtask_id)
        subtasks = list(todo.subtasks or ())
        current = subtasks[sub_index]
        new_status = (
            SubtaskStatus.PENDING
            if current.status == SubtaskStatus.COMPLETED
            else SubtaskStatus.COMPLETED
        )
        subtasks[sub_index] = current.model_copy(update={"status": new_status})
        self._replace_todo(
            index, todo.model_copy(update={"subtasks": tuple(subtasks)})
        )
        return new_status

    async def delete_subtask(self, todo_id: str, subtask_id: str) -> None:
        index = self._index_of(todo_id)
        todo = self._todos[index]
        sub_index = self._subtask_index(todo, subtask_id)
        subtasks = list(todo.subtasks or ())
        del subtasks[sub_index]
        # model_copy skips validators, so normalise the empty case here
        self._replace_todo(
            index,
            todo.model_copy(update={"subtasks": tuple(subtasks) or None}),
        )

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def get_saved_lists(self) -> list[SavedTodoList]:
        return list(self._saved_lists)

    def get_saved_list_by_slug(self, slug: str) -> SavedTodoList | None:
        for saved in self._saved_lists:
            if saved.slug == slug:
                return saved
        return None

    async def delete_saved_list(self, slug: str) -> bool:
        """Delete an archived list. Returns False if the slug is unknown."""
        remaining = [s for s in self._saved_lists if s.slug != slug]
        if len(remaining) == len(self._saved_lists):
            return False
        self._saved_lists = remaining
        self._saved_lists_changed()
        return True

    async def clear_saved_lists(self) -> None:
        if not self._saved_lists:
            return
        self._saved_lists = []
        self._saved_lists_changed()

    async def replace_saved_lists(self, lists: Sequence[SavedTodoList]) -> None:
        """Adopt another replica's archive wholesale."""
        lists = list(lists)
        if lists == self._saved_lists:
            return
        self._saved_lists = lists
        self._saved_lists_changed()

    def _archive_if_renamed(self, new_title: str) -> None:
        old_title = self._title
        if old_title == DEFAULT_TITLE or not self._todos or new_title == old_title:
            return
        if any(
            lists_match(saved.title, saved.todos, old_title, self._todos)
            for saved in self._saved_lists
        ):
            logger.debug(
                "[%s] List %r already archived; skipping", self._name, old_title
            )
            return
        saved = SavedTodoList(
            id=generate_id("saved"),
            title=old_title,
            todos=self._todos,
            saved_at=datetime.now(timezone.utc),
            slug=generate_unique_slug(
                old_title, (s.slug for s in self._saved_lists)
            ),
        )
        self._saved_lists = [*self._saved_lists, saved]
        logger.info(
            "[%s] Archived list %r as %s (%d todos)",
            self._name,
            old_title,
            saved.slug,
            len(saved.todos),
        )
        self._saved_lists_changed()

    def _saved_lists_changed(self) -> None:
        snapshot = list(self._saved_lists)
        self._schedule(self._persist_saved_lists(snapshot))
        self._saved_changes.fire(list(snapshot))

    # ------------------------------------------------------------------
    # Commit / persistence
    # ------------------------------------------------------------------

    def _commit(self, todos: tuple[TodoItem, ...], title: str) -> None:
        self._todos = todos
        self._title = title
        self._schedule(self._persist(todos, title))
        self._notify()

    def _apply_external_state(self, state: TodoListState) -> None:
        """Adopt state changed outside this process; nothing is re-persisted."""
        self._todos = tuple(state.todos)
        self._title = state.title or DEFAULT_TITLE
        self._notify()

    def _schedule(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, todos: tuple[TodoItem, ...], title: str) -> None:
        async with self._persist_lock:
            try:
                await self._storage.save(todos, title)
            except Exception:
                logger.exception("[%s] Failed to persist todos", self._name)

    async def _persist_saved_lists(self, lists: list[SavedTodoList]) -> None:
        async with self._persist_lock:
            try:
                await self._storage.save_saved_lists(lists)
            except Exception:
                logger.exception("[%s] Failed to persist saved lists", self._name)


def _normalize_title(title: str) -> str:
    return title if title and title.strip() else DEFAULT_TITLE
