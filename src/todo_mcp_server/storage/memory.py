"""Process-local storage backend."""

from __future__ import annotations

from collections.abc import Sequence

from ..models import DEFAULT_TITLE, SavedTodoList, TodoItem, TodoListState
from .base import TodoStorage


class InMemoryStorage(TodoStorage):
    """Keeps the list in memory. Used for the protocol-facing replica
    and in tests; never reports external changes."""

    def __init__(
        self,
        todos: Sequence[TodoItem] = (),
        title: str = DEFAULT_TITLE,
    ):
        self._state = TodoListState(todos=tuple(todos), title=title)
        self._saved_lists: list[SavedTodoList] = []

    async def load(self) -> TodoListState:
        return self._state

    async def save(self, todos: Sequence[TodoItem], title: str) -> None:
        self._state = TodoListState(todos=tuple(todos), title=title)

    async def clear(self) -> None:
        self._state = TodoListState()

    async def load_saved_lists(self) -> list[SavedTodoList]:
        return list(self._saved_lists)

    async def save_saved_lists(self, lists: Sequence[SavedTodoList]) -> None:
        self._saved_lists = list(lists)
