"""Storage backend contract for todo stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from ..events import Disposable
from ..models import SavedTodoList, TodoItem, TodoListState


class TodoStorage(ABC):
    """Persistence substrate behind a ``TodoStore``.

    Backends persist one list (todos plus title) and, optionally, the
    collection of archived lists. Backends whose state can change outside
    this process override ``on_did_change``.
    """

    @abstractmethod
    async def load(self) -> TodoListState:
        """Return the persisted list, or an empty default list."""

    @abstractmethod
    async def save(self, todos: Sequence[TodoItem], title: str) -> None:
        """Persist the list, replacing what was stored before."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove the persisted list."""

    def on_did_change(
        self, listener: Callable[[TodoListState], None]
    ) -> Disposable | None:
        """Subscribe to external modifications.

        Returns None when the backend cannot observe external changes.
        """
        return None

    async def load_saved_lists(self) -> list[SavedTodoList]:
        return []

    async def save_saved_lists(self, lists: Sequence[SavedTodoList]) -> None:
        return None

    async def clear_saved_lists(self) -> None:
        await self.save_saved_lists([])

    async def close(self) -> None:
        """Release background resources such as file watchers."""
        return None
