"""Pydantic models for todo lists and their archive.

Defines the data contracts shared by the store, the codec, the storage
backends and the MCP tools:

- ``TodoStatus``, ``TodoPriority``, ``SubtaskStatus``: enums.
- ``Subtask``, ``TodoItem``: list records.
- ``TodoListState``: an ordered list plus its title.
- ``SavedTodoList``: an archived snapshot of a previous named list.

All models are frozen (immutable), so a snapshot handed to a caller can
never be used to mutate a store's internal state.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, field_validator

DEFAULT_TITLE = "Todos"
"""Sentinel title of an unnamed list."""

MAX_DETAILS_LENGTH = 500


def _single_line(text: str) -> str:
    """Collapse whitespace runs (line breaks included) into single spaces."""
    return " ".join(text.split())


class TodoStatus(str, Enum):
    """Lifecycle state of a todo."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TodoPriority(str, Enum):
    """Priority of a todo."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SubtaskStatus(str, Enum):
    """Subtasks have no in-progress state."""

    PENDING = "pending"
    COMPLETED = "completed"


class Subtask(BaseModel):
    """A checklist entry nested under a todo."""

    id: str
    content: str
    status: SubtaskStatus = SubtaskStatus.PENDING

    model_config = {"frozen": True}

    @field_validator("content")
    @classmethod
    def _normalize_content(cls, value: str) -> str:
        return _single_line(value)


class TodoItem(BaseModel):
    """A single todo record.

    Attributes:
        id: Opaque identifier, unique within its list.
        content: Non-empty task description, kept on one line with
            whitespace runs collapsed.
        status: pending, in_progress or completed.
        priority: low, medium or high.
        details: Optional rationale text (at most 500 characters).
        subtasks: Optional ordered subtasks. An empty sequence is stored
            as ``None``.
    """

    id: str
    content: str
    status: TodoStatus = TodoStatus.PENDING
    priority: TodoPriority = TodoPriority.MEDIUM
    details: str | None = None
    subtasks: tuple[Subtask, ...] | None = None

    model_config = {"frozen": True}

    @field_validator("content")
    @classmethod
    def _normalize_content(cls, value: str) -> str:
        return _single_line(value)

    @field_validator("details")
    @classmethod
    def _blank_details_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return _single_line(value)

    @field_validator("subtasks")
    @classmethod
    def _empty_subtasks_to_none(
        cls, value: tuple[Subtask, ...] | None
    ) -> tuple[Subtask, ...] | None:
        return value or None

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict, omitting unset optionals."""
        return self.model_dump(mode="json", exclude_none=True)


class TodoListState(BaseModel):
    """Ordered todos plus the list title."""

    todos: tuple[TodoItem, ...] = ()
    title: str = DEFAULT_TITLE

    model_config = {"frozen": True}

    def to_dict(self) -> dict:
        return {
            "todos": [todo.to_dict() for todo in self.todos],
            "title": self.title,
        }


class SavedTodoList(BaseModel):
    """Archived snapshot of a previous named list. Never mutated."""

    id: str
    title: str
    todos: tuple[TodoItem, ...]
    saved_at: datetime
    slug: str

    model_config = {"frozen": True}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "todos": [todo.to_dict() for todo in self.todos],
            "saved_at": self.saved_at.isoformat(),
            "slug": self.slug,
        }


def content_hash(todos: Iterable[TodoItem], title: str) -> str:
    """Return a SHA-256 digest of the canonical JSON form of a list.

    Two lists hash equal exactly when their todos (in order) and title
    are equal, which is what change deduplication and sync echo
    suppression compare on.
    """
    payload = {
        "todos": [todo.to_dict() for todo in todos],
        "title": title,
    }
    encoded = json.dumps(
        payload, sort_keys=True, ensure_ascii=False, separators=(",", ":")
    )
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
