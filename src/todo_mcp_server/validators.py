"""
Input validation functions for the todo MCP server.

Checks the shape of untrusted todo records (tool arguments, imported
files) and the single-in-progress invariant before anything touches a
store. Validation runs to completion before any mutation is applied.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from .models import (
    MAX_DETAILS_LENGTH,
    SubtaskStatus,
    TodoItem,
    TodoPriority,
    TodoStatus,
)

_TODO_STATUSES = {s.value for s in TodoStatus}
_TODO_PRIORITIES = {p.value for p in TodoPriority}
_SUBTASK_STATUSES = {s.value for s in SubtaskStatus}

# ids are written as "id: content" in markdown
_ID_FORBIDDEN = (":", "\n", "\r")


class TodoValidationError(ValueError):
    """Raised when a todo list fails validation or breaks an invariant.

    Attributes:
        errors: Individual validation messages, in record order.
    """

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Todo content")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def _value(raw: Any) -> Any:
    if isinstance(raw, (TodoStatus, TodoPriority, SubtaskStatus)):
        return raw.value
    return raw


# ---------------------------------------------------------------------------
# Record validation
# ---------------------------------------------------------------------------


def validate_id(value: Any) -> tuple[bool, str]:
    """Check that *value* can be used as a todo or subtask id."""
    if not isinstance(value, str) or not value.strip():
        return (False, "must be a non-empty string")
    if value != value.strip():
        return (False, "cannot start or end with whitespace")
    if any(char in value for char in _ID_FORBIDDEN):
        return (False, "cannot contain ':' or line breaks")
    return (True, "")


def validate_subtask(subtask: Any) -> tuple[bool, str]:
    """
    Validate a single subtask record.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.
    """
    if not isinstance(subtask, dict):
        return (False, format_validation_error("Subtask", "must be an object"))

    subtask_id = subtask.get("id")
    id_ok, id_error = validate_id(subtask_id)
    if not id_ok:
        return (False, format_validation_error("Subtask id", id_error))

    content = subtask.get("content")
    if not isinstance(content, str) or not content.strip():
        return (
            False,
            format_validation_error(
                f"Subtask '{subtask_id}' content", "cannot be empty"
            ),
        )

    status = _value(subtask.get("status"))
    if status not in _SUBTASK_STATUSES:
        return (
            False,
            format_validation_error(
                f"Subtask '{subtask_id}' status",
                f"must be one of {sorted(_SUBTASK_STATUSES)}, got {status!r}",
            ),
        )

    return (True, "")


def validate_todo(todo: Any) -> tuple[bool, str]:
    """
    Validate a single todo record.

    Args:
        todo: The raw record (usually a dict from tool arguments)

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - id is a non-empty string without surrounding whitespace, ":" or
          line breaks
        - content is a non-empty string
        - status is pending, in_progress or completed
        - priority is low, medium or high
        - details, when present, is a string of at most 500 characters
        - subtasks, when present, is a list of valid subtasks with unique ids
    """
    if not isinstance(todo, dict):
        return (False, format_validation_error("Todo", "must be an object"))

    todo_id = todo.get("id")
    id_ok, id_error = validate_id(todo_id)
    if not id_ok:
        return (False, format_validation_error("Todo id", id_error))

    content = todo.get("content")
    if not isinstance(content, str) or not content.strip():
        return (
            False,
            format_validation_error(
                f"Todo '{todo_id}' content", "cannot be empty"
            ),
        )

    status = _value(todo.get("status"))
    if status not in _TODO_STATUSES:
        return (
            False,
            format_validation_error(
                f"Todo '{todo_id}' status",
                f"must be one of {sorted(_TODO_STATUSES)}, got {status!r}",
            ),
        )

    priority = _value(todo.get("priority"))
    if priority not in _TODO_PRIORITIES:
        return (
            False,
            format_validation_error(
                f"Todo '{todo_id}' priority",
                f"must be one of {sorted(_TODO_PRIORITIES)}, got {priority!r}",
            ),
        )

    details = todo.get("details")
    if details is not None:
        if not isinstance(details, str):
            return (
                False,
                format_validation_error(
                    f"Todo '{todo_id}' details", "must be a string"
                ),
            )
        if len(details) > MAX_DETAILS_LENGTH:
            return (
                False,
                format_validation_error(
                    f"Todo '{todo_id}' details",
                    f"exceeds maximum length of {MAX_DETAILS_LENGTH} characters",
                ),
            )

    subtasks = todo.get("subtasks")
    if subtasks is not None:
        if not isinstance(subtasks, (list, tuple)):
            return (
                False,
                format_validation_error(
                    f"Todo '{todo_id}' subtasks", "must be an array"
                ),
            )
        seen: set[str] = set()
        for subtask in subtasks:
            is_valid, error = validate_subtask(subtask)
            if not is_valid:
                return (False, f"Todo '{todo_id}': {error}")
            if subtask["id"] in seen:
                return (
                    False,
                    format_validation_error(
                        f"Todo '{todo_id}' subtask id '{subtask['id']}'",
                        "is duplicated",
                    ),
                )
            seen.add(subtask["id"])

    return (True, "")


def validate_todos(todos: Any) -> tuple[bool, list[str]]:
    """
    Validate a whole list of todo records.

    Returns:
        Tuple of (is_valid, errors). ``errors`` is empty when valid.
    """
    if not isinstance(todos, (list, tuple)):
        return (False, [format_validation_error("Todos", "must be an array")])

    errors: list[str] = []
    seen: set[str] = set()
    for index, todo in enumerate(todos):
        is_valid, error = validate_todo(todo)
        if not is_valid:
            errors.append(f"Todo at index {index}: {error}")
            continue
        if todo["id"] in seen:
            errors.append(
                format_validation_error(
                    f"Todo id '{todo['id']}'", "is duplicated"
                )
            )
        seen.add(todo["id"])

    return (not errors, errors)


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


def _status_of(todo: Any) -> Any:
    if isinstance(todo, TodoItem):
        return todo.status.value
    if isinstance(todo, dict):
        return _value(todo.get("status"))
    return None


def count_in_progress(todos: Iterable[Any]) -> int:
    """Count records whose status is ``in_progress``."""
    return sum(
        1 for todo in todos if _status_of(todo) == TodoStatus.IN_PROGRESS.value
    )


def validate_single_in_progress(
    todos: Iterable[Any], exclude_id: str | None = None
) -> bool:
    """Return True when at most one record is ``in_progress``.

    Args:
        todos: Records (``TodoItem`` or dicts).
        exclude_id: Record to ignore, used when checking whether that
            record may become the in-progress one.
    """
    remaining = [
        todo
        for todo in todos
        if exclude_id is None or _id_of(todo) != exclude_id
    ]
    limit = 0 if exclude_id is not None else 1
    return count_in_progress(remaining) <= limit


def _id_of(todo: Any) -> Any:
    if isinstance(todo, TodoItem):
        return todo.id
    if isinstance(todo, dict):
        return todo.get("id")
    return None


def sanitize_details(details: str | None) -> str | None:
    """Trim and truncate rationale text; blank text becomes None."""
    if details is None:
        return None
    trimmed = details.strip()
    if not trimmed:
        return None
    return trimmed[:MAX_DETAILS_LENGTH]


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


def _comparable(todo: TodoItem) -> tuple:
    return (
        todo.id,
        todo.content,
        todo.status.value,
        todo.priority.value,
        todo.details,
    )


def lists_match(
    title_a: str,
    todos_a: Sequence[TodoItem],
    title_b: str,
    todos_b: Sequence[TodoItem],
) -> bool:
    """Return True if two lists have the same title and identical todos.

    Todos are compared in order on id, content, status, priority and
    details. Used to avoid archiving the same list twice.
    """
    if title_a != title_b or len(todos_a) != len(todos_b):
        return False
    return all(
        _comparable(a) == _comparable(b) for a, b in zip(todos_a, todos_b)
    )
