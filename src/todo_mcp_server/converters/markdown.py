"""Markdown codec for todo lists.

Serialization format::

    # Sprint 12

    - [ ] t1: Write docs 🔴
      _Needed before the design review_
      - [x] t1-a: Collect requirements
    - [-] t2: Implement codec 🟡
    - [x] t3: Set up CI 🟢

Checkbox markers are ``x`` (completed), ``-`` (in progress) and a space
(pending); subtasks only use ``x`` and a space. The trailing emoji
encodes priority. Parsing is line-based and skips anything it does not
recognize, so the block can be edited by hand.
"""

from __future__ import annotations

import random
import re
import string
import time
from collections.abc import Iterable, Sequence
from typing import Any

from ..models import (
    Subtask,
    SubtaskStatus,
    TodoItem,
    TodoPriority,
    TodoStatus,
)
from ..validators import sanitize_details, validate_id

TODO_LINE = re.compile(r"^- \[([ x-])\] ([^:]+): (.+)$")
SUBTASK_LINE = re.compile(r"^  - \[([ x])\] ([^:]+): (.+)$")
DETAILS_LINE = re.compile(r"^  _(.+)_$")
TITLE_LINE = re.compile(r"^# (.+)$")

PRIORITY_EMOJI: dict[TodoPriority, str] = {
    TodoPriority.HIGH: "\U0001f534",
    TodoPriority.MEDIUM: "\U0001f7e1",
    TodoPriority.LOW: "\U0001f7e2",
}
EMOJI_PRIORITY: dict[str, TodoPriority] = {
    emoji: priority for priority, emoji in PRIORITY_EMOJI.items()
}

_STATUS_MARKER = {
    TodoStatus.COMPLETED: "x",
    TodoStatus.IN_PROGRESS: "-",
    TodoStatus.PENDING: " ",
}
_MARKER_STATUS = {marker: status for status, marker in _STATUS_MARKER.items()}

_ID_ALPHABET = string.ascii_lowercase + string.digits


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _single_line(text: str) -> str:
    return " ".join(text.split())


def format_todo(todo: TodoItem, include_subtasks: bool = True) -> str:
    """Format one todo (checkbox, details, subtasks) as markdown lines."""
    emoji = PRIORITY_EMOJI[todo.priority]
    lines = [
        f"- [{_STATUS_MARKER[todo.status]}] {todo.id}: "
        f"{_single_line(todo.content)} {emoji}"
    ]
    if todo.details:
        lines.append(f"  _{_single_line(todo.details)}_")
    if include_subtasks and todo.subtasks:
        for subtask in todo.subtasks:
            marker = "x" if subtask.status == SubtaskStatus.COMPLETED else " "
            lines.append(
                f"  - [{marker}] {subtask.id}: {_single_line(subtask.content)}"
            )
    return "\n".join(lines) + "\n"


def format_todos_as_markdown(
    todos: Sequence[TodoItem],
    title: str | None = None,
    include_subtasks: bool = True,
) -> str:
    """Serialize a todo list to markdown.

    Args:
        todos: Ordered todo records.
        title: Optional title, emitted as a ``# title`` heading.
        include_subtasks: Whether subtask lines are written.

    Returns:
        Markdown text with surrounding whitespace stripped.
    """
    parts: list[str] = []
    if title:
        parts.append(f"# {title}\n\n")
    for todo in todos:
        parts.append(format_todo(todo, include_subtasks))
    return "".join(parts).strip()


# ---------------------------------------------------------------------------
# Deserialization
# ---------------------------------------------------------------------------


def _split_priority(content: str) -> tuple[str, TodoPriority]:
    text = content.strip()
    for emoji, priority in EMOJI_PRIORITY.items():
        if text.endswith(emoji):
            return text[: -len(emoji)].strip(), priority
    return text, TodoPriority.MEDIUM


def parse_markdown(text: str) -> tuple[list[TodoItem], str | None]:
    """Parse markdown produced by ``format_todos_as_markdown``.

    Returns:
        Tuple of (todos, title). ``title`` is None when no heading exists.
    """
    todos: list[TodoItem] = []
    title: str | None = None
    current: dict[str, Any] | None = None

    def flush() -> None:
        if current is not None:
            todos.append(TodoItem.model_validate(current))

    for raw_line in text.split("\n"):
        line = raw_line.rstrip("\r")

        title_match = TITLE_LINE.match(line)
        if title_match:
            title = title_match.group(1).strip()
            continue

        todo_match = TODO_LINE.match(line)
        if todo_match:
            flush()
            marker, todo_id, content = todo_match.groups()
            clean, priority = _split_priority(content)
            current = {
                "id": todo_id.strip(),
                "content": clean,
                "status": _MARKER_STATUS[marker],
                "priority": priority,
            }
            continue

        if current is None:
            continue

        subtask_match = SUBTASK_LINE.match(line)
        if subtask_match:
            marker, subtask_id, content = subtask_match.groups()
            current.setdefault("subtasks", []).append(
                {
                    "id": subtask_id.strip(),
                    "content": content.strip(),
                    "status": (
                        SubtaskStatus.COMPLETED
                        if marker == "x"
                        else SubtaskStatus.PENDING
                    ),
                }
            )
            continue

        details_match = DETAILS_LINE.match(line)
        if details_match:
            current["details"] = details_match.group(1).strip()

    flush()
    return todos, title


# ---------------------------------------------------------------------------
# Sanitization of imported lists
# ---------------------------------------------------------------------------


def generate_id(prefix: str = "todo") -> str:
    """Generate an id like ``todo-1718000000000-k3j9x0a2b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def _as_dict(item: Any) -> dict[str, Any] | None:
    if isinstance(item, TodoItem):
        return item.model_dump()
    if isinstance(item, dict):
        return item
    return None


def _enum_or_default(enum_cls, raw: Any, default):
    try:
        return enum_cls(raw)
    except (TypeError, ValueError):
        return default


def _sanitize_subtasks(raw: Any) -> list[Subtask] | None:
    if not isinstance(raw, (list, tuple)):
        return None
    seen: set[str] = set()
    result: list[Subtask] = []
    for item in raw:
        data = item.model_dump() if isinstance(item, Subtask) else item
        if not isinstance(data, dict):
            continue
        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        subtask_id = data.get("id")
        if not validate_id(subtask_id)[0] or subtask_id in seen:
            subtask_id = generate_id("subtask")
        seen.add(subtask_id)
        result.append(
            Subtask(
                id=subtask_id,
                content=content.strip(),
                status=_enum_or_default(
                    SubtaskStatus, data.get("status"), SubtaskStatus.PENDING
                ),
            )
        )
    return result or None


def validate_and_sanitize_todos(todos: Iterable[Any]) -> list[TodoItem]:
    """Repair an imported or otherwise untrusted todo list.

    - Missing, malformed or duplicate ids are replaced with generated
      ones (todos and subtasks independently).
    - Records with empty content are dropped.
    - Invalid status/priority values become ``pending``/``medium``.
    - Details are trimmed and truncated; ``adr`` is accepted as an alias.
    """
    seen: set[str] = set()
    sanitized: list[TodoItem] = []
    for item in todos:
        data = _as_dict(item)
        if data is None:
            continue

        todo_id = data.get("id")
        if not validate_id(todo_id)[0] or todo_id in seen:
            todo_id = generate_id("todo")
        seen.add(todo_id)

        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            continue

        details = data.get("details") or data.get("adr")
        sanitized.append(
            TodoItem(
                id=todo_id,
                content=content.strip(),
                status=_enum_or_default(
                    TodoStatus, data.get("status"), TodoStatus.PENDING
                ),
                priority=_enum_or_default(
                    TodoPriority, data.get("priority"), TodoPriority.MEDIUM
                ),
                details=sanitize_details(details)
                if isinstance(details, str)
                else None,
                subtasks=_sanitize_subtasks(data.get("subtasks")),
            )
        )
    return sanitized
