"""MCP tools for reading and writing the todo list.

Tools:
- todo_read: Return the current list as JSON. Hidden when an external
  auto-inject channel already exposes the list.
- todo_write: Replace the list (and optionally its title). Always
  present; its schema gains a ``subtasks`` field when subtasks are on.

Which tools exist, and with what schema, is decided by the pure
``desired_tools()`` policy; sessions reconcile their registries against it.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import mcp.types as types

from ...models import TodoStatus
from ...store import TodoStore
from ...validators import TodoValidationError, count_in_progress, validate_todos
from ..broadcast import BroadcastEvent, TodosUpdated
from ..settings import ToolSettings
from .descriptions import READ_DESCRIPTION, build_write_description
from .errors import build_error_response, build_text_response
from .registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

TODO_READ = "todo_read"
TODO_WRITE = "todo_write"

AUTO_INJECT_READ_MESSAGE = (
    "Todo list is automatically available in custom instructions when "
    "auto-inject is enabled. This tool is disabled."
)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


def _subtask_schema() -> dict:
    return {
        "type": "array",
        "description": "Smaller steps of this task. Use for tasks with 3+ actions.",
        "items": {
            "type": "object",
            "properties": {
                "id": {
                    "type": "string",
                    "description": "Unique kebab-case identifier within the task",
                },
                "content": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Specific step to complete",
                },
                "status": {
                    "type": "string",
                    "enum": ["pending", "completed"],
                    "description": "pending (not done) or completed",
                },
            },
            "required": ["id", "content", "status"],
        },
    }


def build_write_input_schema(subtasks_enabled: bool) -> dict:
    """JSON schema for todo_write; ``subtasks`` only when enabled."""
    item_properties: dict[str, Any] = {
        "id": {
            "type": "string",
            "description": 'Unique kebab-case identifier (e.g., "implement-user-auth")',
        },
        "content": {
            "type": "string",
            "minLength": 1,
            "description": "Clear, specific description of what needs to be done",
        },
        "status": {
            "type": "string",
            "enum": ["pending", "in_progress", "completed"],
            "description": "pending, in_progress or completed. Only ONE task can be in_progress.",
        },
        "priority": {
            "type": "string",
            "enum": ["low", "medium", "high"],
            "description": "high (urgent), medium (important), low (nice-to-have)",
        },
        "details": {
            "type": "string",
            "maxLength": 500,
            "description": "Rationale: technical context, decisions, blockers or notes",
        },
    }
    if subtasks_enabled:
        item_properties["subtasks"] = _subtask_schema()

    return {
        "type": "object",
        "properties": {
            "todos": {
                "type": "array",
                "description": "Complete list of todos (replaces the existing list)",
                "items": {
                    "type": "object",
                    "properties": item_properties,
                    "required": ["id", "content", "status", "priority"],
                },
            },
            "title": {
                "type": "string",
                "description": "Descriptive name for the whole list (project, feature or sprint)",
            },
        },
        "required": ["todos"],
    }


def build_read_tool() -> types.Tool:
    return types.Tool(
        name=TODO_READ,
        description=READ_DESCRIPTION,
        inputSchema={"type": "object", "properties": {}, "required": []},
        annotations=types.ToolAnnotations(title="Check Todos", readOnlyHint=True),
    )


def build_write_tool(subtasks_enabled: bool) -> types.Tool:
    return types.Tool(
        name=TODO_WRITE,
        description=build_write_description(subtasks_enabled),
        inputSchema=build_write_input_schema(subtasks_enabled),
        annotations=types.ToolAnnotations(title="Update Todos"),
    )


# ---------------------------------------------------------------------------
# Visibility policy
# ---------------------------------------------------------------------------


def should_show_read_tool(settings: ToolSettings, has_todos: bool) -> bool:
    """todo_read is shown in standalone mode, or when auto-inject is off
    and the list has todos."""
    return settings.standalone or (not settings.auto_inject and has_todos)


def desired_tools(settings: ToolSettings, has_todos: bool) -> dict[str, types.Tool]:
    """Return the tools a session should expose right now, keyed by name."""
    tools: dict[str, types.Tool] = {}
    if should_show_read_tool(settings, has_todos):
        tools[TODO_READ] = build_read_tool()
    tools[TODO_WRITE] = build_write_tool(settings.subtasks_active)
    return tools


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class TodoToolHandlers:
    """Handlers for todo_read/todo_write bound to one store.

    Args:
        store: The protocol-facing replica.
        settings: Live tool settings (shared with the session manager).
        broadcast: Coroutine function called with ``TodosUpdated`` after a
            successful write.
    """

    def __init__(
        self,
        store: TodoStore,
        settings: ToolSettings,
        broadcast: Callable[[BroadcastEvent], Awaitable[None]] | None = None,
    ):
        self.store = store
        self.settings = settings
        self.broadcast = broadcast
        self._handlers = {
            TODO_READ: self.handle_read,
            TODO_WRITE: self.handle_write,
        }

    def build_specs(self, has_todos: bool | None = None) -> dict[str, ToolSpec]:
        """Pair ``desired_tools()`` with this instance's handlers."""
        if has_todos is None:
            has_todos = self.store.has_todos()
        return {
            name: ToolSpec(tool=tool, handler=self._handlers[name])
            for name, tool in desired_tools(self.settings, has_todos).items()
        }

    async def handle_read(
        self, args: dict, context: ToolContext
    ) -> types.CallToolResult:
        """Return ``{"title", "todos"}`` as indented JSON."""
        if self.settings.auto_inject_active:
            logger.info("todo_read blocked: auto-inject is enabled")
            return build_text_response(AUTO_INJECT_READ_MESSAGE)

        todos = self.store.get_todos()
        title = self.store.get_base_title()
        logger.info("Reading %d todos (title=%r)", len(todos), title)
        payload = {"title": title, "todos": [todo.to_dict() for todo in todos]}
        return build_text_response(
            json.dumps(payload, indent=2, ensure_ascii=False)
        )

    async def handle_write(
        self, args: dict, context: ToolContext
    ) -> types.CallToolResult:
        """Validate and apply a full-list replacement.

        Nothing is mutated unless every check passes.
        """
        todos = args.get("todos")
        title = args.get("title")

        if not isinstance(todos, list):
            return build_error_response(
                "validation_error",
                "todos must be an array",
                "Pass the complete list of todos as an array.",
            )

        in_progress = count_in_progress(todos)
        if in_progress > 1:
            return build_error_response(
                "invariant_violation",
                "Only ONE task can be in_progress at a time. "
                f"Found {in_progress} tasks marked as in_progress. "
                "Please complete current tasks before starting new ones.",
                "Keep a single task in_progress and set the others to pending.",
            )

        if title is not None and not isinstance(title, str):
            return build_error_response(
                "validation_error",
                "title must be a string",
                "Pass the list title as a string or omit it.",
            )

        records = [_normalize_record(todo) for todo in todos]
        is_valid, errors = validate_todos(records)
        if not is_valid:
            return build_error_response(
                "validation_error",
                "; ".join(errors),
                "Fix the listed todos and resend the complete list.",
            )

        if not self.settings.subtasks_active and any(
            record.get("subtasks") for record in records
        ):
            return build_error_response(
                "feature_disabled",
                "Subtasks are disabled in settings.",
                "Remove the subtasks fields, or enable subtasks "
                "(todos.enable_subtasks) and retry.",
            )

        was_empty = not self.store.has_todos()
        try:
            await self.store.update_todos(records, title)
        except TodoValidationError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Fix the listed todos and resend the complete list.",
            )
        logger.info(
            "Updated %d todos via MCP (title=%r)", len(records), title
        )

        if self.broadcast is not None:
            await self.broadcast(
                TodosUpdated(
                    todos=tuple(self.store.get_todos()),
                    title=self.store.get_base_title(),
                )
            )

        if was_empty and records:
            await self._send_started(context, title)

        return build_text_response(self._summary(records, title))

    async def _send_started(self, context: ToolContext, title: str | None) -> None:
        if not context.supports_progress:
            return
        message = f"Todos: {title or 'untitled'}"
        try:
            await context.send_progress(context.progress_token, message)
        except Exception as e:
            logger.warning(
                "Failed to send progress to session %s: %s",
                context.session_id,
                e,
            )

    def _summary(self, records: list[dict], title: str | None) -> str:
        statuses = [record.get("status") for record in records]
        pending = statuses.count(TodoStatus.PENDING.value)
        active = statuses.count(TodoStatus.IN_PROGRESS.value)
        completed = statuses.count(TodoStatus.COMPLETED.value)

        text = (
            f"Successfully updated {len(records)} todo items "
            f"({pending} pending, {active} in progress, {completed} completed)"
        )
        if title:
            text += f' and title to "{title}"'

        with_subtasks = [r for r in records if r.get("subtasks")]
        if with_subtasks:
            total = sum(len(r["subtasks"]) for r in with_subtasks)
            done = sum(
                1
                for r in with_subtasks
                for s in r["subtasks"]
                if s.get("status") == "completed"
            )
            text += (
                f"\nSubtasks: {done}/{total} completed across "
                f"{len(with_subtasks)} tasks"
            )

        with_details = sum(1 for r in records if r.get("details"))
        if with_details:
            text += f"\nDetails added to {with_details} task(s)"

        if active == 0 and pending > 0:
            text += "\nReminder: Mark a task as in_progress BEFORE starting work on it."

        if self.settings.auto_inject_active:
            text += (
                "\nNote: Todos are automatically synced to <todos> in "
                f"{self.settings.auto_inject_file_path}"
            )
        return text


def _normalize_record(todo: Any) -> Any:
    """Accept the legacy ``adr`` key as ``details``."""
    if isinstance(todo, dict) and "adr" in todo and "details" not in todo:
        todo = {k: v for k, v in todo.items() if k != "adr"} | {"details": todo["adr"]}
    return todo
