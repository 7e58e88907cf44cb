"""MCP tool handlers for the todo list.

This package contains the todo_read/todo_write tools, the visibility
policy deciding which of them a session exposes, and the per-session
registry that applies that policy.
"""

from .errors import build_error_response, build_text_response
from .registry import ReconcileResult, ToolContext, ToolRegistry, ToolSpec
from .todo import (
    TODO_READ,
    TODO_WRITE,
    TodoToolHandlers,
    build_read_tool,
    build_write_input_schema,
    build_write_tool,
    desired_tools,
    should_show_read_tool,
)

__all__ = [
    "build_error_response",
    "build_text_response",
    # Registry
    "ToolSpec",
    "ToolContext",
    "ToolRegistry",
    "ReconcileResult",
    # Todo tools
    "TODO_READ",
    "TODO_WRITE",
    "TodoToolHandlers",
    "build_read_tool",
    "build_write_tool",
    "build_write_input_schema",
    "desired_tools",
    "should_show_read_tool",
]
