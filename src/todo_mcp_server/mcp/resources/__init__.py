"""MCP resource handlers for the todo list.

This package exposes the current list and the archive of saved lists as
read-only markdown resources.
"""

from .todos import (
    SAVED_INDEX_URI,
    TODO_RESOURCE_TEMPLATES,
    TODOS_URI,
    list_todo_resources,
    read_todo_resource,
)

__all__ = [
    "TODOS_URI",
    "SAVED_INDEX_URI",
    "TODO_RESOURCE_TEMPLATES",
    "list_todo_resources",
    "read_todo_resource",
]
