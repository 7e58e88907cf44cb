"""MCP resources for the todo list and its archive.

URIs:
- todos://todos            -- current list as markdown
- todos://saved            -- index of archived lists
- todos://saved/{slug}     -- one archived list as markdown
"""

import logging
from datetime import datetime, timezone

import mcp.types as types
from pydantic import AnyUrl

from ...converters.markdown import format_todos_as_markdown
from ...models import TodoStatus
from ...store import TodoStore

logger = logging.getLogger(__name__)

TODOS_URI = "todos://todos"
SAVED_INDEX_URI = "todos://saved"
SAVED_LIST_TEMPLATE = "todos://saved/{slug}"

TODO_RESOURCE_TEMPLATES = [
    types.ResourceTemplate(
        uriTemplate=SAVED_LIST_TEMPLATE,
        name="Saved todo list",
        description="An archived todo list, addressed by its slug",
        mimeType="text/markdown",
    ),
]


def list_todo_resources(store: TodoStore) -> list[types.Resource]:
    """Return the static resources plus one entry per archived list."""
    resources = [
        types.Resource(
            uri=AnyUrl(TODOS_URI),
            name="todos",
            title="Current todo list",
            description="Current todo list in markdown format",
            mimeType="text/markdown",
        ),
        types.Resource(
            uri=AnyUrl(SAVED_INDEX_URI),
            name="saved-todo-lists",
            title="Saved todo lists",
            description="Index of archived todo lists",
            mimeType="text/markdown",
        ),
    ]
    for saved in store.get_saved_lists():
        resources.append(
            types.Resource(
                uri=AnyUrl(f"todos://saved/{saved.slug}"),
                name=saved.slug,
                title=saved.title,
                description=f"Archived list '{saved.title}' ({len(saved.todos)} todos)",
                mimeType="text/markdown",
            )
        )
    return resources


def format_time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Describe how long ago *moment* was ("just now", "5 minutes ago", ...).

    Naive datetimes are treated as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = int((now - moment).total_seconds())

    match seconds:
        case s if s < 60:
            return "just now"
        case s if s < 3600:
            value, unit = s // 60, "minute"
        case s if s < 86400:
            value, unit = s // 3600, "hour"
        case s if s < 86400 * 30:
            value, unit = s // 86400, "day"
        case _:
            return moment.strftime("%Y-%m-%d %H:%M")
    return f"{value} {unit}{'' if value == 1 else 's'} ago"


def render_saved_index(store: TodoStore) -> str:
    saved_lists = store.get_saved_lists()
    if not saved_lists:
        return "# Saved todo lists\n\nNo saved lists."
    lines = ["# Saved todo lists", ""]
    for saved in sorted(saved_lists, key=lambda s: s.saved_at, reverse=True):
        completed = sum(
            1 for todo in saved.todos if todo.status == TodoStatus.COMPLETED
        )
        lines.append(
            f"- [{saved.title}](todos://saved/{saved.slug}) "
            f"({completed}/{len(saved.todos)} completed, "
            f"saved {format_time_ago(saved.saved_at)})"
        )
    return "\n".join(lines)


def read_todo_resource(
    uri: str, store: TodoStore, include_subtasks: bool = True
) -> str:
    """Render the resource at *uri*.

    Raises:
        ValueError: If the URI is not a known todo resource.
    """
    uri = uri.rstrip("/")
    if uri == TODOS_URI:
        return store.get_markdown(include_subtasks)
    if uri == SAVED_INDEX_URI:
        return render_saved_index(store)
    prefix = SAVED_INDEX_URI + "/"
    if uri.startswith(prefix):
        slug = uri[len(prefix) :]
        saved = store.get_saved_list_by_slug(slug)
        if saved is None:
            raise ValueError(f"Saved list not found: {slug}")
        return format_todos_as_markdown(saved.todos, saved.title, include_subtasks)
    raise ValueError(f"Unknown resource: {uri}")
