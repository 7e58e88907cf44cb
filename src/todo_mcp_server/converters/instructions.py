"""Embedding a todo list into a human-authored instructions document.

The list lives in a ``<todos>`` container tag inside a larger markdown
file (for example ``.github/instructions/todos.instructions.md``)::

    ---
    applyTo: '**'
    ---

    <todos title="Docs" rule="Review steps frequently ...">
    - [ ] t1: Write docs 🔴
    </todos>

    Hand-written instructions stay untouched.

Only the tagged block is ever rewritten; every other byte of the
document, front-matter included, is preserved.
"""

from __future__ import annotations

import html
import re
from collections.abc import Sequence

from ..models import DEFAULT_TITLE, TodoItem
from .markdown import format_todos_as_markdown

TODOS_RULE = (
    "Review steps frequently throughout the conversation and DO NOT stop "
    "between steps unless they explicitly require it."
)
EMPTY_LIST_TEXT = "- No current todos"

BLOCK_PATTERN = re.compile(
    r'<todos(?:\s+title="(?P<title>[^"]*)")?[^>]*>(?P<body>.*?)</todos>',
    re.DOTALL,
)
_REMOVAL_PATTERN = re.compile(r"<todos[^>]*>.*?</todos>\s*\n?", re.DOTALL)
FRONTMATTER_PATTERN = re.compile(r"^---\n.*?\n---\n\n?", re.DOTALL)

NEW_DOCUMENT_FRONTMATTER = "---\napplyTo: '**'\n---\n\n"


def render_block(
    todos: Sequence[TodoItem],
    title: str | None = None,
    include_subtasks: bool = True,
) -> str:
    """Render the ``<todos>`` block (without trailing blank line).

    The title attribute is omitted for an empty or default title.
    """
    body = (
        format_todos_as_markdown(todos, None, include_subtasks)
        if todos
        else EMPTY_LIST_TEXT
    )
    attributes = ""
    if title and title != DEFAULT_TITLE:
        attributes += f' title="{html.escape(title, quote=True)}"'
    attributes += f' rule="{TODOS_RULE}"'
    return f"<todos{attributes}>\n{body}\n</todos>"


def new_document(block: str) -> str:
    """Build a fresh instructions document around *block*."""
    return (
        NEW_DOCUMENT_FRONTMATTER
        + "<!-- Auto-generated todo section -->\n"
        + block
        + "\n\n<!-- Add your custom instructions below -->\n"
    )


def embed_block(document: str, block: str) -> str:
    """Place *block* into *document*.

    An existing block is replaced in place. Otherwise the block is
    inserted right after the front-matter, or at the top of the document
    when there is none. An empty document becomes ``new_document(block)``.
    """
    if not document:
        return new_document(block)

    match = BLOCK_PATTERN.search(document)
    if match:
        return document[: match.start()] + block + document[match.end() :]

    frontmatter = FRONTMATTER_PATTERN.match(document)
    if frontmatter:
        head = document[: frontmatter.end()]
        return head + block + "\n\n" + document[frontmatter.end() :]
    return block + "\n\n" + document


def remove_block(document: str) -> str:
    """Return *document* without its ``<todos>`` block."""
    return _REMOVAL_PATTERN.sub("", document, count=1)


def extract_block(document: str) -> tuple[str | None, str] | None:
    """Find the ``<todos>`` block.

    Returns:
        Tuple of (title, body markdown), or None when the document has no
        block. ``title`` is None when the attribute is absent.
    """
    match = BLOCK_PATTERN.search(document)
    if match is None:
        return None
    title = match.group("title")
    return (
        html.unescape(title) if title is not None else None,
        match.group("body").strip("\n"),
    )
