"""Markdown conversion for todo lists.

- ``markdown``: the list <-> markdown codec and import sanitization.
- ``instructions``: the ``<todos>`` block embedded in instruction files.
"""

from .instructions import (
    embed_block,
    extract_block,
    new_document,
    remove_block,
    render_block,
)
from .markdown import (
    format_todos_as_markdown,
    generate_id,
    parse_markdown,
    validate_and_sanitize_todos,
)

__all__ = [
    "format_todos_as_markdown",
    "parse_markdown",
    "validate_and_sanitize_todos",
    "generate_id",
    "render_block",
    "embed_block",
    "remove_block",
    "extract_block",
    "new_document",
]
