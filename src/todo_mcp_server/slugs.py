"""Slug generation for archived todo lists."""

import re
from collections.abc import Iterable

MAX_SLUG_LENGTH = 50

_SEPARATOR_PATTERN = re.compile(r"[\s\W]+", re.ASCII)


def generate_slug(title: str) -> str:
    """Derive a URL-safe slug from a list title.

    Lowercases, collapses whitespace and punctuation runs into single
    hyphens, strips leading/trailing hyphens and limits the result to
    50 characters. Titles with no usable characters become "untitled".

    Examples:
        >>> generate_slug("Project A: Phase 2!")
        'project-a-phase-2'
    """
    slug = _SEPARATOR_PATTERN.sub("-", title.lower().strip()).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "untitled"


def generate_unique_slug(title: str, existing: Iterable[str]) -> str:
    """Return a slug for *title* that does not collide with *existing*.

    Collisions are resolved by appending ``-1``, ``-2``, ... to the base slug.
    """
    taken = set(existing)
    base = generate_slug(title)
    slug = base
    counter = 1
    while slug in taken:
        slug = f"{base}-{counter}"
        counter += 1
    return slug
