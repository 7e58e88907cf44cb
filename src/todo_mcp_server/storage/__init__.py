"""Storage backends for todo stores.

- ``base``         -- ``TodoStorage``: the backend contract.
- ``memory``       -- ``InMemoryStorage``: process-local, no external changes.
- ``json_file``    -- ``JsonFileStorage``: atomic JSON document, optional watching.
- ``instructions`` -- ``InstructionsFileStorage``: ``<todos>`` block in markdown.
"""

from .base import TodoStorage
from .instructions import InstructionsFileStorage
from .json_file import JsonFileStorage
from .memory import InMemoryStorage

__all__ = [
    "TodoStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "InstructionsFileStorage",
]
