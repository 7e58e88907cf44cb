"""Replica synchronization.

Public API for keeping two ``TodoStore`` replicas consistent.

Modules:

- ``engine`` -- ``TodoSync``: debounced bidirectional replication with
  echo suppression (re-entrancy guard plus last-applied content hash).

Usage example
-------------
::

    from todo_mcp_server.storage import InMemoryStorage, JsonFileStorage
    from todo_mcp_server.store import TodoStore
    from todo_mcp_server.sync import TodoSync

    editor = TodoStore(JsonFileStorage(path, watch_interval=1.0), "editor")
    protocol = TodoStore(InMemoryStorage(), "protocol")
    await editor.initialize()
    await protocol.initialize()

    sync = TodoSync(editor, protocol)
    await sync.start()     # protocol now mirrors editor
"""

from .engine import DEFAULT_DEBOUNCE, DEFAULT_SETTLE, TodoSync

__all__ = ["TodoSync", "DEFAULT_DEBOUNCE", "DEFAULT_SETTLE"]
