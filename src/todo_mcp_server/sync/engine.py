"""Two-replica synchronization between todo stores.

``TodoSync`` keeps a primary store (the editor-side replica) and a
secondary store (the protocol-facing replica) eventually consistent.
Replication always replaces the destination list wholesale.

Loop prevention uses two mechanisms:

* a re-entrancy guard that is set while a replication is applied and
  cleared only after ``settle`` seconds. While it is set, a notification
  whose content matches the last replicated hash is an echo and is
  dropped; any other change is deferred and replicated once the guard
  is released;
* the hash of the last applied content, so replicating identical content
  is skipped.

Each direction is debounced by ``debounce`` seconds; the source's state
at the end of the window is what gets propagated. Concurrent edits on
both sides resolve as "last applied wins".

The archive of saved lists is replicated as well: whenever one side's
collection changes, the other side adopts it unless it is already equal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from ..core.async_utils import Debouncer
from ..events import Disposable
from ..models import SavedTodoList, TodoListState, content_hash
from ..store import TodoStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.05
DEFAULT_SETTLE = 0.1


class TodoSync:
    """Bidirectional replication between two ``TodoStore`` instances.

    Args:
        primary: Source of truth for the initial copy.
        secondary: Replica seeded from *primary* on ``start()``.
        debounce: Per-direction debounce window in seconds.
        settle: Delay before the echo guard is released, in seconds.

    Usage::

        sync = TodoSync(editor_store, protocol_store)
        await sync.start()
        ...
        sync.dispose()
    """

    def __init__(
        self,
        primary: TodoStore,
        secondary: TodoStore,
        debounce: float = DEFAULT_DEBOUNCE,
        settle: float = DEFAULT_SETTLE,
    ):
        self._primary = primary
        self._secondary = secondary
        self._settle = settle
        self._is_syncing = False
        self._last_sync_hash: str | None = None
        self._guard_handle: asyncio.TimerHandle | None = None
        self._subscriptions: list[Disposable] = []
        self._to_secondary = Debouncer(
            debounce,
            lambda: self._replicate(self._primary, self._secondary),
            name=f"sync {primary.name}->{secondary.name}",
        )
        self._to_primary = Debouncer(
            debounce,
            lambda: self._replicate(self._secondary, self._primary),
            name=f"sync {secondary.name}->{primary.name}",
        )
        # directions whose changes arrived while the guard was set
        self._deferred: set[Debouncer] = set()
        self._tasks: set[asyncio.Task] = set()
        self._started = False

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    async def start(self) -> None:
        """Seed the secondary from the primary, then listen to both."""
        if self._started:
            return
        self._started = True
        await self._replicate_saved(self._primary, self._secondary)
        await self._replicate(self._primary, self._secondary)
        self._subscriptions = [
            self._primary.on_did_change(self._on_primary_change),
            self._secondary.on_did_change(self._on_secondary_change),
            self._primary.on_did_change_saved_lists(self._on_primary_saved_change),
            self._secondary.on_did_change_saved_lists(
                self._on_secondary_saved_change
            ),
        ]
        logger.info(
            "Sync started between %s and %s",
            self._primary.name,
            self._secondary.name,
        )

    # ------------------------------------------------------------------
    # Todo list
    # ------------------------------------------------------------------

    def _on_primary_change(self, state: TodoListState) -> None:
        self._on_change(state, self._to_secondary)

    def _on_secondary_change(self, state: TodoListState) -> None:
        self._on_change(state, self._to_primary)

    def _on_change(self, state: TodoListState, direction: Debouncer) -> None:
        if self._is_syncing:
            if content_hash(state.todos, state.title) == self._last_sync_hash:
                return
            self._deferred.add(direction)
            return
        direction.trigger()

    async def _replicate(self, source: TodoStore, target: TodoStore) -> None:
        if self._is_syncing:
            logger.debug(
                "Deferring %s -> %s: replication in progress",
                source.name,
                target.name,
            )
            self._deferred.add(
                self._to_secondary
                if source is self._primary
                else self._to_primary
            )
            return

        todos = source.get_todos()
        title = source.get_base_title()
        digest = content_hash(todos, title)
        if digest == self._last_sync_hash:
            return

        previous_hash = self._last_sync_hash
        self._is_syncing = True
        self._last_sync_hash = digest
        try:
            await target.update_todos(todos, title)
            logger.debug(
                "Replicated %d todos %s -> %s",
                len(todos),
                source.name,
                target.name,
            )
        except Exception as e:
            self._last_sync_hash = previous_hash
            logger.error(
                "Failed to replicate %s -> %s: %s", source.name, target.name, e
            )
        finally:
            self._release_guard_later()

    def _release_guard_later(self) -> None:
        if self._guard_handle is not None:
            self._guard_handle.cancel()
        loop = asyncio.get_running_loop()
        self._guard_handle = loop.call_later(self._settle, self._release_guard)

    def _release_guard(self) -> None:
        self._guard_handle = None
        self._is_syncing = False
        deferred, self._deferred = self._deferred, set()
        for direction in deferred:
            direction.trigger()

    # ------------------------------------------------------------------
    # Saved lists
    # ------------------------------------------------------------------

    def _on_primary_saved_change(self, lists: list[SavedTodoList]) -> None:
        self._spawn(self._replicate_saved(self._primary, self._secondary))

    def _on_secondary_saved_change(self, lists: list[SavedTodoList]) -> None:
        self._spawn(self._replicate_saved(self._secondary, self._primary))

    async def _replicate_saved(self, source: TodoStore, target: TodoStore) -> None:
        lists = source.get_saved_lists()
        if lists == target.get_saved_lists():
            return
        try:
            await target.replace_saved_lists(lists)
            logger.debug(
                "Replicated %d saved lists %s -> %s",
                len(lists),
                source.name,
                target.name,
            )
        except Exception as e:
            logger.error(
                "Failed to replicate saved lists %s -> %s: %s",
                source.name,
                target.name,
                e,
            )

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait for in-flight replications started by the debouncers."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._to_secondary.wait()
        await self._to_primary.wait()

    def dispose(self) -> None:
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        self._to_secondary.cancel()
        self._to_primary.cancel()
        self._deferred.clear()
        for task in self._tasks:
            task.cancel()
        if self._guard_handle is not None:
            self._guard_handle.cancel()
            self._guard_handle = None
        self._is_syncing = False
        logger.info("Sync disposed")
