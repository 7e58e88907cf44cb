"""Per-session tool and subscription management.

The ``SessionManager`` maps protocol session ids to:

- a transport handle used to push notifications,
- a live ``ToolRegistry`` whose tools follow ``desired_tools()``,
- the set of resource URIs the session subscribed to.

Re-evaluation happens on two triggers: a change of the bound store and
a ``ConfigurationChanged`` broadcast. Each trigger reconciles every
session's registry against the desired tools and sends
``notifications/tools/list_changed`` only to sessions whose tools
actually changed. Delivery failures are logged per session and never
affect other sessions or the mutation that caused them.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import mcp.types as types

from ..events import Disposable
from ..models import SavedTodoList, TodoListState
from ..store import TodoStore
from .broadcast import BroadcastEvent, ConfigurationChanged, TodosUpdated
from .resources.todos import SAVED_INDEX_URI, TODOS_URI, read_todo_resource
from .settings import ToolSettings
from .tools.registry import ReconcileResult, ToolContext, ToolRegistry
from .tools.todo import TodoToolHandlers

logger = logging.getLogger(__name__)


class SessionTransport(Protocol):
    """Outbound side of a session's transport."""

    async def send_tool_list_changed(self) -> None: ...

    async def send_resource_updated(self, uri: str) -> None: ...

    async def send_progress(self, token: str | int, message: str) -> None: ...


@dataclass
class Session:
    id: str
    transport: SessionTransport
    tools: ToolRegistry
    subscriptions: set[str] = field(default_factory=set)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class SessionManager:
    """Owns all sessions bound to one protocol-facing store.

    Args:
        store: The protocol-facing replica.
        settings: Live tool settings; updated by ``ConfigurationChanged``.
        handlers: Tool handlers; created for *store* when omitted.
    """

    def __init__(
        self,
        store: TodoStore,
        settings: ToolSettings,
        handlers: TodoToolHandlers | None = None,
    ):
        self._store = store
        self._settings = settings
        self._handlers = handlers or TodoToolHandlers(store, settings)
        if self._handlers.broadcast is None:
            self._handlers.broadcast = self.broadcast_update
        self._sessions: dict[str, Session] = {}
        self._tasks: set[asyncio.Task] = set()
        self._resource_hashes: dict[str, str] = {}
        self._subscriptions: list[Disposable] = [
            store.on_did_change(self._on_store_change),
            store.on_did_change_saved_lists(self._on_saved_lists_change),
        ]

    @property
    def settings(self) -> ToolSettings:
        return self._settings

    @property
    def store(self) -> TodoStore:
        return self._store

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_session(
        self, transport: SessionTransport, session_id: str | None = None
    ) -> Session:
        """Create a session and register its initial tools.

        No list_changed notification is sent; the client lists tools
        after the handshake anyway.
        """
        session_id = session_id or uuid.uuid4().hex
        if session_id in self._sessions:
            raise ValueError(f"Session already exists: {session_id}")
        registry = ToolRegistry()
        registry.reconcile(self._handlers.build_specs())
        session = Session(id=session_id, transport=transport, tools=registry)
        self._sessions[session_id] = session
        logger.info(
            "Session %s opened with tools %s",
            session_id,
            sorted(registry.names()),
        )
        return session

    def close_session(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info("Session %s closed", session_id)
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close_session(session_id)

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session: {session_id}")
        return session

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def list_tools(self, session_id: str) -> list[types.Tool]:
        return self._require(session_id).tools.list_tools()

    async def call_tool(
        self,
        session_id: str,
        name: str,
        arguments: dict | None,
        context: ToolContext | None = None,
    ) -> types.CallToolResult:
        """Dispatch a tool call through the session's registry.

        Raises:
            KeyError: Unknown session.
            ValueError: Tool not registered for this session.
        """
        session = self._require(session_id)
        if context is None:
            context = ToolContext(session_id=session_id)
        return await session.tools.call_tool(name, arguments, context)

    async def refresh_tools(self) -> dict[str, ReconcileResult]:
        """Reconcile every session with the desired tools.

        Returns:
            Reconcile results of the sessions whose tools changed.
        """
        desired = self._handlers.build_specs()
        changed: dict[str, ReconcileResult] = {}
        for session in list(self._sessions.values()):
            result = session.tools.reconcile(desired)
            if not result.changed:
                continue
            changed[session.id] = result
            logger.info(
                "Session %s tools changed: +%s -%s ~%s",
                session.id,
                list(result.added),
                list(result.removed),
                list(result.updated),
            )
            try:
                await session.transport.send_tool_list_changed()
            except Exception as e:
                logger.warning(
                    "Failed to notify session %s of tool changes: %s",
                    session.id,
                    e,
                )
        return changed

    # ------------------------------------------------------------------
    # Resource subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, session_id: str, uri: str) -> None:
        session = self._require(session_id)
        session.subscriptions.add(uri)
        self._resource_hashes.setdefault(uri, self._resource_hash(uri) or "")
        logger.debug("Session %s subscribed to %s", session_id, uri)

    def unsubscribe(self, session_id: str, uri: str) -> None:
        session = self._require(session_id)
        session.subscriptions.discard(uri)

    def _resource_hash(self, uri: str) -> str | None:
        try:
            content = read_todo_resource(
                uri, self._store, self._settings.subtasks_active
            )
        except ValueError:
            return None
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    async def notify_resource_subscribers(self, uri: str) -> int:
        """Send ``notifications/resources/updated`` for *uri*.

        Skipped when the rendered resource is unchanged since the last
        notification. Returns the number of sessions notified.
        """
        digest = self._resource_hash(uri)
        if digest is not None and self._resource_hashes.get(uri) == digest:
            return 0
        if digest is not None:
            self._resource_hashes[uri] = digest

        notified = 0
        for session in list(self._sessions.values()):
            if uri not in session.subscriptions:
                continue
            try:
                await session.transport.send_resource_updated(uri)
                notified += 1
            except Exception as e:
                logger.warning(
                    "Failed to notify session %s about %s: %s",
                    session.id,
                    uri,
                    e,
                )
        return notified

    # ------------------------------------------------------------------
    # Broadcasts
    # ------------------------------------------------------------------

    async def broadcast_update(self, event: BroadcastEvent) -> None:
        """React to a list change or a configuration change."""
        match event:
            case ConfigurationChanged():
                if self._settings.apply(event):
                    logger.info("Tool settings changed: %s", self._settings)
            case TodosUpdated():
                pass
            case _:
                logger.warning("Ignoring unknown broadcast event %r", event)
                return
        await self.refresh_tools()
        await self.notify_resource_subscribers(TODOS_URI)

    def _on_store_change(self, state: TodoListState) -> None:
        self._spawn(
            self.broadcast_update(
                TodosUpdated(todos=state.todos, title=state.title)
            )
        )

    def _on_saved_lists_change(self, lists: list[SavedTodoList]) -> None:
        self._spawn(self.notify_resource_subscribers(SAVED_INDEX_URI))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Session broadcast failed", exc_info=task.exception()
            )

    async def wait_idle(self) -> None:
        """Wait for broadcasts triggered by store events to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def dispose(self) -> None:
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        await self.wait_idle()
        self.close_all()
