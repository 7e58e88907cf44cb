"""ToolSpec and ToolRegistry for per-session dynamic tools.

Each session owns a ``ToolRegistry`` whose contents change at runtime:
tools appear, disappear, or get a new input schema as configuration
and list state change.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition to an async
  handler with signature (args, context) -> CallToolResult.
- ToolRegistry: Mutable name -> spec mapping with ``reconcile()``, which
  diffs a desired set against the registered one and applies only the
  needed register/unregister/update steps, plus ``call_tool()`` dispatch
  with error translation.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass

import mcp.types as types

from .errors import build_error_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Per-call protocol context handed to tool handlers.

    Attributes:
        session_id: Session the call arrived on.
        progress_token: Token from the request ``_meta``, if the client
            asked for progress notifications.
        send_progress: Coroutine function (token, message) that delivers
            a progress notification, or None when unsupported.
    """

    session_id: str | None = None
    progress_token: str | int | None = None
    send_progress: Callable[[str | int, str], Awaitable[None]] | None = None

    @property
    def supports_progress(self) -> bool:
        return self.progress_token is not None and self.send_progress is not None


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        handler: Async handler with signature (args, context) -> CallToolResult.
    """

    tool: types.Tool
    handler: Callable[[dict, ToolContext], Awaitable[types.CallToolResult]]

    @property
    def name(self) -> str:
        return self.tool.name


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Names touched by ``ToolRegistry.reconcile()``."""

    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.updated)


class ToolRegistry:
    """Live registry of ToolSpecs for one session."""

    def __init__(self, specs: Iterable[ToolSpec] = ()):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            self.register(spec)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def register(self, spec: ToolSpec) -> None:
        """Add a tool.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if spec.name in self._specs:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._specs[spec.name] = spec

    def unregister(self, name: str) -> bool:
        """Remove a tool. Returns False if it was not registered."""
        return self._specs.pop(name, None) is not None

    def update(self, spec: ToolSpec) -> None:
        """Replace the definition of a registered tool."""
        if spec.name not in self._specs:
            raise ValueError(f"Tool not registered: {spec.name}")
        self._specs[spec.name] = spec

    def get(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def names(self) -> frozenset[str]:
        return frozenset(self._specs)

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    def reconcile(self, desired: Mapping[str, ToolSpec]) -> ReconcileResult:
        """Make the registry match *desired*, touching only what differs.

        A tool counts as updated when its definition (description or
        input schema) differs from the registered one.
        """
        removed = tuple(name for name in self._specs if name not in desired)
        for name in removed:
            self.unregister(name)

        added: list[str] = []
        updated: list[str] = []
        for name, spec in desired.items():
            current = self._specs.get(name)
            if current is None:
                self.register(spec)
                added.append(name)
            elif current.tool != spec.tool:
                self.update(spec)
                updated.append(name)
            elif current.handler is not spec.handler:
                self._specs[name] = spec

        return ReconcileResult(
            added=tuple(added), removed=removed, updated=tuple(updated)
        )

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        context: ToolContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Translates validation errors and unexpected exceptions into
        structured CallToolResult responses so nothing is raised across
        the protocol boundary.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            context: Per-call protocol context.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered for this session.
        """
        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(args, context)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Retry the call; check the server log if the error persists.",
            )
