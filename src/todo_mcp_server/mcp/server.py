"""MCP Server for the shared todo list using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents read and replace the todo list the editor shows, and follow it
through resources.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP

Tools are per session: each connected ``ServerSession`` is bound lazily
to a ``Session`` of the ``SessionManager`` on its first request, and its
tool list changes at runtime (``notifications/tools/list_changed``).
"""

import argparse
import asyncio
import logging
import sys
import weakref
from collections.abc import Iterable

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.models import InitializationOptions
from mcp.server.session import ServerSession
from pydantic import AnyUrl

from .. import __version__
from ..logger import DEFAULT_LOG_FILE, setup_logging
from .lifespan import ServerContext, server_lifespan
from .resources import (
    TODO_RESOURCE_TEMPLATES,
    list_todo_resources,
    read_todo_resource,
)
from .sessions import SessionManager
from .tools import ToolContext, build_error_response
from .transport import ServerSessionTransport

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("todo-mcp-server")

# Global context (initialized in main)
_context: ServerContext | None = None

# Protocol session -> SessionManager session id
_bound_sessions: "weakref.WeakKeyDictionary[ServerSession, str]" = (
    weakref.WeakKeyDictionary()
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ServerContext:
    """Get the global ServerContext.

    Raises:
        RuntimeError: If the server lifespan has not started.
    """
    if _context is None:
        raise RuntimeError(
            "Server context not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: ServerContext | None) -> None:
    """Set the global ServerContext, or None to clear it."""
    global _context
    _context = context
    _bound_sessions.clear()


def get_session_manager() -> SessionManager:
    return get_context().sessions


def bind_session(session: ServerSession) -> str:
    """Return the manager session id for *session*, opening one if needed.

    The manager session is closed when the protocol session is garbage
    collected.
    """
    manager = get_session_manager()
    session_id = _bound_sessions.get(session)
    if session_id is not None and manager.get_session(session_id) is not None:
        return session_id

    bound = manager.open_session(ServerSessionTransport(session))
    _bound_sessions[session] = bound.id
    weakref.finalize(session, manager.close_session, bound.id)
    return bound.id


def _current_session_id() -> str:
    return bind_session(server.request_context.session)


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the tools of the calling session.

    todo_read comes and goes with the list state and auto-inject
    setting; todo_write's schema follows the subtasks setting.
    """
    return get_session_manager().list_tools(_current_session_id())


@server.call_tool(validate_input=False)
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Dispatch a tool call through the calling session's registry.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    manager = get_session_manager()
    session_id = _current_session_id()
    request_context = server.request_context
    progress_token = (
        request_context.meta.progressToken if request_context.meta else None
    )
    session = manager.get_session(session_id)
    context = ToolContext(
        session_id=session_id,
        progress_token=progress_token,
        send_progress=session.transport.send_progress if session else None,
    )
    try:
        return await manager.call_tool(session_id, name, arguments, context)
    except ValueError as e:
        # Tool not registered for this session
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


@server.list_resources()
async def handle_list_resources() -> list[types.Resource]:
    """List the current list, the archive index and every archived list."""
    return list_todo_resources(get_context().store)


@server.list_resource_templates()
async def handle_list_resource_templates() -> list[types.ResourceTemplate]:
    return TODO_RESOURCE_TEMPLATES


@server.read_resource()
async def handle_read_resource(uri: AnyUrl) -> Iterable[ReadResourceContents]:
    """Read a todo resource by URI.

    Supports:
    - todos://todos - Current list as markdown
    - todos://saved - Index of archived lists
    - todos://saved/{slug} - One archived list

    Raises:
        ValueError: If the URI is not a todo resource.
    """
    if uri.scheme != "todos":
        raise ValueError(f"Unsupported URI scheme: {uri.scheme}")

    context = get_context()
    content = read_todo_resource(
        str(uri), context.store, context.settings.subtasks_active
    )
    return [ReadResourceContents(content=content, mime_type="text/markdown")]


@server.subscribe_resource()
async def handle_subscribe_resource(uri: AnyUrl) -> None:
    get_session_manager().subscribe(_current_session_id(), str(uri))


@server.unsubscribe_resource()
async def handle_unsubscribe_resource(uri: AnyUrl) -> None:
    get_session_manager().unsubscribe(_current_session_id(), str(uri))


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_initialization_options() -> InitializationOptions:
    """Capabilities with tool list changes and resource subscriptions."""
    capabilities = server.get_capabilities(
        notification_options=NotificationOptions(
            tools_changed=True, resources_changed=False
        ),
        experimental_capabilities={},
    )
    if capabilities.resources is not None:
        capabilities.resources.subscribe = True
    return InitializationOptions(
        server_name="todo-mcp-server",
        server_version=__version__,
        capabilities=capabilities,
    )


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), builds the
    stores and session manager via the lifespan manager, and serves
    JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (workspace_root, standalone, auto_inject, enable_subtasks,
            auto_inject_file_path, log_file, debug).
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    # set_context() is called here rather than in the lifespan so that
    # running this file as __main__ does not set the global on a second
    # copy of the module.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                await server.run(
                    read_stream, write_stream, build_initialization_options()
                )
        finally:
            set_context(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Todo MCP Server - shared todo list for editors and AI agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run for the current directory (editor mode)
  todo-mcp-server

  # Use another workspace
  todo-mcp-server --workspace-root ~/src/project

  # Self-contained mode without an editor replica
  todo-mcp-server --standalone

  # Keep the list in the agent's instructions file
  todo-mcp-server --auto-inject --auto-inject-file-path .github/instructions/todos.instructions.md

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument(
        "--workspace-root",
        help="Workspace directory (takes precedence over TODO_MCP_WORKSPACE_ROOT and config files)",
    )
    parser.add_argument(
        "--standalone",
        action="store_true",
        default=None,
        help="Run without an editor replica; the server's list is the only source of truth",
    )
    parser.add_argument(
        "--auto-inject",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Write the list into the instructions file and hide todo_read",
    )
    parser.add_argument(
        "--no-subtasks",
        dest="enable_subtasks",
        action="store_false",
        default=None,
        help="Disable subtasks in todo_write",
    )
    parser.add_argument(
        "--auto-inject-file-path",
        help="Instructions file, relative to the workspace "
        "(default: .github/instructions/todos.instructions.md)",
    )
    parser.add_argument(
        "--log-file",
        help=f"Log file path (default: LOG_FILE env var or {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"todo-mcp-server version {__version__}",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Keep only the options given on the command line."""
    config_overrides = {}
    for key in (
        "workspace_root",
        "standalone",
        "auto_inject",
        "enable_subtasks",
        "auto_inject_file_path",
        "log_file",
    ):
        value = getattr(args, key)
        if value is not None:
            config_overrides[key] = value
    if args.debug:
        config_overrides["debug"] = True
    return config_overrides


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args()
    config_overrides = overrides_from_args(args)

    # Log config overrides to stderr (before stdio transport starts)
    override_keys = [k for k in config_overrides if k != "log_file"]
    if override_keys:
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
