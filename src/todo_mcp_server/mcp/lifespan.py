"""Lifespan management for MCP server startup and shutdown."""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError
from yaml import YAMLError

from ..auto_inject import InstructionsInjector
from ..config import Config, load_config
from ..config_loader import (
    config_candidates,
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config
from ..storage import (
    InMemoryStorage,
    InstructionsFileStorage,
    JsonFileStorage,
    TodoStorage,
)
from ..storage.watcher import FileWatcher
from ..store import TodoStore
from ..sync import TodoSync
from .broadcast import ConfigurationChanged
from .sessions import SessionManager
from .settings import ToolSettings

logger = logging.getLogger(__name__)

STATE_WATCH_INTERVAL = 0.5
CONFIG_WATCH_INTERVAL = 2.0


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@dataclass
class ServerContext:
    """Everything the protocol handlers need, built by ``server_lifespan``."""

    config: Config
    settings: ToolSettings
    store: TodoStore
    sessions: SessionManager
    editor_store: TodoStore | None = None
    sync: TodoSync | None = None
    injector: InstructionsInjector | None = None


def resolve_config(overrides: dict[str, Any]) -> tuple[Config, list[str]]:
    """Merge CLI overrides, env vars, YAML and defaults into a ``Config``.

    Returns:
        Tuple of (config, descriptions of the contributing sources).

    Raises:
        ValueError: If the YAML config or any resolved value is invalid.
    """
    sources: list[str] = []
    yaml_fallbacks: dict[str, Any] | None = None
    sync_fallbacks: dict[str, Any] | None = None

    config_files = discover_config_files()
    if config_files:
        try:
            unified = build_config(load_hierarchical_config())
        except (ValidationError, YAMLError) as e:
            raise ValueError(f"Invalid config file {config_files[0]}: {e}") from e
        yaml_fallbacks = unified.todos.fallbacks()
        sync_fallbacks = unified.sync.model_dump()
        sources.append(f"config file: {config_files[0]}")

    config = load_config(
        workspace_root=overrides.get("workspace_root"),
        standalone=overrides.get("standalone"),
        auto_inject=overrides.get("auto_inject"),
        enable_subtasks=overrides.get("enable_subtasks"),
        auto_inject_file_path=overrides.get("auto_inject_file_path"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
        sync_fallbacks=sync_fallbacks,
    )

    if any(k != "log_file" for k in overrides):
        sources.append("CLI arguments")
    sources.append("environment variables")
    return config, sources


def diff_settings(settings: ToolSettings, config: Config) -> ConfigurationChanged:
    """Fields of *config* that differ from the live *settings*."""
    return ConfigurationChanged(
        auto_inject=(
            config.auto_inject
            if config.auto_inject != settings.auto_inject
            else None
        ),
        enable_subtasks=(
            config.enable_subtasks
            if config.enable_subtasks != settings.enable_subtasks
            else None
        ),
        auto_inject_file_path=(
            config.auto_inject_file_path
            if config.auto_inject_file_path != settings.auto_inject_file_path
            else None
        ),
    )


def _storage_for(config: Config, watch: bool) -> TodoStorage:
    interval = STATE_WATCH_INTERVAL if watch else None
    path = config.state_path
    if path.suffix.lower() == ".md":
        return InstructionsFileStorage(path, watch_interval=interval)
    return JsonFileStorage(path, watch_interval=interval)


class ConfigReloader:
    """Re-resolve the configuration when the config file changes and
    broadcast the tool-relevant differences."""

    def __init__(
        self,
        context: ServerContext,
        overrides: dict[str, Any],
        interval: float = CONFIG_WATCH_INTERVAL,
    ):
        self._context = context
        self._overrides = overrides
        existing = discover_config_files()
        self._path = existing[0] if existing else config_candidates()[0]
        self._watcher = FileWatcher(self._path, interval, self.reload)

    @property
    def path(self) -> Path:
        return self._path

    def start(self) -> None:
        self._watcher.start()

    async def stop(self) -> None:
        await self._watcher.stop()

    async def reload(self) -> ConfigurationChanged | None:
        """Apply the current config file; invalid files are logged and ignored."""
        try:
            config, _ = resolve_config(self._overrides)
        except ValueError as e:
            logger.error("Ignoring config change: %s", e)
            return None

        change = diff_settings(self._context.settings, config)
        if change.is_empty():
            return None
        logger.info("Configuration changed: %s", change.model_dump(exclude_none=True))
        if self._context.injector is not None:
            await self._context.injector.apply(change)
        await self._context.sessions.broadcast_update(change)
        return change


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
    watch_config: bool = True,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the stores: in editor mode a watched JSON-backed editor replica
      plus an in-memory protocol replica kept in step by ``TodoSync``; in
      standalone mode a single store
    - Start the auto-inject writer and the session manager
    - Watch the config file for tool-relevant changes

    On shutdown:
    - Stop watchers, dispose sync, sessions and stores, close storages

    Args:
        config_overrides: Optional dict with config values from CLI
            (workspace_root, standalone, auto_inject, enable_subtasks,
            auto_inject_file_path, debug).
        watch_config: Poll the config file for changes.

    Yields:
        Dict with a 'context' key holding the ``ServerContext``.

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("Todo MCP Server starting...")

    overrides = dict(config_overrides or {})
    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()
        config, sources = resolve_config(overrides)
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Workspace: {config.workspace_root}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    settings = ToolSettings.from_config(config)
    storages: list[TodoStorage] = []
    editor_store: TodoStore | None = None
    sync: TodoSync | None = None
    injector: InstructionsInjector | None = None

    if config.standalone:
        storage: TodoStorage = (
            _storage_for(config, watch=False)
            if config.persist
            else InMemoryStorage()
        )
        storages.append(storage)
        store = TodoStore(storage, name="standalone")
        await store.initialize()
        _stderr_print("  Mode: standalone")
    else:
        editor_storage = _storage_for(config, watch=True)
        storages.append(editor_storage)
        protocol_storage = InMemoryStorage()
        storages.append(protocol_storage)

        editor_store = TodoStore(editor_storage, name="editor")
        store = TodoStore(protocol_storage, name="protocol")
        await editor_store.initialize()
        await store.initialize()

        sync = TodoSync(
            editor_store,
            store,
            debounce=config.debounce_ms / 1000,
            settle=config.settle_ms / 1000,
        )
        await sync.start()

        injector = InstructionsInjector(
            editor_store,
            config.workspace_root,
            config.auto_inject_file_path,
            enabled=config.auto_inject,
            include_subtasks=config.enable_subtasks,
        )
        injector.start()
        _stderr_print(f"  Mode: editor (state: {config.state_path})")
        if config.auto_inject:
            _stderr_print(f"  Auto-inject: {injector.path}")

    sessions = SessionManager(store, settings)
    context = ServerContext(
        config=config,
        settings=settings,
        store=store,
        sessions=sessions,
        editor_store=editor_store,
        sync=sync,
        injector=injector,
    )

    reloader: ConfigReloader | None = None
    if watch_config:
        reloader = ConfigReloader(context, overrides)
        reloader.start()

    _stderr_print("Server ready. Waiting for MCP client connection...")
    try:
        yield {"context": context}
    finally:
        logger.info("MCP server shutting down")
        if reloader is not None:
            await reloader.stop()
        if sync is not None:
            await sync.wait_idle()
            sync.dispose()
        if injector is not None:
            await injector.dispose()
        await sessions.dispose()
        await store.dispose()
        if editor_store is not None:
            await editor_store.dispose()
        for storage in storages:
            await storage.close()
        _stderr_print("Todo MCP Server shutting down.")
