"""Unified configuration schema for todo_mcp_server.

Defines Pydantic models for the YAML config structure with dedicated
sections for the todo list, replica sync timing, and logging.

Usage:
    from todo_mcp_server.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    fallbacks = unified.todos.fallbacks()
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class TodosConfig(BaseModel):
    """Todo list and tool settings.

    Unset fields (None) fall through to env vars and built-in defaults.
    """

    workspace_root: str | None = Field(
        default=None, description="Workspace directory"
    )
    standalone: bool | None = Field(
        default=None, description="Self-contained mode without an editor replica"
    )
    auto_inject: bool | None = Field(
        default=None,
        description="Write the list into the instructions file",
    )
    enable_subtasks: bool | None = Field(
        default=None, description="Allow subtasks in todo_write"
    )
    auto_inject_file_path: str | None = Field(
        default=None,
        description="Instructions file, relative to the workspace",
    )
    persist: bool | None = Field(
        default=None, description="Persist the standalone list to disk"
    )
    state_file: str | None = Field(
        default=None, description="JSON state file path"
    )

    model_config = {"frozen": True}

    def fallbacks(self) -> dict[str, Any]:
        """Non-None values, for use as ``load_config`` YAML fallbacks."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class SyncConfig(BaseModel):
    """Timing of replica synchronization."""

    debounce_ms: int = Field(
        default=50,
        ge=0,
        le=10000,
        description="Quiet period before a change is replicated (0-10000)",
    )
    settle_ms: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Echo suppression window after a replication (0-10000)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    todos: TodosConfig = Field(default_factory=TodosConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults; a section that is present but empty
    in YAML (``todos:`` with nothing under it) is treated as missing.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.

    Raises:
        pydantic.ValidationError: If a value has the wrong type or range.
    """
    if not raw_data:
        return UnifiedConfig()

    sections = {k: v for k, v in raw_data.items() if v is not None}
    unknown = set(sections) - set(UnifiedConfig.model_fields)
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", sorted(unknown))
    return UnifiedConfig(**sections)
