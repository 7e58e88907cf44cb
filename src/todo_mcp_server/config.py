"""Configuration for the todo MCP server.

Reads workspace and tool settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    TODO_MCP_WORKSPACE_ROOT: Workspace directory (optional, default: CWD)
    TODO_MCP_STANDALONE: Self-contained mode without an editor replica
        (optional, default: false)
    TODO_MCP_AUTO_INJECT: Write the list into the instructions file
        (optional, default: false)
    TODO_MCP_ENABLE_SUBTASKS: Allow subtasks in todo_write (optional,
        default: true)
    TODO_MCP_AUTO_INJECT_FILE_PATH: Instructions file, relative to the
        workspace (optional, default: .github/instructions/todos.instructions.md)
    TODO_MCP_PERSIST: Persist the standalone list to disk (optional,
        default: true)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .file_handler import validate_instructions_path

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS_PATH = ".github/instructions/todos.instructions.md"
DEFAULT_STATE_DIR = ".todo_mcp"
DEFAULT_STATE_FILE = "todos.json"
DEFAULT_DEBOUNCE_MS = 50
DEFAULT_SETTLE_MS = 100


@dataclass
class Config:
    workspace_root: str
    standalone: bool = False
    auto_inject: bool = False
    enable_subtasks: bool = True
    auto_inject_file_path: str = DEFAULT_INSTRUCTIONS_PATH
    persist: bool = True
    state_file: str | None = None
    debug: bool = False
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    settle_ms: int = DEFAULT_SETTLE_MS

    @property
    def state_path(self) -> Path:
        """JSON state file; relative paths resolve against the workspace."""
        if self.state_file:
            path = Path(self.state_file).expanduser()
            if not path.is_absolute():
                path = Path(self.workspace_root) / path
            return path
        return Path(self.workspace_root) / DEFAULT_STATE_DIR / DEFAULT_STATE_FILE

    @property
    def instructions_path(self) -> Path:
        return validate_instructions_path(
            self.auto_inject_file_path, self.workspace_root
        )


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.strip().lower() in ("true", "1", "yes", "on")


def _resolve_bool(
    cli_value: bool | None, env_key: str, fallbacks: dict, key: str, default: bool
) -> bool:
    if cli_value is not None:
        return cli_value
    env_value = get_bool_env(env_key)
    if env_value is not None:
        return env_value
    if fallbacks.get(key) is not None:
        return bool(fallbacks[key])
    return default


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the workspace root is not a directory, the
            instructions path is invalid, or a timing value is negative.
    """
    config.workspace_root = str(Path(config.workspace_root).expanduser().resolve())
    if not Path(config.workspace_root).is_dir():
        raise ValueError(
            f"Workspace root '{config.workspace_root}' is not a directory. "
            "Set TODO_MCP_WORKSPACE_ROOT or pass --workspace-root."
        )

    config.auto_inject_file_path = config.auto_inject_file_path.strip()
    # Raises ValueError for empty paths and '..' segments
    validate_instructions_path(config.auto_inject_file_path, config.workspace_root)

    if config.debounce_ms < 0:
        raise ValueError(
            f"Invalid sync debounce '{config.debounce_ms}': must be >= 0"
        )
    if config.settle_ms < 0:
        raise ValueError(
            f"Invalid sync settle window '{config.settle_ms}': must be >= 0"
        )

    if config.standalone and config.auto_inject:
        logger.warning(
            "auto_inject is ignored in standalone mode (no editor replica)"
        )


def load_config(
    workspace_root: str | None = None,
    standalone: bool | None = None,
    auto_inject: bool | None = None,
    enable_subtasks: bool | None = None,
    auto_inject_file_path: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
    sync_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        workspace_root: Override workspace directory.
        standalone: CLI ``--standalone`` (None when not passed).
        auto_inject: CLI ``--auto-inject``/``--no-auto-inject`` (None when
            neither was passed).
        enable_subtasks: False for CLI ``--no-subtasks``, else None.
        auto_inject_file_path: Override instructions file path.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Values from the YAML config ``todos`` section.
        sync_fallbacks: Values from the YAML config ``sync`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any resolved value is invalid.
    """
    fb = yaml_fallbacks or {}
    sync_fb = sync_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    final_root = (
        workspace_root
        or os.getenv("TODO_MCP_WORKSPACE_ROOT")
        or fb.get("workspace_root")
        or os.getcwd()
    )

    final_path = (
        auto_inject_file_path
        or os.getenv("TODO_MCP_AUTO_INJECT_FILE_PATH")
        or fb.get("auto_inject_file_path")
        or DEFAULT_INSTRUCTIONS_PATH
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    final_standalone = _resolve_bool(
        standalone, "TODO_MCP_STANDALONE", fb, "standalone", False
    )
    final_auto_inject = _resolve_bool(
        auto_inject, "TODO_MCP_AUTO_INJECT", fb, "auto_inject", False
    )
    final_subtasks = _resolve_bool(
        enable_subtasks, "TODO_MCP_ENABLE_SUBTASKS", fb, "enable_subtasks", True
    )
    final_persist = _resolve_bool(None, "TODO_MCP_PERSIST", fb, "persist", True)
    final_debug = debug or bool(get_bool_env("TODO_MCP_DEBUG"))

    config = Config(
        workspace_root=str(final_root),
        standalone=final_standalone,
        auto_inject=final_auto_inject,
        enable_subtasks=final_subtasks,
        auto_inject_file_path=str(final_path),
        persist=final_persist,
        state_file=fb.get("state_file"),
        debug=final_debug,
        debounce_ms=int(sync_fb.get("debounce_ms", DEFAULT_DEBOUNCE_MS)),
        settle_ms=int(sync_fb.get("settle_ms", DEFAULT_SETTLE_MS)),
    )

    validate_config(config)

    return config
