"""
Hierarchical configuration loader for todo_mcp_server.

Provides convention-based config file discovery, env var interpolation,
and hierarchical merge with "project wins" semantics.

Usage:
    from todo_mcp_server.config_loader import load_hierarchical_config

    config = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TODO_MCP_CONFIG"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the value of VAR, or "" when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * A ``${`` without a closing ``}`` is left as is.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def interpolate_recursive(obj: Any) -> Any:
    """Interpolate env vars in every string of a nested dict/list."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. Convention-based file discovery
# ---------------------------------------------------------------------------


def config_candidates(cwd: Path | None = None) -> list[Path]:
    """All config file locations in precedence order (highest first).

    Search order:
        1. ``TODO_MCP_CONFIG`` env var (explicit single path)
        2. ``.todo_mcp/config.yml`` in the working directory
        3. ``.todo_mcp/config.yaml`` in the working directory
        4. ``~/.config/todo_mcp/config.yml`` (XDG global)
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    base = cwd or Path.cwd()
    candidates.append(base / ".todo_mcp" / "config.yml")
    candidates.append(base / ".todo_mcp" / "config.yaml")
    candidates.append(Path.home() / ".config" / "todo_mcp" / "config.yml")
    return candidates


def discover_config_files(cwd: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first)."""
    return [p for p in config_candidates(cwd) if p.is_file()]


def _load_yaml(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


# ---------------------------------------------------------------------------
# 3. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(cwd: Path | None = None) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Merge strategy ("project wins"):
        Files are loaded from lowest precedence to highest. Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    After merging, env var interpolation is applied to all string values.

    Returns an empty dict when no config files exist (zero-config).

    Raises:
        yaml.YAMLError: If a config file is not valid YAML.
    """
    paths = discover_config_files(cwd)

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return interpolate_recursive(merged)
