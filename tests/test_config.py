"""Tests for todo_mcp_server.config: env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the server
bootstrap path: validate_config() and load_config().
"""

import logging
from pathlib import Path

import pytest

from todo_mcp_server.config import (
    DEFAULT_INSTRUCTIONS_PATH,
    Config,
    get_bool_env,
    load_config,
    validate_config,
)

_ENV_VARS = (
    "TODO_MCP_WORKSPACE_ROOT",
    "TODO_MCP_AUTO_INJECT_FILE_PATH",
    "TODO_MCP_STANDALONE",
    "TODO_MCP_AUTO_INJECT",
    "TODO_MCP_ENABLE_SUBTASKS",
    "TODO_MCP_PERSIST",
    "TODO_MCP_DEBUG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config(): workspace, path and timing checks."""

    def test_valid_config(self, tmp_path):
        config = Config(workspace_root=str(tmp_path))
        validate_config(config)  # should not raise
        assert config.workspace_root == str(tmp_path.resolve())

    def test_missing_workspace(self, tmp_path):
        config = Config(workspace_root=str(tmp_path / "nope"))
        with pytest.raises(ValueError, match="is not a directory"):
            validate_config(config)

    def test_path_with_parent_segment(self, tmp_path):
        config = Config(
            workspace_root=str(tmp_path), auto_inject_file_path="../x.md"
        )
        with pytest.raises(ValueError, match=r"'\.\.'"):
            validate_config(config)

    def test_empty_path(self, tmp_path):
        config = Config(workspace_root=str(tmp_path), auto_inject_file_path="  ")
        with pytest.raises(ValueError, match="cannot be empty"):
            validate_config(config)

    def test_path_is_stripped(self, tmp_path):
        config = Config(
            workspace_root=str(tmp_path), auto_inject_file_path="  notes.md "
        )
        validate_config(config)
        assert config.auto_inject_file_path == "notes.md"

    def test_negative_debounce(self, tmp_path):
        config = Config(workspace_root=str(tmp_path), debounce_ms=-1)
        with pytest.raises(ValueError, match="debounce"):
            validate_config(config)

    def test_negative_settle(self, tmp_path):
        config = Config(workspace_root=str(tmp_path), settle_ms=-5)
        with pytest.raises(ValueError, match="settle"):
            validate_config(config)

    def test_standalone_auto_inject_warns(self, tmp_path, caplog):
        config = Config(
            workspace_root=str(tmp_path), standalone=True, auto_inject=True
        )
        with caplog.at_level(logging.WARNING):
            validate_config(config)
        assert "ignored in standalone mode" in caplog.text


class TestConfigPaths:
    def test_default_state_path(self, tmp_path):
        config = Config(workspace_root=str(tmp_path))
        assert config.state_path == tmp_path / ".todo_mcp" / "todos.json"

    def test_relative_state_file(self, tmp_path):
        config = Config(workspace_root=str(tmp_path), state_file="state/x.json")
        assert config.state_path == tmp_path / "state" / "x.json"

    def test_absolute_state_file(self, tmp_path):
        target = tmp_path / "elsewhere.json"
        config = Config(workspace_root="/ignored", state_file=str(target))
        assert config.state_path == target

    def test_instructions_path(self, tmp_path):
        config = Config(workspace_root=str(tmp_path))
        assert config.instructions_path == (
            tmp_path / DEFAULT_INSTRUCTIONS_PATH
        ).resolve()


# -------------------------------------------------------------------------
# get_bool_env()
# -------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("1", True), (" YES ", True), ("on", True), ("false", False), ("0", False)],
)
def test_get_bool_env(monkeypatch, raw, expected):
    monkeypatch.setenv("TODO_MCP_STANDALONE", raw)
    assert get_bool_env("TODO_MCP_STANDALONE") is expected


def test_get_bool_env_unset():
    assert get_bool_env("TODO_MCP_STANDALONE") is None


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert Path(config.workspace_root) == tmp_path.resolve()
        assert config.standalone is False
        assert config.auto_inject is False
        assert config.enable_subtasks is True
        assert config.persist is True
        assert config.auto_inject_file_path == DEFAULT_INSTRUCTIONS_PATH
        assert config.debounce_ms == 50
        assert config.settle_ms == 100

    def test_env_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TODO_MCP_WORKSPACE_ROOT", str(tmp_path))
        monkeypatch.setenv("TODO_MCP_AUTO_INJECT", "true")
        monkeypatch.setenv("TODO_MCP_ENABLE_SUBTASKS", "false")
        monkeypatch.setenv("TODO_MCP_AUTO_INJECT_FILE_PATH", "docs/todo.md")
        config = load_config()
        assert Path(config.workspace_root) == tmp_path.resolve()
        assert config.auto_inject is True
        assert config.enable_subtasks is False
        assert config.auto_inject_file_path == "docs/todo.md"

    def test_cli_beats_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TODO_MCP_AUTO_INJECT", "true")
        config = load_config(workspace_root=str(tmp_path), auto_inject=False)
        assert config.auto_inject is False

    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TODO_MCP_STANDALONE", "false")
        config = load_config(
            workspace_root=str(tmp_path), yaml_fallbacks={"standalone": True}
        )
        assert config.standalone is False

    def test_yaml_fallbacks(self, tmp_path):
        config = load_config(
            yaml_fallbacks={
                "workspace_root": str(tmp_path),
                "standalone": True,
                "persist": False,
                "state_file": "custom.json",
            },
            sync_fallbacks={"debounce_ms": 10, "settle_ms": 20},
        )
        assert config.standalone is True
        assert config.persist is False
        assert config.state_path == tmp_path.resolve() / "custom.json"
        assert (config.debounce_ms, config.settle_ms) == (10, 20)

    def test_debug_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TODO_MCP_DEBUG", "1")
        assert load_config(workspace_root=str(tmp_path)).debug is True

    def test_invalid_values_raise(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(
                workspace_root=str(tmp_path), auto_inject_file_path="/abs.md"
            )
