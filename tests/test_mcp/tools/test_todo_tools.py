"""Tests for mcp/tools/todo.py: todo_read/todo_write and the visibility policy."""

import json
from unittest.mock import AsyncMock

import mcp.types as types
import pytest

from todo_mcp_server.mcp.broadcast import TodosUpdated
from todo_mcp_server.mcp.settings import ToolSettings
from todo_mcp_server.mcp.tools.registry import ToolContext
from todo_mcp_server.mcp.tools.todo import (
    AUTO_INJECT_READ_MESSAGE,
    TODO_READ,
    TODO_WRITE,
    TodoToolHandlers,
    build_write_input_schema,
    desired_tools,
    should_show_read_tool,
)


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def handlers(store, settings):
    return TodoToolHandlers(store, settings, broadcast=AsyncMock())


# ---------------------------------------------------------------------------
# Visibility policy
# ---------------------------------------------------------------------------


class TestVisibilityPolicy:
    @pytest.mark.parametrize(
        "standalone, auto_inject, has_todos, expected",
        [
            (True, False, False, True),
            (True, True, False, True),
            (False, False, True, True),
            (False, False, False, False),
            (False, True, True, False),
        ],
    )
    def test_read_tool(self, standalone, auto_inject, has_todos, expected):
        settings = ToolSettings(standalone=standalone, auto_inject=auto_inject)
        assert should_show_read_tool(settings, has_todos) is expected

    def test_write_always_present(self):
        tools = desired_tools(ToolSettings(auto_inject=True), has_todos=False)
        assert list(tools) == [TODO_WRITE]

    def test_subtasks_follow_setting(self):
        off = desired_tools(ToolSettings(enable_subtasks=False), False)[TODO_WRITE]
        on = desired_tools(ToolSettings(), False)[TODO_WRITE]
        assert "subtasks" not in off.inputSchema["properties"]["todos"]["items"]["properties"]
        assert "subtasks" in on.inputSchema["properties"]["todos"]["items"]["properties"]
        assert "<subtasks>" in on.description
        assert "<subtasks>" not in off.description

    def test_standalone_forces_subtasks(self):
        settings = ToolSettings(standalone=True, enable_subtasks=False)
        write = desired_tools(settings, False)[TODO_WRITE]
        assert "subtasks" in write.inputSchema["properties"]["todos"]["items"]["properties"]

    def test_schema_requires_core_fields(self):
        schema = build_write_input_schema(True)
        assert schema["required"] == ["todos"]
        assert schema["properties"]["todos"]["items"]["required"] == [
            "id",
            "content",
            "status",
            "priority",
        ]

    def test_build_specs_uses_store_state(self, handlers):
        assert set(handlers.build_specs()) == {TODO_WRITE}
        assert set(handlers.build_specs(has_todos=True)) == {TODO_READ, TODO_WRITE}


# ---------------------------------------------------------------------------
# todo_read
# ---------------------------------------------------------------------------


class TestTodoRead:
    async def test_returns_json(self, handlers, store, todo_factory):
        await store.update_todos([todo_factory("a", details="why")], "Docs")
        result = await handlers.handle_read({}, ToolContext())
        payload = json.loads(_text(result))
        assert payload["title"] == "Docs"
        assert payload["todos"] == [
            {
                "id": "a",
                "content": "Task a",
                "status": "pending",
                "priority": "medium",
                "details": "why",
            }
        ]

    async def test_blocked_when_auto_inject_active(self, handlers, settings):
        settings.auto_inject = True
        result = await handlers.handle_read({}, ToolContext())
        assert _text(result) == AUTO_INJECT_READ_MESSAGE
        assert not result.isError


# ---------------------------------------------------------------------------
# todo_write
# ---------------------------------------------------------------------------


class TestTodoWrite:
    async def test_success_summary(self, handlers, store, todo_factory):
        result = await handlers.handle_write(
            {
                "todos": [
                    todo_factory("a", status="in_progress"),
                    todo_factory("b"),
                    todo_factory("c", status="completed"),
                ],
                "title": "Sprint",
            },
            ToolContext(),
        )
        assert not result.isError
        assert _text(result) == (
            "Successfully updated 3 todo items "
            '(1 pending, 1 in progress, 1 completed) and title to "Sprint"'
        )
        assert store.get_base_title() == "Sprint"

    async def test_broadcasts_update(self, handlers, todo_factory):
        await handlers.handle_write({"todos": [todo_factory("a")]}, ToolContext())
        handlers.broadcast.assert_awaited_once()
        event = handlers.broadcast.await_args.args[0]
        assert isinstance(event, TodosUpdated)
        assert [t.id for t in event.todos] == ["a"]

    async def test_reminder_when_nothing_in_progress(self, handlers, todo_factory):
        result = await handlers.handle_write(
            {"todos": [todo_factory("a")]}, ToolContext()
        )
        assert "Reminder: Mark a task as in_progress" in _text(result)

    async def test_subtask_and_details_summary(self, handlers, todo_factory):
        result = await handlers.handle_write(
            {
                "todos": [
                    todo_factory(
                        "a",
                        details="context",
                        subtasks=[
                            {"id": "s1", "content": "one", "status": "completed"},
                            {"id": "s2", "content": "two", "status": "pending"},
                        ],
                    )
                ]
            },
            ToolContext(),
        )
        text = _text(result)
        assert "Subtasks: 1/2 completed across 1 tasks" in text
        assert "Details added to 1 task(s)" in text

    async def test_adr_alias(self, handlers, store, todo_factory):
        todo = todo_factory("a")
        todo["adr"] = "legacy rationale"
        await handlers.handle_write({"todos": [todo]}, ToolContext())
        assert store.get_todo("a").details == "legacy rationale"

    async def test_auto_inject_note(self, handlers, settings, todo_factory):
        settings.auto_inject = True
        result = await handlers.handle_write(
            {"todos": [todo_factory("a")]}, ToolContext()
        )
        assert f"synced to <todos> in {settings.auto_inject_file_path}" in _text(result)

    async def test_todos_must_be_array(self, handlers, store):
        result = await handlers.handle_write({"todos": "nope"}, ToolContext())
        assert result.isError
        assert "validation_error" in _text(result)
        assert not store.has_todos()

    async def test_two_in_progress_rejected(self, handlers, store, todo_factory):
        result = await handlers.handle_write(
            {
                "todos": [
                    todo_factory("a", status="in_progress"),
                    todo_factory("b", status="in_progress"),
                ]
            },
            ToolContext(),
        )
        assert result.isError
        assert "Found 2 tasks marked as in_progress" in _text(result)
        assert not store.has_todos()
        handlers.broadcast.assert_not_awaited()

    async def test_invalid_record_rejected(self, handlers, store, todo_factory):
        result = await handlers.handle_write(
            {"todos": [todo_factory("a", status="blocked")]}, ToolContext()
        )
        assert result.isError
        assert "status" in _text(result)
        assert not store.has_todos()

    async def test_non_string_title_rejected(self, handlers, todo_factory):
        result = await handlers.handle_write(
            {"todos": [todo_factory("a")], "title": 5}, ToolContext()
        )
        assert result.isError

    async def test_subtasks_disabled(self, handlers, settings, store, todo_factory):
        settings.enable_subtasks = False
        result = await handlers.handle_write(
            {
                "todos": [
                    todo_factory(
                        "a",
                        subtasks=[{"id": "s", "content": "x", "status": "pending"}],
                    )
                ]
            },
            ToolContext(),
        )
        assert result.isError
        assert "feature_disabled" in _text(result)
        assert not store.has_todos()


class TestProgress:
    async def test_sent_when_list_becomes_non_empty(self, handlers, todo_factory):
        send = AsyncMock()
        context = ToolContext(session_id="s", progress_token="tok", send_progress=send)
        await handlers.handle_write(
            {"todos": [todo_factory("a")], "title": "Docs"}, context
        )
        send.assert_awaited_once_with("tok", "Todos: Docs")

    async def test_untitled(self, handlers, todo_factory):
        send = AsyncMock()
        context = ToolContext(progress_token=1, send_progress=send)
        await handlers.handle_write({"todos": [todo_factory("a")]}, context)
        send.assert_awaited_once_with(1, "Todos: untitled")

    async def test_not_sent_for_existing_list(self, handlers, store, todo_factory):
        await store.update_todos([todo_factory("a")])
        send = AsyncMock()
        context = ToolContext(progress_token="tok", send_progress=send)
        await handlers.handle_write({"todos": [todo_factory("b")]}, context)
        send.assert_not_awaited()

    async def test_failure_does_not_fail_write(self, handlers, store, todo_factory):
        send = AsyncMock(side_effect=RuntimeError("closed"))
        context = ToolContext(progress_token="tok", send_progress=send)
        result = await handlers.handle_write({"todos": [todo_factory("a")]}, context)
        assert not result.isError
        assert store.has_todos()
