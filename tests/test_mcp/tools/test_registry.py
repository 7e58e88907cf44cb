"""Tests for ToolSpec, ToolContext and ToolRegistry.

Covers:
- ToolSpec creation and immutability
- ToolRegistry register/unregister/update and listing
- reconcile() diffing against a desired set
- call_tool() dispatch and error translation
"""

import asyncio
import unittest

import mcp.types as types

from todo_mcp_server.mcp.tools.registry import (
    ReconcileResult,
    ToolContext,
    ToolRegistry,
    ToolSpec,
)


def _make_spec(name: str, description: str | None = None, handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(args, context):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=description or f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        handler=handler,
    )


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestToolSpec(unittest.TestCase):
    def test_name_from_tool(self):
        self.assertEqual(_make_spec("todo_read").name, "todo_read")

    def test_frozen(self):
        spec = _make_spec("todo_read")
        with self.assertRaises(AttributeError):
            spec.tool = None


class TestToolContext(unittest.TestCase):
    def test_progress_requires_token_and_sender(self):
        async def send(token, message):
            return None

        self.assertFalse(ToolContext().supports_progress)
        self.assertFalse(ToolContext(progress_token="p").supports_progress)
        self.assertTrue(
            ToolContext(progress_token=0, send_progress=send).supports_progress
        )


class TestToolRegistry(unittest.TestCase):
    def test_register_and_list(self):
        registry = ToolRegistry([_make_spec("a"), _make_spec("b")])
        self.assertEqual(registry.tool_count(), 2)
        self.assertEqual([t.name for t in registry.list_tools()], ["a", "b"])
        self.assertIn("a", registry)

    def test_duplicate_register_rejected(self):
        registry = ToolRegistry([_make_spec("a")])
        with self.assertRaises(ValueError):
            registry.register(_make_spec("a"))

    def test_unregister(self):
        registry = ToolRegistry([_make_spec("a")])
        self.assertTrue(registry.unregister("a"))
        self.assertFalse(registry.unregister("a"))
        self.assertEqual(registry.tool_count(), 0)

    def test_update_requires_registration(self):
        registry = ToolRegistry()
        with self.assertRaises(ValueError):
            registry.update(_make_spec("a"))


class TestReconcile(unittest.TestCase):
    def test_adds_and_removes(self):
        registry = ToolRegistry([_make_spec("old")])
        result = registry.reconcile({"new": _make_spec("new")})
        self.assertEqual(result, ReconcileResult(added=("new",), removed=("old",)))
        self.assertEqual(registry.names(), frozenset({"new"}))

    def test_identical_definition_is_no_change(self):
        registry = ToolRegistry([_make_spec("a")])
        result = registry.reconcile({"a": _make_spec("a")})
        self.assertFalse(result.changed)

    def test_changed_definition_is_update(self):
        registry = ToolRegistry([_make_spec("a", "v1")])
        result = registry.reconcile({"a": _make_spec("a", "v2")})
        self.assertEqual(result.updated, ("a",))
        self.assertEqual(registry.get("a").tool.description, "v2")


class TestCallTool(unittest.TestCase):
    def test_dispatches_to_handler(self):
        registry = ToolRegistry([_make_spec("a")])
        result = asyncio.run(registry.call_tool("a", None, ToolContext()))
        self.assertEqual(_text(result), "ok:a")

    def test_unknown_tool_raises(self):
        registry = ToolRegistry()
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("missing", {}, ToolContext()))

    def test_value_error_becomes_validation_error(self):
        async def handler(args, context):
            raise ValueError("bad input")

        registry = ToolRegistry([_make_spec("a", handler=handler)])
        result = asyncio.run(registry.call_tool("a", {}, ToolContext()))
        self.assertTrue(result.isError)
        self.assertIn("Error (validation_error): bad input", _text(result))

    def test_unexpected_error_becomes_server_error(self):
        async def handler(args, context):
            raise RuntimeError("boom")

        registry = ToolRegistry([_make_spec("a", handler=handler)])
        with self.assertLogs("todo_mcp_server.mcp.tools.registry", level="ERROR"):
            result = asyncio.run(registry.call_tool("a", {}, ToolContext()))
        self.assertTrue(result.isError)
        self.assertIn("Error (server_error): boom", _text(result))


if __name__ == "__main__":
    unittest.main()
