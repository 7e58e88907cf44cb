"""Shared pytest fixtures for todo-mcp-server tests."""

from unittest.mock import AsyncMock

import pytest
from dotenv import load_dotenv

from todo_mcp_server.mcp.settings import ToolSettings
from todo_mcp_server.storage import InMemoryStorage
from todo_mcp_server.store import TodoStore

load_dotenv()


@pytest.fixture
def todo_factory():
    """Factory for raw todo records as an agent would send them."""

    def _make(
        todo_id: str = "t1",
        content: str | None = None,
        status: str = "pending",
        priority: str = "medium",
        **extra,
    ) -> dict:
        record = {
            "id": todo_id,
            "content": content or f"Task {todo_id}",
            "status": status,
            "priority": priority,
        }
        record.update(extra)
        return record

    return _make


@pytest.fixture
async def store():
    """An initialized in-memory store, disposed after the test."""
    todo_store = TodoStore(InMemoryStorage(), name="test")
    await todo_store.initialize()
    yield todo_store
    await todo_store.dispose()


@pytest.fixture
def settings():
    return ToolSettings()


@pytest.fixture
def transport():
    """A SessionTransport double recording every notification."""
    mock = AsyncMock()
    mock.send_tool_list_changed = AsyncMock()
    mock.send_resource_updated = AsyncMock()
    mock.send_progress = AsyncMock()
    return mock
