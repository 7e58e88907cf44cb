"""Tests for sync/engine.py: two-replica synchronization.

Debounce and settle windows are shortened so each test runs in well
under a second.
"""

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from todo_mcp_server.models import SavedTodoList, TodoItem
from todo_mcp_server.storage import InMemoryStorage
from todo_mcp_server.store import TodoStore
from todo_mcp_server.sync import TodoSync

DEBOUNCE = 0.01
SETTLE = 0.03


async def _quiesce(sync: TodoSync) -> None:
    """Wait out the debounce window, in-flight replication and the guard."""
    await asyncio.sleep(DEBOUNCE * 3)
    await sync.wait_idle()
    await asyncio.sleep(SETTLE * 2)


def _todo(todo_id: str, content: str = "Task", status: str = "pending") -> dict:
    return {
        "id": todo_id,
        "content": content,
        "status": status,
        "priority": "medium",
    }


@pytest.fixture
async def replicas():
    primary = TodoStore(
        InMemoryStorage([TodoItem(id="seed", content="Seeded")], "Seed"),
        name="editor",
    )
    secondary = TodoStore(InMemoryStorage(), name="protocol")
    await primary.initialize()
    await secondary.initialize()
    sync = TodoSync(primary, secondary, debounce=DEBOUNCE, settle=SETTLE)
    await sync.start()
    yield primary, secondary, sync
    sync.dispose()
    await primary.dispose()
    await secondary.dispose()


class TestTodoSync:
    async def test_start_seeds_secondary(self, replicas):
        primary, secondary, _ = replicas
        assert secondary.get_todos() == primary.get_todos()
        assert secondary.get_base_title() == "Seed"

    async def test_primary_change_reaches_secondary(self, replicas):
        primary, secondary, sync = replicas
        await _quiesce(sync)

        await primary.update_todos([_todo("a", "From editor")], "Docs")
        await _quiesce(sync)

        assert [t.content for t in secondary.get_todos()] == ["From editor"]
        assert secondary.get_base_title() == "Docs"

    async def test_secondary_change_reaches_primary(self, replicas):
        primary, secondary, sync = replicas
        await _quiesce(sync)

        await secondary.update_todos([_todo("b", "From agent")], "Agent")
        await _quiesce(sync)

        assert [t.content for t in primary.get_todos()] == ["From agent"]
        assert primary.get_base_title() == "Agent"

    async def test_rapid_edits_coalesce_to_latest(self, replicas):
        primary, secondary, sync = replicas
        await _quiesce(sync)
        received = []
        secondary.on_did_change(received.append)

        for index in range(5):
            await primary.update_todos([_todo("a", f"edit {index}")])
        await _quiesce(sync)

        assert len(received) == 1
        assert received[0].todos[0].content == "edit 4"

    async def test_replication_does_not_echo(self, replicas):
        primary, secondary, sync = replicas
        await _quiesce(sync)
        primary_events = []
        secondary_events = []
        primary.on_did_change(primary_events.append)
        secondary.on_did_change(secondary_events.append)

        await primary.update_todos([_todo("a")], "Loop")
        await _quiesce(sync)
        await _quiesce(sync)

        assert len(primary_events) == 1
        assert len(secondary_events) == 1

    async def test_concurrent_writes_converge(self, replicas):
        primary, secondary, sync = replicas
        await _quiesce(sync)

        await primary.update_todos([_todo("a", status="in_progress")], "Editor")
        await asyncio.sleep(DEBOUNCE * 1.5)
        # lands while the replication of "a" is still settling
        await secondary.update_todos([_todo("b", status="in_progress")], "Agent")
        for _ in range(3):
            await _quiesce(sync)

        assert [t.id for t in primary.get_todos()] == [
            t.id for t in secondary.get_todos()
        ]
        assert primary.get_base_title() == secondary.get_base_title()

    async def test_write_during_initial_seed_is_replicated(self, replicas):
        primary, secondary, sync = replicas

        await secondary.update_todos([_todo("early", "Early agent write")], "Agent")
        await _quiesce(sync)
        await _quiesce(sync)

        assert [t.content for t in primary.get_todos()] == ["Early agent write"]
        assert primary.get_base_title() == "Agent"

    async def test_archive_replicated_once(self, replicas):
        primary, secondary, sync = replicas
        await _quiesce(sync)

        await secondary.update_todos([_todo("a")], "Project A")
        await _quiesce(sync)
        await secondary.update_todos([_todo("b")], "Project B")
        await _quiesce(sync)

        assert [s.slug for s in secondary.get_saved_lists()] == ["seed", "project-a"]
        assert primary.get_saved_lists() == secondary.get_saved_lists()

    async def test_dispose_stops_replication(self, replicas):
        primary, secondary, sync = replicas
        await _quiesce(sync)
        sync.dispose()

        await primary.update_todos([_todo("late")], "After")
        await asyncio.sleep(DEBOUNCE * 3)

        assert secondary.get_base_title() == "Seed"
        assert not sync.is_syncing


class RejectingStore(TodoStore):
    async def update_todos(self, todos, title=None):
        raise RuntimeError("replica unavailable")


async def test_replication_failure_is_logged(caplog):
    primary = TodoStore(
        InMemoryStorage([TodoItem(id="a", content="x")], "Docs"), name="editor"
    )
    secondary = RejectingStore(InMemoryStorage(), name="protocol")
    await primary.initialize()
    await secondary.initialize()
    sync = TodoSync(primary, secondary, debounce=DEBOUNCE, settle=SETTLE)

    with caplog.at_level(logging.ERROR, logger="todo_mcp_server.sync.engine"):
        await sync.start()

    assert "Failed to replicate editor -> protocol" in caplog.text
    assert secondary.get_todos() == []
    sync.dispose()
    await primary.dispose()
    await secondary.dispose()



async def test_start_seeds_saved_lists():
    archive = SavedTodoList(
        id="saved-1",
        title="Old project",
        todos=(TodoItem(id="x", content="Done"),),
        saved_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        slug="old-project",
    )
    storage = InMemoryStorage()
    await storage.save_saved_lists([archive])
    primary = TodoStore(storage, name="editor")
    secondary = TodoStore(InMemoryStorage(), name="protocol")
    await primary.initialize()
    await secondary.initialize()
    sync = TodoSync(primary, secondary, debounce=DEBOUNCE, settle=SETTLE)

    await sync.start()

    assert secondary.get_saved_list_by_slug("old-project") == archive
    sync.dispose()
    await primary.dispose()
    await secondary.dispose()
