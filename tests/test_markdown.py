"""Tests for converters/markdown.py: the todo list markdown codec.

Covers:
- format_todos_as_markdown() markers, emoji, details and subtasks
- parse_markdown() inverse parsing and tolerance of hand edits
- validate_and_sanitize_todos() repair of imported lists
- generate_id() shape
"""

import re

import pytest

from todo_mcp_server.converters.markdown import (
    format_todos_as_markdown,
    generate_id,
    parse_markdown,
    validate_and_sanitize_todos,
)
from todo_mcp_server.models import (
    Subtask,
    SubtaskStatus,
    TodoItem,
    TodoPriority,
    TodoStatus,
)
from todo_mcp_server.validators import validate_todos

RED = "\U0001f534"
YELLOW = "\U0001f7e1"
GREEN = "\U0001f7e2"


def _sample() -> list[TodoItem]:
    return [
        TodoItem(
            id="t1",
            content="Write docs",
            priority="high",
            details="Needed before review",
            subtasks=[Subtask(id="t1-a", content="Collect", status="completed")],
        ),
        TodoItem(id="t2", content="Implement codec", status="in_progress"),
        TodoItem(id="t3", content="Set up CI", status="completed", priority="low"),
    ]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestFormatTodos:
    def test_full_document(self):
        text = format_todos_as_markdown(_sample(), "Sprint 12")
        assert text == (
            "# Sprint 12\n"
            "\n"
            f"- [ ] t1: Write docs {RED}\n"
            "  _Needed before review_\n"
            "  - [x] t1-a: Collect\n"
            f"- [-] t2: Implement codec {YELLOW}\n"
            f"- [x] t3: Set up CI {GREEN}"
        )

    def test_without_title(self):
        text = format_todos_as_markdown(_sample()[1:2])
        assert text == f"- [-] t2: Implement codec {YELLOW}"

    def test_without_subtasks(self):
        text = format_todos_as_markdown(_sample()[:1], include_subtasks=False)
        assert "t1-a" not in text
        assert "_Needed before review_" in text

    def test_empty_list(self):
        assert format_todos_as_markdown([]) == ""
        assert format_todos_as_markdown([], "Docs") == "# Docs"

    def test_multiline_details_written_on_one_line(self):
        todo = TodoItem(id="t1", content="x", details="line one\nline two")
        assert "  _line one line two_" in format_todos_as_markdown([todo])


# ---------------------------------------------------------------------------
# Deserialization
# ---------------------------------------------------------------------------


class TestParseMarkdown:
    def test_inverse_of_format(self):
        todos = _sample()
        parsed, title = parse_markdown(format_todos_as_markdown(todos, "Sprint 12"))
        assert title == "Sprint 12"
        assert parsed == todos

    def test_missing_emoji_defaults_to_medium(self):
        parsed, _ = parse_markdown("- [ ] t1: No emoji")
        assert parsed[0].priority is TodoPriority.MEDIUM
        assert parsed[0].content == "No emoji"

    def test_status_markers(self):
        parsed, _ = parse_markdown("- [x] a: done\n- [-] b: doing\n- [ ] c: todo")
        assert [t.status for t in parsed] == [
            TodoStatus.COMPLETED,
            TodoStatus.IN_PROGRESS,
            TodoStatus.PENDING,
        ]

    def test_no_title(self):
        parsed, title = parse_markdown(f"- [ ] a: x {GREEN}")
        assert title is None
        assert parsed[0].priority is TodoPriority.LOW

    def test_ignores_unrecognized_lines(self):
        text = "\n".join(
            [
                "Some prose",
                "  - [x] orphan: subtask before any todo",
                "  _orphan details_",
                "- [ ] a: real",
                "* not a todo",
            ]
        )
        parsed, _ = parse_markdown(text)
        assert len(parsed) == 1
        assert parsed[0].subtasks is None
        assert parsed[0].details is None

    def test_subtask_status(self):
        parsed, _ = parse_markdown("- [ ] a: x\n  - [ ] s1: one\n  - [x] s2: two")
        assert [s.status for s in parsed[0].subtasks] == [
            SubtaskStatus.PENDING,
            SubtaskStatus.COMPLETED,
        ]

    def test_windows_line_endings(self):
        parsed, title = parse_markdown("# T\r\n\r\n- [ ] a: x\r\n")
        assert title == "T"
        assert parsed[0].content == "x"


@pytest.mark.parametrize(
    "record",
    [
        {"content": "  padded content  "},
        {"content": "two\nlines"},
        {"content": "spaced   out"},
        {"content": "x", "details": "  why\nbecause  "},
        {
            "content": "x",
            "subtasks": [{"id": "s1", "content": " step ", "status": "pending"}],
        },
    ],
)
def test_valid_records_survive_round_trip(record):
    raw = {"id": "a", "status": "pending", "priority": "high", **record}
    assert validate_todos([raw]) == (True, [])

    todos = [TodoItem.model_validate(raw)]
    parsed, title = parse_markdown(format_todos_as_markdown(todos, "Docs"))

    assert title == "Docs"
    assert parsed == todos


@pytest.mark.parametrize("todo_id", ["a:b", " a", "a ", "a\nb"])
def test_ids_that_cannot_round_trip_are_rejected(todo_id):
    raw = {"id": todo_id, "content": "x", "status": "pending", "priority": "low"}
    is_valid, errors = validate_todos([raw])
    assert not is_valid
    assert "Todo id" in errors[0]


def test_sanitizer_replaces_malformed_ids():
    (todo,) = validate_and_sanitize_todos([{"id": "a:b", "content": "x"}])
    assert todo.id.startswith("todo-")


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------


class TestValidateAndSanitize:
    def test_generates_missing_and_duplicate_ids(self):
        result = validate_and_sanitize_todos(
            [
                {"content": "no id"},
                {"id": "a", "content": "first"},
                {"id": "a", "content": "dup"},
            ]
        )
        ids = [t.id for t in result]
        assert ids[1] == "a"
        assert ids[0].startswith("todo-")
        assert ids[2].startswith("todo-")
        assert len(set(ids)) == 3

    def test_drops_empty_content(self):
        result = validate_and_sanitize_todos(
            [{"id": "a", "content": "  "}, {"id": "b", "content": "ok"}, "junk"]
        )
        assert [t.id for t in result] == ["b"]

    def test_invalid_enums_fall_back(self):
        (todo,) = validate_and_sanitize_todos(
            [{"id": "a", "content": "x", "status": "blocked", "priority": 7}]
        )
        assert todo.status is TodoStatus.PENDING
        assert todo.priority is TodoPriority.MEDIUM

    def test_adr_alias_and_truncation(self):
        (todo,) = validate_and_sanitize_todos(
            [{"id": "a", "content": "x", "adr": "  " + "r" * 600}]
        )
        assert todo.details == "r" * 500

    def test_subtasks_repaired(self):
        (todo,) = validate_and_sanitize_todos(
            [
                {
                    "id": "a",
                    "content": "x",
                    "subtasks": [
                        {"id": "s", "content": "one", "status": "weird"},
                        {"id": "s", "content": "two"},
                        {"id": "t", "content": ""},
                    ],
                }
            ]
        )
        assert len(todo.subtasks) == 2
        assert todo.subtasks[0].status is SubtaskStatus.PENDING
        assert todo.subtasks[1].id.startswith("subtask-")


def test_generate_id_shape():
    assert re.fullmatch(r"todo-\d{13}-[a-z0-9]{9}", generate_id())
    assert generate_id("saved").startswith("saved-")
