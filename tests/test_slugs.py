"""Tests for todo_mcp_server.slugs."""

from todo_mcp_server.slugs import generate_slug, generate_unique_slug


class TestGenerateSlug:
    def test_basic(self):
        assert generate_slug("Project A: Phase 2!") == "project-a-phase-2"

    def test_collapses_runs(self):
        assert generate_slug("  Many   spaces -- here ") == "many-spaces-here"

    def test_non_ascii_becomes_separator(self):
        assert generate_slug("Café au lait") == "caf-au-lait"

    def test_truncates_to_50_without_trailing_hyphen(self):
        slug = generate_slug("word " * 30)
        assert len(slug) <= 50
        assert not slug.endswith("-")

    def test_empty_becomes_untitled(self):
        assert generate_slug("!!!") == "untitled"
        assert generate_slug("") == "untitled"


class TestGenerateUniqueSlug:
    def test_no_collision(self):
        assert generate_unique_slug("Docs", []) == "docs"

    def test_appends_counter(self):
        assert generate_unique_slug("Docs", ["docs"]) == "docs-1"
        assert generate_unique_slug("Docs", ["docs", "docs-1"]) == "docs-2"
