"""Tests for metadata derivation from Markdown."""

from pkm_vault.storage.markdown_parser import MarkdownParser


class TestMarkdownParser:
    """Tests for MarkdownParser."""

    def test_title_from_first_heading(self, parser):
        assert parser.extract_title("intro\n# First\n# Second") == "First"

    def test_title_defaults_to_untitled(self, parser):
        assert parser.extract_title("no heading here") == "Untitled"
        assert parser.extract_title("## Only level two") == "Untitled"

    def test_title_ignores_front_matter(self, parser):
        markdown = "---\ntitle: Meta\n---\n# Real Title\n\nBody"
        assert parser.extract_title(markdown) == "Real Title"

    def test_invalid_front_matter_is_stripped_by_pattern(self, parser):
        markdown = "---\n: : [unclosed\n---\n# Heading\n"
        assert parser.extract_title(markdown) == "Heading"

    def test_crlf_line_endings(self, parser):
        assert parser.extract_title("# Windows\r\n\r\nBody") == "Windows"

    def test_tags_lowercased_and_deduplicated(self, parser):
        markdown = "#Alpha text #beta and #alpha again\n#nested/tag"
        assert parser.extract_tags(markdown) == ["alpha", "beta", "nested/tag"]

    def test_heading_marker_is_not_a_tag(self, parser):
        assert parser.extract_tags("# Title\n## Sub") == []

    def test_wikilinks_in_order(self, parser):
        markdown = "See [[Other]] and [[ Third ]] and [[Other]]"
        assert parser.extract_wikilinks(markdown) == ["Other", "Third"]

    def test_snippet_strips_heading_and_punctuation(self, parser):
        markdown = "# Hello\n\nWorld #demo [[Other]]\n> quoted *bold*"
        assert parser.extract_snippet(markdown) == "World demo Other quoted bold"

    def test_snippet_truncated(self):
        parser = MarkdownParser(snippet_length=10)
        assert parser.extract_snippet("# T\n\n" + "x" * 50) == "x" * 10

    def test_derive(self, parser):
        meta = parser.derive("# Hello\n\nWorld #demo [[Other]]")
        assert meta.title == "Hello"
        assert meta.tags == ["demo"]
        assert meta.links_out == ["Other"]


class TestMerge:
    """Explicit values win, blanks are derived."""

    def test_explicit_values_win(self, parser):
        meta = parser.merge(
            "# Derived\n#tag [[Link]]",
            title="Given",
            snippet="given snippet",
            tags=["x", "x", "y"],
            links_out=["Z"],
        )
        assert meta.title == "Given"
        assert meta.snippet == "given snippet"
        assert meta.tags == ["x", "y"]
        assert meta.links_out == ["Z"]

    def test_explicit_tags_are_lowercased(self, parser):
        meta = parser.merge("# T", tags=["Demo", "demo", " WORK "])
        assert meta.tags == ["demo", "work"]

    def test_blank_values_are_derived(self, parser):
        meta = parser.merge("# Derived\n#tag [[Link]]", title="  ", snippet="", tags=[])
        assert meta.title == "Derived"
        assert meta.tags == ["tag"]
        assert meta.links_out == ["Link"]
