"""Unit tests for :mod:`inkpilot.editor.anchors`."""

from __future__ import annotations

import pytest

from inkpilot.editor.anchors import ParseError, find_block, index_blocks, normalize_patch_text, parse_html


class TestParseHtml:
    """Tests for structural validation of HTML input."""

    def test_parses_well_formed_markup(self) -> None:
        soup = parse_html("<h1>Title</h1><p>Body</p>")
        assert [node.name for node in soup.find_all(["h1", "p"])] == ["h1", "p"]

    def test_rejects_non_string_input(self) -> None:
        with pytest.raises(ParseError):
            parse_html(None)  # type: ignore[arg-type]

    def test_rejects_stray_closing_block_tag(self) -> None:
        with pytest.raises(ParseError):
            parse_html("<p>one</p></p><p>two</p>")

    def test_closers_inside_comments_and_attributes_are_ignored(self) -> None:
        soup = parse_html('<!-- legacy </div> marker --><p title="a </p> b">Alpha</p>')
        assert soup.find("p").get_text() == "Alpha"

    def test_self_closing_block_tag_does_not_open(self) -> None:
        with pytest.raises(ParseError, match="line 1"):
            parse_html("<div/></div>")

    def test_tolerates_unclosed_inline_markup(self) -> None:
        soup = parse_html("<p>bold <strong>text</p>")
        assert soup.find("p") is not None


class TestIndexBlocks:
    """Tests for the ordered block view."""

    def test_blocks_follow_document_order(self) -> None:
        soup = parse_html("<h2>Head</h2><p>One</p><ul><li>Item</li></ul><blockquote>Quote</blockquote>")
        blocks = index_blocks(soup)
        assert [block.tag for block in blocks] == ["h2", "p", "li", "blockquote"]
        assert [block.index for block in blocks] == [0, 1, 2, 3]

    def test_block_text_is_whitespace_normalized(self) -> None:
        soup = parse_html("<p>  spaced \n\n  out   text </p>")
        assert index_blocks(soup)[0].text == "spaced out text"

    def test_outer_blocks_precede_nested_blocks(self) -> None:
        soup = parse_html("<ul><li><p>Nested</p></li></ul>")
        assert [block.tag for block in index_blocks(soup)] == ["li", "p"]


class TestFindBlock:
    """Tests for drift-tolerant anchor lookup."""

    def test_snippet_contained_in_block(self) -> None:
        blocks = index_blocks(parse_html("<p>The quick brown fox.</p><p>Lazy dog.</p>"))
        assert find_block(blocks, "quick brown").index == 0

    def test_block_contained_in_snippet(self) -> None:
        blocks = index_blocks(parse_html("<p>Short.</p><p>Other.</p>"))
        assert find_block(blocks, "Intro text. Short. Trailing text.").index == 0

    def test_whitespace_drift_still_matches(self) -> None:
        blocks = index_blocks(parse_html("<p>Alpha   beta\ngamma</p>"))
        assert find_block(blocks, " Alpha beta  gamma ") is not None

    def test_first_match_wins(self) -> None:
        blocks = index_blocks(parse_html("<p>repeat me</p><p>repeat me</p>"))
        assert find_block(blocks, "repeat").index == 0

    def test_empty_snippet_never_matches(self) -> None:
        blocks = index_blocks(parse_html("<p>content</p>"))
        assert find_block(blocks, "   ") is None

    def test_empty_blocks_are_ignored(self) -> None:
        blocks = index_blocks(parse_html("<p></p><p>target</p>"))
        assert find_block(blocks, "target").index == 1

    def test_miss_returns_none(self) -> None:
        blocks = index_blocks(parse_html("<p>present</p>"))
        assert find_block(blocks, "absent text") is None


def test_normalize_patch_text_collapses_runs() -> None:
    assert normalize_patch_text("\t a \n  b ") == "a b"
