"""Tests for paragraph patch normalization and application."""

from __future__ import annotations

import pytest

from inkpilot.editor.patches import (
    MAX_PATCHES_PER_BATCH,
    ParagraphPatch,
    PatchParseError,
    apply_paragraph_patches,
    normalize_paragraph_patches,
)

from tests.helpers import paragraphs, patch_payload

SOURCE = paragraphs("Alpha paragraph.", "Beta paragraph.", "Gamma paragraph.")


class TestNormalizeParagraphPatches:
    """Tests for turning model output into patches."""

    def test_accepts_mapping_and_assigns_ids(self) -> None:
        patches = normalize_paragraph_patches(
            patch_payload(
                {"action": "replace", "find": "Alpha", "content": "<p>A</p>"},
                {"id": "keep-me", "action": "delete", "find": "Beta"},
            ),
            now_ms=42,
        )
        assert [patch.id for patch in patches] == ["patch-42-0", "keep-me"]
        assert patches[1].content == ""

    def test_accepts_bare_list(self) -> None:
        patches = normalize_paragraph_patches([{"action": "insert_after", "find": "x", "content": "<p>y</p>"}])
        assert len(patches) == 1

    def test_drops_invalid_entries(self) -> None:
        patches = normalize_paragraph_patches(
            patch_payload(
                {"action": "rewrite", "find": "Alpha", "content": "<p>A</p>"},
                {"action": "replace", "find": "   ", "content": "<p>A</p>"},
                {"action": "insert_before", "find": "Alpha", "content": ""},
                "not a mapping",
                {"action": "REPLACE", "find": " Alpha \n paragraph ", "content": "<p>ok</p>"},
            ),
            now_ms=1,
        )
        assert len(patches) == 1
        assert patches[0].action == "replace"
        assert patches[0].find == "Alpha paragraph"

    def test_truncates_batch(self) -> None:
        raw = [{"action": "delete", "find": f"p{index}"} for index in range(MAX_PATCHES_PER_BATCH + 5)]
        assert len(normalize_paragraph_patches(raw)) == MAX_PATCHES_PER_BATCH

    @pytest.mark.parametrize("payload", [None, "text", {"patches": "nope"}, 3])
    def test_unusable_payload_gives_empty_list(self, payload) -> None:
        assert normalize_paragraph_patches(payload) == []


class TestApplyParagraphPatches:
    """Tests for the patch engine."""

    def test_replace_swaps_block(self) -> None:
        result = apply_paragraph_patches(SOURCE, [ParagraphPatch("p1", "replace", "Beta", "<p>Bravo!</p>")])
        assert result.applied_ids == ["p1"]
        assert result.html == paragraphs("Alpha paragraph.", "Bravo!", "Gamma paragraph.")

    def test_insert_before_and_after(self) -> None:
        result = apply_paragraph_patches(
            SOURCE,
            [
                ParagraphPatch("before", "insert_before", "Alpha", "<p>Zero</p>"),
                ParagraphPatch("after", "insert_after", "Gamma", "<p>Omega</p>"),
            ],
        )
        assert result.html == paragraphs("Zero", "Alpha paragraph.", "Beta paragraph.", "Gamma paragraph.", "Omega")

    def test_insert_after_keeps_fragment_order(self) -> None:
        result = apply_paragraph_patches(
            SOURCE, [ParagraphPatch("multi", "insert_after", "Alpha", "<p>One</p><p>Two</p>")]
        )
        assert result.html.startswith(paragraphs("Alpha paragraph.", "One", "Two"))

    def test_delete_removes_block(self) -> None:
        result = apply_paragraph_patches(SOURCE, [ParagraphPatch("d", "delete", "Gamma")])
        assert result.html == paragraphs("Alpha paragraph.", "Beta paragraph.")

    def test_later_patches_see_earlier_mutations(self) -> None:
        result = apply_paragraph_patches(
            SOURCE,
            [
                ParagraphPatch("first", "replace", "Alpha", "<p>Rewritten opening.</p>"),
                ParagraphPatch("second", "insert_after", "Rewritten opening", "<p>Follow-up.</p>"),
            ],
        )
        assert result.applied_ids == ["first", "second"]
        assert result.html.startswith(paragraphs("Rewritten opening.", "Follow-up."))

    def test_anchor_miss_is_skipped_and_batch_continues(self) -> None:
        result = apply_paragraph_patches(
            SOURCE,
            [
                ParagraphPatch("miss", "replace", "Nowhere to be found", "<p>x</p>"),
                ParagraphPatch("hit", "delete", "Beta"),
            ],
        )
        assert result.skipped_ids == ["miss"]
        assert result.applied_ids == ["hit"]
        assert result.summary() == "1 of 2 patches applied"

    def test_anchor_drift_after_user_edit(self) -> None:
        edited = paragraphs("Alpha paragraph, now with an extra clause.", "Beta paragraph.")
        result = apply_paragraph_patches(edited, [ParagraphPatch("p", "replace", "Alpha paragraph", "<p>New</p>")])
        assert result.applied_ids == ["p"]

    def test_all_missed_returns_input_unchanged(self) -> None:
        source = "<p>Keep   this exact   spacing</p>"
        result = apply_paragraph_patches(source, [ParagraphPatch("m", "delete", "absent")])
        assert result.html is source
        assert not result.changed

    def test_empty_batch_is_noop_even_for_bad_markup(self) -> None:
        result = apply_paragraph_patches("</p>broken", [])
        assert result.html == "</p>broken"
        assert result.applied_ids == [] and result.skipped_ids == []

    def test_same_input_gives_same_output(self) -> None:
        batch = [
            ParagraphPatch("a", "replace", "Alpha", "<p>A</p>"),
            ParagraphPatch("b", "insert_before", "Gamma", "<p>B</p>"),
        ]
        assert apply_paragraph_patches(SOURCE, batch).html == apply_paragraph_patches(SOURCE, batch).html

    def test_closing_tag_inside_comment_is_not_structural(self) -> None:
        result = apply_paragraph_patches(
            "<!-- legacy </div> marker --><p>Alpha</p>", [ParagraphPatch("x", "replace", "Alpha", "<p>Beta</p>")]
        )
        assert result.applied_ids == ["x"]
        assert "<p>Beta</p>" in result.html

    def test_invalid_markup_raises_parse_error(self) -> None:
        with pytest.raises(PatchParseError) as excinfo:
            apply_paragraph_patches("<p>one</p></li>", [ParagraphPatch("x", "delete", "one")])
        assert excinfo.value.patch_ids == ("x",)
