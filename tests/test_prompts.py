"""Tests for prompt construction, the action catalog and skills."""

from __future__ import annotations

from datetime import date

import pytest

from inkpilot.ai.actions import action_labels, is_known_action
from inkpilot.ai.prompts import (
    PATCH_MODE_INSTRUCTION,
    ReferenceDocument,
    build_automation_prompt,
    build_edit_prompts,
    build_insight_prompts,
    build_translation_combo_prompts,
)
from inkpilot.ai.skills import skill_from_mapping

TODAY = date(2026, 3, 1)


class TestEditPrompts:
    def test_replace_prompt_carries_actions_and_source(self) -> None:
        prompts = build_edit_prompts(("polish", "grammar"), "Keep it short", "replace", "<p>Body</p>", today=TODAY)
        assert prompts.system.startswith("Today's Date: 2026-03-01")
        assert "REPLACE MODE" in prompts.system
        assert "POLISHING" in prompts.system
        assert '"""\n<p>Body</p>\n"""' in prompts.system
        assert "- Polish and refine the language to make it more professional." in prompts.user
        assert "- Additional instructions: Keep it short" in prompts.user
        assert prompts.user.endswith("<p>Body</p>")

    def test_formatting_actions_switch_to_rich_output(self) -> None:
        rich = build_edit_prompts(("format",), "", "replace", "x", today=TODAY)
        plain = build_edit_prompts(("polish",), "", "replace", "x", today=TODAY)
        assert "taskList" in rich.system
        assert "taskList" not in plain.system

    def test_update_block_asks_for_patches(self) -> None:
        prompts = build_edit_prompts((), "Tighten", "update_block", "x", today=TODAY)
        assert PATCH_MODE_INSTRUCTION in prompts.system
        assert "paragraph-level patches only" in prompts.user

    def test_dual_column_target_instruction(self) -> None:
        prompts = build_edit_prompts(
            ("polish",), "", "replace", "<p>译文</p>", target="translated", has_dual_columns=True, today=TODAY
        )
        assert "selected the translated column" in prompts.system
        assert "Current Translated Content" in prompts.system

    def test_empty_source_placeholder(self) -> None:
        prompts = build_edit_prompts((), "Write an intro", "append", "  ", today=TODAY)
        assert "(No existing content provided." in prompts.system
        assert "APPEND MODE" in prompts.system

    def test_references_and_skills_are_included(self) -> None:
        prompts = build_edit_prompts(
            (),
            "Compare",
            "replace",
            "x",
            references=[ReferenceDocument(title="Brief", content="<p>Ref <b>text</b></p>")],
            skill_instructions="ACTIVE SKILLS (follow them in order):\n[Tone fix] Be calm",
            today=TODAY,
        )
        assert "--- REFERENCE: Brief ---\nRef text" in prompts.system
        assert "[Tone fix] Be calm" in prompts.system


class TestOtherPrompts:
    def test_translation_combo_prompt(self) -> None:
        prompts = build_translation_combo_prompts(("polish", "translate"), "", "<p>Hi</p>", today=TODAY)
        assert "optimizedContent" in prompts.system
        assert "- Polish and refine the language." in prompts.user
        assert "PRESERVING ALL HTML TAGS EXACTLY" in prompts.user

    @pytest.mark.parametrize(("auto_apply", "lead"), [(True, "Execute the following"), (False, "Handle the following")])
    def test_automation_prompt(self, auto_apply: bool, lead: str) -> None:
        text = build_automation_prompt(["Summarize", "Fix grammar"], auto_apply=auto_apply)
        assert text.startswith(lead)
        assert text.endswith("1. Summarize\n2. Fix grammar")

    def test_insight_prompt_mentions_keys(self) -> None:
        prompts = build_insight_prompts("Some text", today=TODAY)
        assert "summary" in prompts.system and "actions" in prompts.system
        assert "Some text" in prompts.user


class TestActionsAndSkills:
    def test_action_labels_skip_unknown_keys(self) -> None:
        assert action_labels(["polish", "nope", "translate"]) == ["Polish", "Translate page"]
        assert is_known_action("summarize")
        assert not is_known_action("nope")

    def test_skill_from_mapping_defaults_unknown_enums(self) -> None:
        skill = skill_from_mapping({"id": "s1", "name": " Daily recap ", "scope": "galaxy", "risk": "medium"})
        assert skill.name == "Daily recap"
        assert skill.scope == "current_doc"
        assert skill.risk == "medium"
        assert "id=s1; name=Daily recap" in skill.catalog_line()

    def test_skill_requires_id_and_name(self) -> None:
        with pytest.raises(ValueError):
            skill_from_mapping({"id": "", "name": "x"})
