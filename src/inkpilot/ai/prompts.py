"""Prompt builders for every generation call the pipeline makes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Sequence

from ..utils.html import html_to_text
from .actions import EDIT_ACTIONS, FORMATTING_ACTIONS

__all__ = [
    "PromptPair",
    "ReferenceDocument",
    "PATCH_MODE_INSTRUCTION",
    "build_edit_prompts",
    "build_translation_combo_prompts",
    "build_automation_prompt",
    "build_planner_prompts",
    "build_insight_prompts",
    "build_router_prompts",
]

_MODE_INSTRUCTIONS = {
    "append": (
        "APPEND MODE: The user wants to ADD new content to the end of the current document. "
        "ONLY generate the NEW content. DO NOT repeat the original content."
    ),
    "prepend": (
        "PREPEND MODE: The user wants to ADD new content to the beginning of the current document. "
        "ONLY generate the NEW content. DO NOT repeat the original content."
    ),
    "update_block": (
        "UPDATE BLOCK MODE: The user wants focused updates. Return only the updated section(s) "
        "as standalone content blocks. Do not rewrite the whole document."
    ),
    "replace": (
        "REPLACE MODE: The user wants to REVISE or REORGANIZE the entire content. Return the ENTIRE "
        "text with your improvements. Do not leave out parts of the original unless asked."
    ),
}

_MODE_USER_LEADS = {
    "replace": "Please apply the following improvements to the ENTIRE text below. Make sure no parts of the original text are left out or ignored:",
    "append": "Generate ONLY new content to append at the end. Do not repeat existing paragraphs:",
    "prepend": "Generate ONLY new content to insert at the beginning. Do not repeat existing paragraphs:",
    "update_block": "Generate focused update blocks only for the requested changes. Keep unchanged content out of the output:",
}

PATCH_MODE_INSTRUCTION = (
    "PARAGRAPH PATCH MODE: Return STRICT JSON only with shape "
    '{"patches":[{"action":"replace|insert_before|insert_after|delete",'
    '"find":"exact snippet from current text","content":"html for new paragraph (omit only for delete)",'
    '"reason":"optional"}]}. Keep patches focused on paragraph-level changes. Do not rewrite the full document.'
)

_RICH_FORMATTING = (
    "FORMATTING: Return the result as HTML using tags such as <h1>, <p>, <strong> and <em> so it renders "
    "directly in a rich text editor. Use <table>, <tr>, <th> and <td> for tables. For checklists use "
    '<ul data-type="taskList"><li data-checked="false"><label><input type="checkbox"><span></span></label>'
    "<div><p>Task text</p></div></li></ul>. Do not wrap the response in markdown code blocks."
)
_PLAIN_FORMATTING = (
    "FORMATTING: Return the result as clean HTML using <p>, <strong>, <em> and <br/>. Keep the structure "
    "simple and do not add headings, tables or highlights unless requested. Do not wrap the response in "
    "markdown code blocks."
)
_GUARDRAILS = (
    "GUARDRAILS: Keep scope tight. Never fabricate facts, links or sources. "
    "If something is uncertain, say so and explain how to verify it."
)


@dataclass(slots=True)
class PromptPair:
    system: str
    user: str


@dataclass(slots=True)
class ReferenceDocument:
    """Another page the user pulled into the request as read-only context."""

    title: str
    content: str


def _header(today: date | None) -> str:
    return f"Today's Date: {(today or date.today()).isoformat()}"


def _base_system(
    actions: Sequence[str],
    *,
    today: date | None,
    references: Sequence[ReferenceDocument],
    skill_instructions: str,
) -> list[str]:
    parts = [
        _header(today),
        "You are a writing assistant embedded in a rich-text workspace. Be concise.",
        _GUARDRAILS,
        _RICH_FORMATTING if FORMATTING_ACTIONS.intersection(actions) else _PLAIN_FORMATTING,
    ]
    if references:
        body = "\n\n".join(f"--- REFERENCE: {ref.title} ---\n{html_to_text(ref.content)}" for ref in references)
        parts.append(f"REFERENCED DOCUMENTS (EXTRA CONTEXT):\n{body}")
    if skill_instructions:
        parts.append(skill_instructions)
    return parts


def _source_block(label: str, source: str) -> str:
    if source.strip():
        return f'Current {label} Content:\n"""\n{source}\n"""'
    return "(No existing content provided. Generate content based on user instructions.)"


def build_edit_prompts(
    actions: Sequence[str],
    prompt: str,
    mode: str,
    source: str,
    *,
    target: str = "original",
    has_dual_columns: bool = False,
    is_translation: bool = False,
    references: Sequence[ReferenceDocument] = (),
    skill_instructions: str = "",
    today: date | None = None,
) -> PromptPair:
    """Prompts for a single-output edit; ``update_block`` asks for JSON patches."""

    system = _base_system(actions, today=today, references=references, skill_instructions=skill_instructions)
    system.append(_MODE_INSTRUCTIONS[mode])
    if has_dual_columns and not is_translation:
        column = "translated" if target == "translated" else "original"
        system.append(
            f"TARGET COLUMN: The user selected the {column} column. Apply all edits ONLY to {column} text "
            "and keep language consistency."
        )
    system.extend(EDIT_ACTIONS[key].system_line for key in actions if key in EDIT_ACTIONS)
    label = "Translated" if target == "translated" and not is_translation else "Original"
    system.append(_source_block(label, source))

    lines = [_MODE_USER_LEADS[mode]]
    lines.extend(f"- {EDIT_ACTIONS[key].user_line}" for key in actions if key in EDIT_ACTIONS)
    if prompt.strip():
        lines.append(f"- Additional instructions: {prompt.strip()}")
    if mode == "update_block":
        system.append(PATCH_MODE_INSTRUCTION)
        lines.append("- Return paragraph-level patches only, not a full rewritten article.")
    lines.append(f"\nHere is the complete text to process:\n\n{source}")
    return PromptPair(system="\n\n".join(system), user="\n".join(lines))


def build_translation_combo_prompts(
    actions: Sequence[str],
    prompt: str,
    source: str,
    *,
    references: Sequence[ReferenceDocument] = (),
    skill_instructions: str = "",
    today: date | None = None,
) -> PromptPair:
    """Prompts for translation combined with other edits; the reply is a JSON object."""

    system = _base_system(actions, today=today, references=references, skill_instructions=skill_instructions)
    system.append(_source_block("Original", source))
    system.append(
        "Return a JSON object with two fields: 'optimizedContent' (the improved original text in its "
        "original language) and 'translatedContent' (the translated text). 'translatedContent' MUST keep "
        "exactly the same HTML structure as 'optimizedContent'; only text nodes are translated."
    )
    lines = ["Please apply the following improvements to the ENTIRE text below and then translate it:"]
    lines.extend(
        f"- {EDIT_ACTIONS[key].translate_line}"
        for key in actions
        if key in EDIT_ACTIONS and EDIT_ACTIONS[key].translate_line
    )
    lines.append(
        "- Finally, translate the result into fluent Chinese (or English if the original is Chinese), "
        "PRESERVING ALL HTML TAGS EXACTLY."
    )
    if prompt.strip():
        lines.append(f"- Additional instructions: {prompt.strip()}")
    lines.append(f"\nHere is the complete text to process:\n\n{source}")
    return PromptPair(system="\n\n".join(system), user="\n".join(lines))


def build_automation_prompt(items: Sequence[str], *, auto_apply: bool) -> str:
    numbered = "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))
    if auto_apply:
        lead = "Execute the following insight tasks in priority order and output the final result ready to apply to the document:"
    else:
        lead = (
            "Handle the following insight tasks in priority order. Output a previewable suggestion first "
            "and do not modify the document body directly:"
        )
    return f"{lead}\n{numbered}"


def build_planner_prompts(
    goal: str,
    constraints: str,
    deadline: str,
    plain_text: str,
    *,
    today: date | None = None,
) -> PromptPair:
    system = (
        f"{_header(today)}\n\nYou are an execution planner for a personal workspace. Return strict JSON only. "
        "No markdown. No commentary.\nRequired schema keys: version, summary, milestones, tasks, nextActions, risks.\n"
        'Constraints: version must be "v1"; tasks 5-20; nextActions <= 3; keep each title concise and actionable.'
    )
    user = (
        "Create or refresh an execution plan.\n"
        f"Goal: {goal}\nConstraints: {constraints or 'N/A'}\nDeadline: {deadline or 'N/A'}\n"
        f"Current content context:\n{plain_text or '(empty)'}\n\n"
        "Return JSON only with this shape:\n"
        "{\n"
        '  "version":"v1",\n'
        '  "summary":"string",\n'
        '  "milestones":[{"id":"string","title":"string","due":"optional string","status":"todo|doing|done|blocked"}],\n'
        '  "tasks":[{"id":"string","title":"string","priority":"p0|p1|p2","milestoneId":"optional string",'
        '"status":"todo|doing|done|blocked","owner":"optional me"}],\n'
        '  "nextActions":[{"id":"string","title":"string","reason":"string"}],\n'
        '  "risks":[{"id":"string","title":"string","level":"low|medium|high","mitigation":"optional string"}]\n'
        "}"
    )
    return PromptPair(system=system, user=user)


def build_insight_prompts(plain_text: str, *, today: date | None = None) -> PromptPair:
    system = (
        f"{_header(today)}\n\nYou are an automation assistant for a personal writing workspace. Extract concise "
        "structured insights from the document. Return strict JSON only with keys: summary (string), "
        "tags (string array), actions (string array). Keep the summary under 120 characters, "
        "tags to 3-8 items and actions to 3-8 concrete tasks."
    )
    return PromptPair(system=system, user=f"Analyze this document and generate automation insights:\n\n{plain_text}")


def build_router_prompts(text: str, catalog_lines: Sequence[str]) -> PromptPair:
    system = (
        "You route a user request to reusable skills. Return strict JSON only: "
        '{"selected_skill_ids": string[], "enable_web_search": boolean}.\n'
        "Rules:\n"
        "- Select at most 3 skills, only when they clearly help with the request.\n"
        "- Do NOT select goal_breakdown for direct Q&A, definitions or one-off facts; only for explicit planning.\n"
        "- enable_web_search is true only when the request needs fresh or external information.\n"
        "- Return an empty list when no skill applies."
    )
    user = "Skills:\n" + "\n".join(catalog_lines) + f"\n\nRequest:\n{text}"
    return PromptPair(system=system, user=user)
