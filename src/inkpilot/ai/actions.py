"""Catalog of the edit actions a request can combine."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["EditActionSpec", "EDIT_ACTIONS", "FORMATTING_ACTIONS", "action_labels", "is_known_action"]


@dataclass(frozen=True, slots=True)
class EditActionSpec:
    """Label and prompt fragments for one action.

    ``system_line`` extends the system prompt, ``user_line`` is a bullet of
    the user prompt and ``translate_line`` is the bullet used when the
    action is combined with a translation.
    """

    key: str
    label: str
    user_line: str
    system_line: str = ""
    translate_line: str = ""


EDIT_ACTIONS: dict[str, EditActionSpec] = {
    spec.key: spec
    for spec in (
        EditActionSpec(
            "write",
            "Help me write",
            "Help expand and write more content based on the context.",
            "HELP WRITING: Expand the content, add relevant details and continue the narrative or argument naturally.",
            "Help expand and write more content.",
        ),
        EditActionSpec(
            "polish",
            "Polish",
            "Polish and refine the language to make it more professional.",
            "POLISHING: Refine the language, improve vocabulary and flow while preserving the original meaning.",
            "Polish and refine the language.",
        ),
        EditActionSpec(
            "template",
            "Generate template",
            "Generate a structured template or outline for this topic.",
            "TEMPLATE GENERATION: Create a well-structured template or outline with headings and placeholders.",
            "Generate a structured template.",
        ),
        EditActionSpec(
            "summarize",
            "Summarize",
            "Summarize the key points.",
            "SUMMARIZE: Provide a concise bulleted summary of the key points.",
            "Summarize the key points.",
        ),
        EditActionSpec(
            "format",
            "Beautify format",
            "Beautify the format and typography of the entire text.",
            "Add headings, emphasis, lists and blockquotes where suitable so the whole document is easy to read.",
            "Beautify the format and typography.",
        ),
        EditActionSpec(
            "paragraphs",
            "Split paragraphs",
            "Divide the entire text into readable paragraphs.",
            "Break walls of text into paragraphs that each focus on a single idea. Process the whole text.",
            "Divide into readable paragraphs.",
        ),
        EditActionSpec(
            "organize",
            "Organize logic",
            "Reorganize the logic and structure of the entire text.",
            "Restructure the existing text into a clear introduction, body and conclusion without adding information.",
            "Reorganize the logic and structure.",
        ),
        EditActionSpec(
            "grammar",
            "Fix grammar",
            "Fix grammar and spelling errors.",
            "GRAMMAR & SPELLING: Fix all grammatical, spelling and punctuation errors.",
            "Fix grammar and spelling.",
        ),
        EditActionSpec(
            "translate",
            "Translate page",
            "Translate the entire text.",
            "Translate the entire text into fluent Chinese (or English if the original is Chinese), keeping its formatting.",
        ),
        EditActionSpec(
            "generate_table",
            "Make table",
            "Generate a data table based on the content or topic.",
            "TABLE GENERATION: Build a clear HTML <table> with descriptive headers.",
            "Generate a data table.",
        ),
        EditActionSpec(
            "generate_schedule",
            "Generate schedule",
            "Generate a detailed schedule or timeline.",
            "SCHEDULE GENERATION: Produce a schedule or timeline with times and responsibilities.",
            "Generate a detailed schedule.",
        ),
        EditActionSpec(
            "tone_pro",
            "Professional tone",
            "Make the tone more professional.",
            "PROFESSIONAL TONE: Rewrite the text to sound professional, formal and authoritative.",
            "Make it professional.",
        ),
        EditActionSpec(
            "tone_casual",
            "Friendly tone",
            "Make the tone more casual.",
            "CASUAL TONE: Rewrite the text to sound friendly and conversational.",
            "Make it casual.",
        ),
        EditActionSpec(
            "explain",
            "Explain",
            "Explain complex parts of the text.",
            "EXPLAIN: Explain complex concepts or code in simple terms.",
            "Explain concepts/code.",
        ),
        EditActionSpec(
            "action_items",
            "Extract action items",
            "Identify and list all tasks.",
            "ACTION ITEMS: List all tasks, deadlines and responsibilities mentioned in the text.",
            "Extract action items.",
        ),
    )
}

FORMATTING_ACTIONS = frozenset({"format", "organize", "template", "generate_table", "generate_schedule"})


def is_known_action(key: str) -> bool:
    return key in EDIT_ACTIONS


def action_labels(actions) -> list[str]:
    return [EDIT_ACTIONS[key].label for key in actions if key in EDIT_ACTIONS]
