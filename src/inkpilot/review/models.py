"""Preview queue records."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from ..editor.apply import ApplyMode
from ..editor.document_model import Target, utcnow
from ..editor.patches import ParagraphPatch
from ..goals.plan import GoalTrigger

_PATCH_SUFFIX_RE = re.compile(r"\s*\(\d+ patch(?:es)?\)$")
_TITLE_PROMPT_LIMIT = 22

__all__ = ["PreviewQueueItem", "preview_title", "strip_patch_suffix", "with_patch_suffix"]


@dataclass(slots=True)
class PreviewQueueItem:
    """A generated candidate waiting for review.

    Attributes:
        id: Queue-unique identifier.
        title: Display title; patch items end with ``(N patches)``.
        content: Candidate HTML, or for patch items the target content with
            the remaining patches applied.
        mode: How the candidate will be applied.
        target: Column the candidate was generated for.
        trigger: Provenance of the generation.
        patches: Remaining paragraph patches (``update_block`` only).
        created_at: When the candidate was produced.
    """

    title: str
    content: str
    mode: ApplyMode
    target: Target = "original"
    trigger: GoalTrigger = "manual_execute"
    patches: list[ParagraphPatch] = field(default_factory=list)
    id: str = field(default_factory=lambda: f"preview-{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_patch_item(self) -> bool:
        return self.mode == "update_block" and bool(self.patches)


def preview_title(prompt: str | None, action_labels: Sequence[str], trigger: str) -> str:
    """Short title from the first prompt line, else the first two action labels."""

    prefix = "Auto · " if trigger == "auto_execute" else ""
    first_line = next((line.strip() for line in (prompt or "").splitlines() if line.strip()), "")
    if first_line:
        if len(first_line) > _TITLE_PROMPT_LIMIT:
            first_line = first_line[:_TITLE_PROMPT_LIMIT] + "..."
        return prefix + first_line
    if action_labels:
        return prefix + " + ".join(action_labels[:2])
    return prefix + "AI preview"


def strip_patch_suffix(title: str) -> str:
    return _PATCH_SUFFIX_RE.sub("", title).strip()


def with_patch_suffix(title: str, count: int) -> str:
    noun = "patch" if count == 1 else "patches"
    return f"{strip_patch_suffix(title)} ({count} {noun})"
