"""Paragraph-level patches applied against block anchors."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping, Sequence

from bs4 import BeautifulSoup

from .anchors import ParseError, find_block, index_blocks, normalize_patch_text, parse_html

LOGGER = logging.getLogger(__name__)

PatchAction = Literal["replace", "insert_before", "insert_after", "delete"]
PATCH_ACTIONS: frozenset[str] = frozenset({"replace", "insert_before", "insert_after", "delete"})
MAX_PATCHES_PER_BATCH = 12

__all__ = [
    "PatchAction",
    "PATCH_ACTIONS",
    "MAX_PATCHES_PER_BATCH",
    "ParagraphPatch",
    "PatchBatchResult",
    "PatchParseError",
    "normalize_paragraph_patches",
    "apply_paragraph_patches",
]


class PatchParseError(ParseError):
    """Raised when a patch batch cannot run because its HTML input is malformed."""

    def __init__(self, message: str, *, patch_ids: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.patch_ids = tuple(patch_ids)

    def details(self) -> dict[str, Any]:
        return {"reason": "parse_error", "message": str(self), "patch_ids": list(self.patch_ids)}


@dataclass(slots=True)
class ParagraphPatch:
    """One localized edit anchored on the text of a single block."""

    id: str
    action: PatchAction
    find: str
    content: str = ""
    reason: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "action": self.action, "find": self.find, "content": self.content, "reason": self.reason}


@dataclass(slots=True)
class PatchBatchResult:
    """Outcome of a patch batch.

    ``html`` is the input string itself when nothing was applied.
    """

    html: str
    applied_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied_ids)

    def summary(self) -> str:
        total = len(self.applied_ids) + len(self.skipped_ids)
        return f"{len(self.applied_ids)} of {total} patches applied"


def normalize_paragraph_patches(payload: Any, *, now_ms: int | None = None) -> list[ParagraphPatch]:
    """Build patches from model output, dropping entries that break the batch rules.

    ``payload`` is either the ``{"patches": [...]}`` mapping or the list itself.
    """

    if isinstance(payload, Mapping):
        raw_items = payload.get("patches")
    else:
        raw_items = payload
    if not isinstance(raw_items, list):
        return []

    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    patches: list[ParagraphPatch] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, Mapping):
            continue
        action = str(raw.get("action") or "").strip().lower()
        if action not in PATCH_ACTIONS:
            continue
        find = normalize_patch_text(str(raw.get("find") or ""))
        if not find:
            continue
        content = str(raw.get("content") or "").strip()
        if action != "delete" and not content:
            continue
        patch_id = str(raw.get("id") or "").strip() or f"patch-{stamp}-{index}"
        patches.append(
            ParagraphPatch(
                id=patch_id,
                action=action,  # type: ignore[arg-type]
                find=find,
                content=content,
                reason=str(raw.get("reason") or "").strip(),
            )
        )
        if len(patches) >= MAX_PATCHES_PER_BATCH:
            break
    return patches


def apply_paragraph_patches(html: str, patches: Iterable[ParagraphPatch]) -> PatchBatchResult:
    """Apply ``patches`` in order; each one resolves its anchor against the current tree."""

    batch = list(patches)
    result = PatchBatchResult(html=html)
    if not batch:
        return result
    try:
        soup = parse_html(html)
    except ParseError as exc:
        raise PatchParseError(str(exc), patch_ids=[patch.id for patch in batch]) from exc

    for patch in batch:
        block = find_block(index_blocks(soup), patch.find)
        if block is None:
            result.skipped_ids.append(patch.id)
            LOGGER.debug("Patch %s skipped: anchor %r not found", patch.id, patch.find[:60])
            continue
        _apply_to_block(block.node, patch)
        result.applied_ids.append(patch.id)

    if result.applied_ids:
        result.html = str(soup)
    LOGGER.debug("Patch batch: %s", result.summary())
    return result


def _apply_to_block(node, patch: ParagraphPatch) -> None:
    if patch.action == "delete":
        node.decompose()
        return
    fragment = list(BeautifulSoup(patch.content, "html.parser").contents)
    if patch.action == "insert_before":
        for child in fragment:
            node.insert_before(child)
    elif patch.action == "insert_after":
        anchor = node
        for child in fragment:
            anchor.insert_after(child)
            anchor = child
    else:
        for child in fragment:
            node.insert_before(child)
        node.decompose()
