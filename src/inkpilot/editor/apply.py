"""Commit an accepted candidate into a document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal, Sequence

from ..events import EditCommitted, EventBus
from ..goals.plan import AuditEntry, append_execution_log, make_log_entry
from ..utils.html import escape_html
from .anchors import ParseError, parse_html
from .document_model import Document, Target, resolve_target, utcnow
from .patches import ParagraphPatch, PatchParseError, apply_paragraph_patches
from .snapshots import SnapshotCollaborator

LOGGER = logging.getLogger(__name__)

ApplyMode = Literal["replace", "append", "prepend", "update_block"]
APPLY_MODES: tuple[str, ...] = ("replace", "append", "prepend", "update_block")
ApplyOutcome = Literal["applied", "no_patches_matched", "parse_error", "unchanged"]

_TARGET_LABELS = {"original": "Original", "translated": "Translation"}

__all__ = ["ApplyMode", "APPLY_MODES", "ApplyResult", "EditApplicationEngine", "render_update_block"]


@dataclass(slots=True)
class ApplyResult:
    outcome: ApplyOutcome
    target: Target
    applied_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)
    snapshot_id: str | None = None
    message: str = ""

    @property
    def applied(self) -> bool:
        return self.outcome == "applied"


def render_update_block(content: str, target: Target, at: datetime) -> str:
    """Wrap raw candidate HTML in a visually distinct container."""

    label = f"AI update · {_TARGET_LABELS[target]} · {at.strftime('%H:%M')}"
    return (
        f'<div class="ai-update-block" data-ai-update-block="{target}">'
        f'<p class="ai-update-block-label">{escape_html(label)}</p>'
        f"{content}</div>"
    )


class EditApplicationEngine:
    """Computes and writes the new content for every apply mode.

    A snapshot is taken right before the write; operations that end up not
    writing (no patch matched, malformed input, identical content) take no
    snapshot.
    """

    def __init__(
        self,
        snapshots: SnapshotCollaborator,
        *,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._snapshots = snapshots
        self._bus = bus
        self._clock = clock

    def apply(
        self,
        document: Document,
        content: str,
        mode: ApplyMode,
        target: str = "original",
        patches: Sequence[ParagraphPatch] | None = None,
        *,
        trigger: str = "manual_execute",
        audit: AuditEntry | None = None,
    ) -> ApplyResult:
        if mode not in APPLY_MODES:
            raise ValueError(f"Unknown apply mode: {mode!r}")
        resolved = resolve_target(document, target)
        current = document.read(resolved)
        field_name = "translated_content" if resolved == "translated" else "content"
        changes: dict[str, object] = {}
        result = ApplyResult(outcome="applied", target=resolved)

        if mode == "update_block" and patches:
            try:
                batch = apply_paragraph_patches(current, patches)
            except PatchParseError as exc:
                LOGGER.warning("Patch batch for %s aborted: %s", document.id, exc)
                result.outcome = "parse_error"
                result.message = f"document markup could not be parsed: {exc}"
                return result
            result.applied_ids = list(batch.applied_ids)
            result.skipped_ids = list(batch.skipped_ids)
            if not batch.applied_ids:
                result.outcome = "no_patches_matched"
                result.message = "no patches matched"
                return result
            changes[field_name] = batch.html
            result.message = batch.summary()
        elif mode == "update_block":
            changes[field_name] = current + render_update_block(content, resolved, self._clock())
        elif mode == "append":
            changes[field_name] = f"{current}<br/>{content}" if current.strip() else content
        elif mode == "prepend":
            changes[field_name] = f"{content}<br/>{current}" if current.strip() else content
        elif resolved == "original":
            title, body = _split_leading_heading(content)
            changes[field_name] = body
            if title:
                changes["title"] = title
        else:
            changes[field_name] = content

        if all(getattr(document, name) == value for name, value in changes.items()):
            result.outcome = "unchanged"
            result.message = "content already up to date"
            return result

        effective_trigger = audit.trigger if audit is not None else trigger
        reason = "auto" if effective_trigger.startswith("auto") else "manual"
        result.snapshot_id = self._snapshots.snapshot(document, reason)
        if audit is not None:
            entry = make_log_entry(audit, at=self._clock())
            changes["goal_execution_log"] = append_execution_log(document.goal_execution_log, entry)
        document.update(**changes)
        result.message = result.message or f"{mode} applied to {resolved}"
        LOGGER.info("Applied %s to %s (%s): %s", mode, document.id, resolved, result.message)
        if self._bus is not None:
            self._bus.publish(
                EditCommitted(
                    document_id=document.id,
                    mode=mode,
                    target=resolved,
                    trigger=effective_trigger,
                    applied_ids=tuple(result.applied_ids),
                )
            )
        return result


def _split_leading_heading(content: str) -> tuple[str, str]:
    """Return ``(title, body)`` when ``content`` starts with an h1/h2."""

    try:
        soup = parse_html(content)
    except ParseError:
        return "", content
    first = next((node for node in soup.contents if getattr(node, "name", None) or str(node).strip()), None)
    if first is None or getattr(first, "name", None) not in ("h1", "h2"):
        return "", content
    title = first.get_text().strip()
    if not title:
        return "", content
    first.decompose()
    return title, str(soup).strip()
