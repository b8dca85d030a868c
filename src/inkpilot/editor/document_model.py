"""The document record the pipeline reads and writes."""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from ..events import DocumentUpdated, EventBus

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..automation.strategy import AutomationStrategy
    from ..goals.plan import GoalExecutionLog, GoalPlan

LOGGER = logging.getLogger(__name__)

Target = Literal["original", "translated"]

__all__ = ["Document", "Target", "utcnow", "hash_text", "resolve_target"]

_WRITABLE_FIELDS = frozenset(
    {
        "title",
        "content",
        "translated_content",
        "goal_plan",
        "goal_plan_updated_at",
        "goal_execution_log",
        "goal_source",
        "automation_strategy",
        "ai_summary",
        "ai_tags",
        "ai_action_items",
        "auto_insights_updated_at",
    }
)
_CONTENT_FIELDS = frozenset({"content", "translated_content"})


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class Document:
    """A rich-text page with an optional translated column.

    ``translated_content`` is ``None`` for single-column documents; an empty
    string means the translated column exists but has no text yet.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    title: str = ""
    content: str = ""
    translated_content: str | None = None
    goal_plan: "GoalPlan | None" = None
    goal_plan_updated_at: datetime | None = None
    goal_execution_log: list["GoalExecutionLog"] = field(default_factory=list)
    goal_source: dict[str, str] | None = None
    automation_strategy: "AutomationStrategy | None" = None
    ai_summary: str = ""
    ai_tags: list[str] = field(default_factory=list)
    ai_action_items: list[str] = field(default_factory=list)
    auto_insights_updated_at: datetime | None = None
    updated_at: datetime = field(default_factory=utcnow)
    version_id: int = 1
    bus: EventBus | None = field(default=None, repr=False, compare=False)

    @property
    def has_dual_columns(self) -> bool:
        return self.translated_content is not None

    def read(self, target: Target) -> str:
        """Return the content of ``target`` after target resolution."""

        if resolve_target(self, target) == "translated":
            return self.translated_content or ""
        return self.content

    def update(self, **changes: Any) -> tuple[str, ...]:
        """Write ``changes`` and publish :class:`DocumentUpdated`.

        Returns the names of fields whose value actually changed.
        """

        unknown = set(changes) - _WRITABLE_FIELDS
        if unknown:
            raise AttributeError(f"Document fields are not writable: {sorted(unknown)}")
        changed: list[str] = []
        for name, value in changes.items():
            if getattr(self, name) == value:
                continue
            setattr(self, name, value)
            changed.append(name)
        if not changed:
            return ()
        if _CONTENT_FIELDS.intersection(changed):
            self.version_id += 1
        self.updated_at = utcnow()
        LOGGER.debug("Document %s updated: %s", self.id, changed)
        if self.bus is not None:
            self.bus.publish(DocumentUpdated(document_id=self.id, fields=tuple(changed)))
        return tuple(changed)

    def version_signature(self) -> str:
        return f"{self.id}:{self.version_id}:{hash_text(self.content)}"


def resolve_target(document: Document, target: str | None) -> Target:
    """Single-column documents always resolve to ``original``."""

    if target == "translated" and document.has_dual_columns:
        return "translated"
    return "original"
