"""Rollback snapshots taken before every committing write."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Protocol

from ..events import EventBus, SnapshotTaken
from .document_model import Document, utcnow

LOGGER = logging.getLogger(__name__)

SnapshotReason = Literal["manual", "auto"]

__all__ = ["DocumentSnapshot", "SnapshotCollaborator", "SnapshotStore", "SnapshotReason"]


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    """Immutable copy of the writable text fields of a document."""

    id: str
    document_id: str
    title: str
    content: str
    translated_content: str | None
    reason: SnapshotReason
    created_at: datetime = field(default_factory=utcnow)


class SnapshotCollaborator(Protocol):
    def snapshot(self, document: Document, reason: SnapshotReason = "auto") -> str:
        ...

    def restore(self, document: Document, snapshot_id: str) -> bool:
        ...


class SnapshotStore:
    """In-memory snapshot history, newest first, bounded per document."""

    def __init__(self, *, limit: int = 20, bus: EventBus | None = None) -> None:
        self._limit = max(1, limit)
        self._bus = bus
        self._history: defaultdict[str, list[DocumentSnapshot]] = defaultdict(list)

    def snapshot(self, document: Document, reason: SnapshotReason = "auto") -> str:
        snapshot = DocumentSnapshot(
            id=f"snap-{uuid.uuid4().hex[:12]}",
            document_id=document.id,
            title=document.title,
            content=document.content,
            translated_content=document.translated_content,
            reason=reason,
        )
        history = self._history[document.id]
        history.insert(0, snapshot)
        del history[self._limit :]
        LOGGER.debug("Snapshot %s taken for %s (%s)", snapshot.id, document.id, reason)
        if self._bus is not None:
            self._bus.publish(SnapshotTaken(document_id=document.id, snapshot_id=snapshot.id, reason=reason))
        return snapshot.id

    def restore(self, document: Document, snapshot_id: str) -> bool:
        snapshot = self.get(document.id, snapshot_id)
        if snapshot is None:
            LOGGER.warning("Snapshot %s not found for %s", snapshot_id, document.id)
            return False
        # The pre-restore state is itself recoverable.
        self.snapshot(document, reason="manual")
        document.update(
            title=snapshot.title,
            content=snapshot.content,
            translated_content=snapshot.translated_content,
        )
        return True

    def get(self, document_id: str, snapshot_id: str) -> DocumentSnapshot | None:
        for snapshot in self._history.get(document_id, ()):
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def history(self, document_id: str) -> list[DocumentSnapshot]:
        return list(self._history.get(document_id, ()))

    def latest(self, document_id: str) -> DocumentSnapshot | None:
        history = self._history.get(document_id)
        return history[0] if history else None
