"""Bounded queue of pending candidates for one document.

The queue keeps newest items first. Whenever it is non-empty exactly one
item is active and that item is present in the queue.
"""

from __future__ import annotations

import logging
from typing import Iterator

from ..editor.apply import ApplyMode, EditApplicationEngine
from ..editor.document_model import Document
from ..editor.patches import PatchParseError, apply_paragraph_patches
from ..events import EventBus, PatchConsumed, PreviewActivated, PreviewQueued, PreviewRemoved
from ..services.settings import Settings
from ..status import OperationStatus, StatusReporter
from .models import PreviewQueueItem, with_patch_suffix

LOGGER = logging.getLogger(__name__)

DEFAULT_QUEUE_LIMIT = 8

__all__ = ["PreviewQueue", "PreviewQueues", "DEFAULT_QUEUE_LIMIT"]


class PreviewQueue:
    """Holds speculative edits and applies them through the apply engine.

    Events Emitted:
        - PreviewQueued: after :meth:`enqueue`
        - PreviewActivated: whenever the active item changes
        - PreviewRemoved: for every removed or evicted item
        - PatchConsumed: after a single patch was applied or dismissed
        - StatusChanged: outcome of apply operations
    """

    def __init__(
        self,
        document: Document,
        engine: EditApplicationEngine,
        *,
        bus: EventBus | None = None,
        limit: int = DEFAULT_QUEUE_LIMIT,
    ) -> None:
        self._document = document
        self._engine = engine
        self._bus = bus
        self._limit = max(1, limit)
        self._items: list[PreviewQueueItem] = []
        self._active_id: str | None = None
        self._status = StatusReporter("queue", bus)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def document(self) -> Document:
        return self._document

    @property
    def items(self) -> tuple[PreviewQueueItem, ...]:
        return tuple(self._items)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active_item(self) -> PreviewQueueItem | None:
        return self.get(self._active_id) if self._active_id else None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[PreviewQueueItem]:
        return iter(tuple(self._items))

    def get(self, item_id: str | None) -> PreviewQueueItem | None:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def enqueue(self, item: PreviewQueueItem) -> list[PreviewQueueItem]:
        """Prepend ``item``, evict beyond the bound and make ``item`` active."""

        self._items.insert(0, item)
        evicted = self._items[self._limit :]
        del self._items[self._limit :]
        LOGGER.debug(
            "Queued %s for %s (%d pending, %d evicted)", item.id, self._document.id, len(self._items), len(evicted)
        )
        self._publish(
            PreviewQueued(
                document_id=self._document.id,
                item_id=item.id,
                evicted_ids=tuple(entry.id for entry in evicted),
            )
        )
        for entry in evicted:
            self._publish(PreviewRemoved(document_id=self._document.id, item_id=entry.id))
        self._set_active(item.id)
        return evicted

    def activate(self, item_id: str) -> bool:
        if self.get(item_id) is None:
            return False
        self._set_active(item_id)
        return True

    def remove(self, item_id: str) -> bool:
        item = self.get(item_id)
        if item is None:
            return False
        self._items.remove(item)
        self._publish(PreviewRemoved(document_id=self._document.id, item_id=item_id))
        if not self._items:
            self._set_active(None)
        elif self._active_id == item_id or self.get(self._active_id) is None:
            self._set_active(self._items[0].id)
        return True

    def clear(self) -> None:
        for item in list(self._items):
            self._items.remove(item)
            self._publish(PreviewRemoved(document_id=self._document.id, item_id=item.id))
        self._set_active(None)

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def apply(self, item_id: str | None = None, *, forced_mode: ApplyMode | None = None) -> OperationStatus:
        """Apply an item (the active one by default) and drop it on success."""

        item = self.get(item_id or self._active_id)
        if item is None:
            return self._status.report(self._document.id, "warning", "nothing to apply")

        if item.is_patch_item and forced_mode in (None, "update_block"):
            result = self._engine.apply(
                self._document, "", "update_block", item.target, patches=item.patches, trigger=item.trigger
            )
        else:
            result = self._engine.apply(
                self._document, item.content, forced_mode or item.mode, item.target, trigger=item.trigger
            )

        if result.outcome in ("no_patches_matched", "parse_error"):
            return self._status.report(self._document.id, "warning", result.message, item_id=item.id)
        self.remove(item.id)
        return self._status.report(
            self._document.id,
            "success",
            result.message,
            item_id=item.id,
            applied_ids=list(result.applied_ids),
            skipped_ids=list(result.skipped_ids),
        )

    def apply_single_patch(self, item_id: str, patch_id: str) -> OperationStatus:
        """Apply one patch of a patch item to the live document."""

        item = self.get(item_id)
        patch = _find_patch(item, patch_id)
        if item is None or patch is None:
            return self._status.report(self._document.id, "idle", "patch not found")

        result = self._engine.apply(
            self._document, "", "update_block", item.target, patches=[patch], trigger=item.trigger
        )
        if not result.applied:
            return self._status.report(
                self._document.id, "warning", "patch missed", item_id=item.id, patch_id=patch_id
            )
        self._consume(item, patch_id, applied=True)
        return self._status.report(self._document.id, "success", "patch applied", item_id=item.id, patch_id=patch_id)

    def dismiss_single_patch(self, item_id: str, patch_id: str) -> OperationStatus:
        """Drop one patch of a patch item without touching the document."""

        item = self.get(item_id)
        if item is None or _find_patch(item, patch_id) is None:
            return self._status.report(self._document.id, "idle", "patch not found")
        self._consume(item, patch_id, applied=False)
        return self._status.report(self._document.id, "success", "patch dismissed", item_id=item.id, patch_id=patch_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _consume(self, item: PreviewQueueItem, patch_id: str, *, applied: bool) -> None:
        remaining = [patch for patch in item.patches if patch.id != patch_id]
        self._publish(
            PatchConsumed(document_id=self._document.id, item_id=item.id, patch_id=patch_id, applied=applied)
        )
        if not remaining:
            self.remove(item.id)
            return
        item.patches = remaining
        item.title = with_patch_suffix(item.title, len(remaining))
        source = self._document.read(item.target)
        try:
            item.content = apply_paragraph_patches(source, remaining).html
        except PatchParseError as exc:
            LOGGER.warning("Could not recompute preview %s: %s", item.id, exc)

    def _set_active(self, item_id: str | None) -> None:
        if item_id == self._active_id:
            return
        self._active_id = item_id
        self._publish(PreviewActivated(document_id=self._document.id, item_id=item_id))

    def _publish(self, event) -> None:
        if self._bus is not None:
            self._bus.publish(event)


def _find_patch(item: PreviewQueueItem | None, patch_id: str):
    if item is None or not item.is_patch_item:
        return None
    return next((patch for patch in item.patches if patch.id == patch_id), None)


class PreviewQueues:
    """Lazily creates one :class:`PreviewQueue` per document."""

    def __init__(
        self,
        engine: EditApplicationEngine,
        *,
        bus: EventBus | None = None,
        limit: int = DEFAULT_QUEUE_LIMIT,
    ) -> None:
        self._engine = engine
        self._bus = bus
        self._limit = limit
        self._queues: dict[str, PreviewQueue] = {}

    @classmethod
    def from_settings(
        cls, engine: EditApplicationEngine, settings: Settings, *, bus: EventBus | None = None
    ) -> "PreviewQueues":
        return cls(engine, bus=bus, limit=settings.automation.preview_queue_limit)

    @property
    def limit(self) -> int:
        return self._limit

    def for_document(self, document: Document) -> PreviewQueue:
        queue = self._queues.get(document.id)
        if queue is None or queue.document is not document:
            queue = PreviewQueue(document, self._engine, bus=self._bus, limit=self._limit)
            self._queues[document.id] = queue
        return queue

    def pending(self, document_id: str) -> bool:
        queue = self._queues.get(document_id)
        return queue is not None and len(queue) > 0

    def discard(self, document_id: str) -> None:
        queue = self._queues.pop(document_id, None)
        if queue is not None:
            queue.clear()
