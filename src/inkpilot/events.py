"""Event bus used to broadcast pipeline state changes.

Components never call the editing surface directly. Anything the surface
may want to reflect (a document write, a queued candidate, a status line)
is published as a typed event on an :class:`EventBus`.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Literal, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]

StatusScope = Literal["edit", "automation", "plan", "insights", "queue", "routing"]
StatusLevel = Literal["idle", "running", "success", "warning", "error"]


@dataclass(slots=True)
class Event:
    """Base class for all pipeline events."""


# =============================================================================
# Document events
# =============================================================================


@dataclass(slots=True)
class DocumentUpdated(Event):
    """Emitted after any write to a document record.

    Attributes:
        document_id: Identifier of the mutated document.
        fields: Names of the fields that changed.
    """

    document_id: str
    fields: tuple[str, ...]


@dataclass(slots=True)
class SnapshotTaken(Event):
    """Emitted when a rollback snapshot has been recorded."""

    document_id: str
    snapshot_id: str
    reason: str


@dataclass(slots=True)
class GenerationChunk(Event):
    """Emitted for each streamed fragment of a running generation."""

    document_id: str
    scope: str
    text: str


# =============================================================================
# Preview queue events
# =============================================================================


@dataclass(slots=True)
class PreviewQueued(Event):
    """Emitted when a candidate enters the preview queue.

    Attributes:
        document_id: Document the candidate belongs to.
        item_id: Identifier of the new queue item.
        evicted_ids: Items dropped because the queue exceeded its bound.
    """

    document_id: str
    item_id: str
    evicted_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class PreviewActivated(Event):
    """Emitted when the active preview changes (``None`` when the queue empties)."""

    document_id: str
    item_id: str | None


@dataclass(slots=True)
class PreviewRemoved(Event):
    document_id: str
    item_id: str


@dataclass(slots=True)
class PatchConsumed(Event):
    """Emitted when one patch of a queued candidate is applied or dismissed."""

    document_id: str
    item_id: str
    patch_id: str
    applied: bool


# =============================================================================
# Edit, plan and status events
# =============================================================================


@dataclass(slots=True)
class EditCommitted(Event):
    """Emitted when a candidate has been written into a document.

    Attributes:
        document_id: Identifier of the edited document.
        mode: Apply mode that was used.
        target: Column that received the write.
        trigger: Provenance of the edit.
        applied_ids: Patch identifiers applied (empty for whole-content modes).
    """

    document_id: str
    mode: str
    target: str
    trigger: str
    applied_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class GoalPlanUpdated(Event):
    document_id: str
    trigger: str
    changed_sections: tuple[str, ...] = ()


@dataclass(slots=True)
class StatusChanged(Event):
    """Emitted when an operation boundary reports its outcome.

    Attributes:
        scope: Which pipeline concern reported the status.
        document_id: Document the status refers to.
        level: ``idle``, ``running``, ``success``, ``warning`` or ``error``.
        message: Human readable explanation.
        details: Optional structured payload for diagnostics.
    """

    scope: StatusScope
    document_id: str
    level: StatusLevel
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Bus
# =============================================================================

# Published once per streamed chunk; not logged on publish.
_QUIET_EVENT_TYPES: frozenset[type] = frozenset({GenerationChunk})


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus.

    Handlers are invoked synchronously in registration order and dispatch is
    by exact type. Bound methods are held weakly so that subscribers can be
    garbage collected without an explicit :meth:`unsubscribe`.

    Example::

        bus = EventBus()
        bus.subscribe(StatusChanged, lambda event: print(event.message))
        bus.publish(StatusChanged(scope="edit", document_id="doc", level="success"))
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: dict[type[Event], list[_Subscription]] = {}

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._subscriptions.setdefault(event_type, []).append(_Subscription(handler))
        logger.debug("%s now listens to %s", _describe(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Drop the earliest registration of ``handler``; unknown handlers are ignored."""
        entries = self._subscriptions.get(event_type, [])
        position = next((i for i, entry in enumerate(entries) if entry.refers_to(handler)), None)
        if position is not None:
            del entries[position]
            logger.debug("%s no longer listens to %s", _describe(handler), event_type.__name__)

    def publish(self, event: E) -> None:
        """Deliver ``event`` to every live handler.

        A handler that raises is logged and skipped; the remaining handlers
        still run. Subscriptions whose owner was collected are pruned.
        """
        kind = type(event)
        entries = self._subscriptions.get(kind)
        if kind not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", kind.__name__, len(entries or ()))
        if not entries:
            return

        for entry in tuple(entries):
            handler = entry.target()
            if handler is None:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("%s raised while handling %s", _describe(handler), kind.__name__)
        entries[:] = [entry for entry in entries if entry.target() is not None]

    def clear(self) -> None:
        self._subscriptions.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is None:
            return sum(map(len, self._subscriptions.values()))
        return len(self._subscriptions.get(event_type, ()))


class _Subscription:
    """Holds a handler, weakly when it is a bound method."""

    __slots__ = ("target",)

    def __init__(self, handler: Handler) -> None:
        self.target: Callable[[], Handler | None]
        if inspect.ismethod(handler):
            self.target = WeakMethod(handler)
        else:
            self.target = lambda: handler

    def refers_to(self, handler: Handler) -> bool:
        current = self.target()
        return current is not None and current == handler


def _describe(handler: Handler) -> str:
    if inspect.ismethod(handler):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__qualname__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "StatusLevel",
    "StatusScope",
    "DocumentUpdated",
    "SnapshotTaken",
    "GenerationChunk",
    "PreviewQueued",
    "PreviewActivated",
    "PreviewRemoved",
    "PatchConsumed",
    "EditCommitted",
    "GoalPlanUpdated",
    "StatusChanged",
]
