"""Named, cancellable timers shared by every idle/debounce concern."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

LOGGER = logging.getLogger(__name__)

TimerKey = tuple[str, str]
"""``(document_id, concern)``"""

__all__ = ["Scheduler", "TimerKey", "TimerScheduler"]


class Scheduler(Protocol):
    """Minimal surface the automation components depend on."""

    def schedule(self, key: TimerKey, delay: float, callback: Callable[[], None]) -> None:
        ...

    def cancel(self, key: TimerKey) -> bool:
        ...

    def pending(self, key: TimerKey) -> bool:
        ...


class TimerScheduler:
    """Keeps at most one pending timer per ``(document_id, concern)`` key.

    Scheduling a key that already has a pending timer cancels the old one
    first, which gives trailing-debounce semantics for free.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handles: dict[TimerKey, asyncio.TimerHandle] = {}

    def schedule(self, key: TimerKey, delay: float, callback: Callable[[], None]) -> None:
        self.cancel(key)
        loop = self._loop or asyncio.get_running_loop()

        def _fire() -> None:
            self._handles.pop(key, None)
            LOGGER.debug("Timer %s fired", key)
            callback()

        self._handles[key] = loop.call_later(max(0.0, delay), _fire)
        LOGGER.debug("Timer %s armed for %.1fs", key, delay)

    def cancel(self, key: TimerKey) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        LOGGER.debug("Timer %s cancelled", key)
        return True

    def cancel_document(self, document_id: str) -> int:
        keys = [key for key in self._handles if key[0] == document_id]
        for key in keys:
            self.cancel(key)
        return len(keys)

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)

    def pending(self, key: TimerKey) -> bool:
        return key in self._handles

    def pending_keys(self) -> list[TimerKey]:
        return list(self._handles)
