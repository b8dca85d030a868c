"""Shared test helpers and stub classes.

Import fakes from here instead of redefining them in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from inkpilot.ai.generation import CancellationToken, GenerationAborted
from inkpilot.events import Event, EventBus
from inkpilot.services.scheduler import TimerKey


@dataclass
class GenerateCall:
    system_prompt: str
    user_prompt: str
    streamed: bool
    cancel: CancellationToken | None


class ScriptedGenerator:
    """Generator stub returning queued replies in order.

    A reply is either a string, an exception instance to raise, a list of
    string chunks (streamed one by one when ``on_chunk`` is given) or
    :data:`BLOCK`, which waits until the cancellation token fires.
    """

    BLOCK = object()

    def __init__(self, *replies: Any) -> None:
        self._replies = list(replies)
        self.calls: list[GenerateCall] = []

    def queue(self, *replies: Any) -> None:
        self._replies.extend(replies)

    async def generate(self, system_prompt, user_prompt, *, on_chunk=None, cancel=None) -> str:
        self.calls.append(GenerateCall(system_prompt, user_prompt, on_chunk is not None, cancel))
        if not self._replies:
            raise AssertionError("ScriptedGenerator ran out of replies")
        reply = self._replies.pop(0)
        if cancel is not None:
            cancel.raise_if_cancelled()
        if reply is ScriptedGenerator.BLOCK:
            assert cancel is not None, "blocking reply requires a cancellation token"
            await cancel.wait()
            raise GenerationAborted(cancel.reason)
        if isinstance(reply, BaseException):
            raise reply
        chunks = list(reply) if isinstance(reply, list) else [reply]
        for chunk in chunks:
            if cancel is not None:
                cancel.raise_if_cancelled()
            if on_chunk is not None:
                on_chunk(chunk)
            await asyncio.sleep(0)
        return "".join(chunks)


class SlowGenerator:
    """Generator stub that sleeps before answering (for timeout tests)."""

    def __init__(self, delay: float, reply: str = "{}") -> None:
        self.delay = delay
        self.reply = reply
        self.calls = 0

    async def generate(self, system_prompt, user_prompt, *, on_chunk=None, cancel=None) -> str:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return self.reply


class ManualScheduler:
    """Scheduler stub whose timers only fire when a test says so."""

    def __init__(self) -> None:
        self.timers: dict[TimerKey, tuple[float, Callable[[], None]]] = {}
        self.history: list[tuple[str, TimerKey]] = []

    def schedule(self, key: TimerKey, delay: float, callback: Callable[[], None]) -> None:
        self.timers[key] = (delay, callback)
        self.history.append(("schedule", key))

    def cancel(self, key: TimerKey) -> bool:
        self.history.append(("cancel", key))
        return self.timers.pop(key, None) is not None

    def pending(self, key: TimerKey) -> bool:
        return key in self.timers

    def delay(self, key: TimerKey) -> float:
        return self.timers[key][0]

    def fire(self, key: TimerKey) -> None:
        _, callback = self.timers.pop(key)
        callback()


class RecordingBus(EventBus):
    """Event bus that keeps every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[Event] = []

    def publish(self, event: Event) -> None:
        self.published.append(event)
        super().publish(event)

    def of_type(self, event_type: type) -> list[Any]:
        return [event for event in self.published if isinstance(event, event_type)]


class RecordingSnapshots:
    """Snapshot collaborator that records what was captured."""

    def __init__(self) -> None:
        self.taken: list[tuple[str, str, str]] = []

    def snapshot(self, document, reason: str = "auto") -> str:
        snapshot_id = f"snap-{len(self.taken) + 1}"
        self.taken.append((snapshot_id, reason, document.content))
        return snapshot_id

    def restore(self, document, snapshot_id: str) -> bool:  # pragma: no cover - not used by the engine
        return False


@dataclass
class FakeClock:
    """Monotonic clock stub advanced explicitly by tests."""

    now: float = 1_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeDatetimeClock:
    now: datetime = field(default_factory=lambda: datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def paragraphs(*texts: str) -> str:
    return "".join(f"<p>{text}</p>" for text in texts)


def patch_payload(*patches: dict[str, Any]) -> dict[str, Any]:
    return {"patches": list(patches)}


def ids(items: Iterable[Any]) -> list[str]:
    return [item.id for item in items]
