"""Tests for the keyed timer scheduler."""

from __future__ import annotations

import asyncio

import pytest

from inkpilot.services.scheduler import TimerScheduler

KEY = ("doc-1", "insights")


@pytest.mark.asyncio
async def test_timer_fires_once() -> None:
    scheduler = TimerScheduler()
    fired: list[str] = []

    scheduler.schedule(KEY, 0.01, lambda: fired.append("x"))
    assert scheduler.pending(KEY)
    await asyncio.sleep(0.05)

    assert fired == ["x"]
    assert not scheduler.pending(KEY)


@pytest.mark.asyncio
async def test_rescheduling_debounces() -> None:
    scheduler = TimerScheduler()
    fired: list[str] = []

    scheduler.schedule(KEY, 0.01, lambda: fired.append("first"))
    scheduler.schedule(KEY, 0.02, lambda: fired.append("second"))
    await asyncio.sleep(0.06)

    assert fired == ["second"]


@pytest.mark.asyncio
async def test_cancel_prevents_callback() -> None:
    scheduler = TimerScheduler()
    fired: list[str] = []

    scheduler.schedule(KEY, 0.01, lambda: fired.append("x"))
    assert scheduler.cancel(KEY)
    assert not scheduler.cancel(KEY)
    await asyncio.sleep(0.03)

    assert fired == []


@pytest.mark.asyncio
async def test_keys_are_independent() -> None:
    scheduler = TimerScheduler()
    scheduler.schedule(("doc-1", "insights"), 10, lambda: None)
    scheduler.schedule(("doc-1", "auto_execute"), 10, lambda: None)
    scheduler.schedule(("doc-2", "insights"), 10, lambda: None)

    assert scheduler.cancel_document("doc-1") == 2
    assert scheduler.pending_keys() == [("doc-2", "insights")]

    scheduler.cancel_all()
    assert scheduler.pending_keys() == []
