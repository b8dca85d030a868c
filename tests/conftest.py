"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from inkpilot.editor.apply import EditApplicationEngine
from inkpilot.editor.document_model import Document
from inkpilot.review.preview_queue import PreviewQueues

from tests.helpers import FakeDatetimeClock, ManualScheduler, RecordingBus, RecordingSnapshots


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def snapshots() -> RecordingSnapshots:
    return RecordingSnapshots()


@pytest.fixture
def clock() -> FakeDatetimeClock:
    return FakeDatetimeClock()


@pytest.fixture
def engine(snapshots: RecordingSnapshots, bus: RecordingBus, clock: FakeDatetimeClock) -> EditApplicationEngine:
    return EditApplicationEngine(snapshots, bus=bus, clock=clock)


@pytest.fixture
def queues(engine: EditApplicationEngine, bus: RecordingBus) -> PreviewQueues:
    return PreviewQueues(engine, bus=bus)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def document(bus: RecordingBus) -> Document:
    return Document(
        id="doc-1",
        title="Notes",
        content="<p>Alpha paragraph.</p><p>Beta paragraph.</p><p>Gamma paragraph.</p>",
        bus=bus,
    )


@pytest.fixture
def dual_document(bus: RecordingBus) -> Document:
    return Document(
        id="doc-2",
        title="Bilingual",
        content="<p>Hello world.</p>",
        translated_content="<p>你好，世界。</p>",
        bus=bus,
    )
