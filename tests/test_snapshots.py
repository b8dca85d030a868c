"""Tests for the in-memory snapshot store."""

from __future__ import annotations

from inkpilot.editor.snapshots import SnapshotStore
from inkpilot.events import SnapshotTaken


def test_snapshot_captures_text_fields(dual_document, bus) -> None:
    store = SnapshotStore(bus=bus)
    snapshot_id = store.snapshot(dual_document, "manual")

    snapshot = store.get(dual_document.id, snapshot_id)
    assert snapshot.content == "<p>Hello world.</p>"
    assert snapshot.translated_content == "<p>你好，世界。</p>"
    assert snapshot.reason == "manual"
    assert bus.of_type(SnapshotTaken)[-1].snapshot_id == snapshot_id


def test_history_is_newest_first_and_bounded(document) -> None:
    store = SnapshotStore(limit=2)
    ids = [store.snapshot(document) for _ in range(3)]
    assert [snapshot.id for snapshot in store.history(document.id)] == [ids[2], ids[1]]
    assert store.latest(document.id).id == ids[2]


def test_restore_rolls_back_and_keeps_current_state(document) -> None:
    store = SnapshotStore()
    original = document.content
    snapshot_id = store.snapshot(document, "auto")
    document.update(content="<p>Broken edit.</p>")

    assert store.restore(document, snapshot_id)

    assert document.content == original
    assert store.latest(document.id).content == "<p>Broken edit.</p>"


def test_restore_unknown_snapshot(document) -> None:
    assert not SnapshotStore().restore(document, "missing")
