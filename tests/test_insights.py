"""Tests for automatic document insights."""

from __future__ import annotations

import json

import pytest

from inkpilot.ai.generation import GenerationFailed
from inkpilot.ai.insights import INSIGHTS_CONCERN, InsightExtractor, insight_signature
from inkpilot.editor.document_model import Document

from tests.helpers import ScriptedGenerator

LONG_TEXT = "Quarterly review of the onboarding flow and its open questions. " * 4
REPLY = json.dumps(
    {
        "summary": "  Onboarding review  ",
        "tags": ["onboarding", "", None, "review"],
        "actions": [f"Action {index}" for index in range(12)],
    }
)


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def extractor(generator, scheduler, bus, clock) -> InsightExtractor:
    return InsightExtractor(generator, scheduler=scheduler, bus=bus, clock=clock)


@pytest.fixture
def long_document(bus) -> Document:
    return Document(id="long", content=f"<p>{LONG_TEXT}</p>", bus=bus)


class TestSignature:
    def test_signature_tracks_length_and_edges(self) -> None:
        text = "a" * 300
        assert insight_signature("d", text) == f"d:300:{'a' * 100}:{'a' * 120}"
        assert insight_signature("d", text) != insight_signature("d", text + "b")


class TestRun:
    @pytest.mark.asyncio
    async def test_insights_are_stored(self, extractor, generator, long_document, clock) -> None:
        generator.queue(REPLY)

        status = await extractor.run(long_document)

        assert status.level == "success"
        assert long_document.ai_summary == "Onboarding review"
        assert long_document.ai_tags == ["onboarding", "review"]
        assert long_document.ai_action_items == [f"Action {index}" for index in range(8)]
        assert long_document.auto_insights_updated_at == clock.now

    @pytest.mark.asyncio
    async def test_short_document_is_skipped(self, extractor, generator, document) -> None:
        status = await extractor.run(document)
        assert status.level == "idle"
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_unchanged_text_is_not_reanalysed(self, extractor, generator, long_document) -> None:
        generator.queue(REPLY)
        await extractor.run(long_document)

        status = await extractor.run(long_document)

        assert status.message == "insights up to date"
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_force_reanalyses(self, extractor, generator, long_document) -> None:
        generator.queue(REPLY, REPLY)
        await extractor.run(long_document)
        await extractor.run(long_document, force=True)
        assert len(generator.calls) == 2

    @pytest.mark.asyncio
    async def test_remembered_document_is_not_reanalysed(self, extractor, generator, long_document, clock) -> None:
        long_document.auto_insights_updated_at = clock.now
        extractor.remember(long_document)
        status = await extractor.run(long_document)
        assert status.message == "insights up to date"
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_insights(self, extractor, generator, long_document) -> None:
        long_document.ai_summary = "Earlier summary"
        generator.queue(GenerationFailed("timeout"))

        status = await extractor.run(long_document)

        assert status.level == "error"
        assert long_document.ai_summary == "Earlier summary"

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, extractor, generator, long_document) -> None:
        generator.queue("no json here")
        status = await extractor.run(long_document)
        assert status.message == "insight reply could not be parsed"


class TestScheduling:
    def test_long_document_arms_timer(self, extractor, scheduler, long_document) -> None:
        assert extractor.schedule(long_document)
        assert scheduler.delay((long_document.id, INSIGHTS_CONCERN)) == pytest.approx(45.0)

    def test_short_document_cancels_timer(self, extractor, scheduler, document) -> None:
        assert not extractor.schedule(document)
        assert ("cancel", (document.id, INSIGHTS_CONCERN)) in scheduler.history

    def test_disabled_cancels_timer(self, extractor, scheduler, long_document) -> None:
        extractor.schedule(long_document)
        extractor.schedule(long_document, enabled=False)
        assert not scheduler.pending((long_document.id, INSIGHTS_CONCERN))

    @pytest.mark.asyncio
    async def test_idle_fire_runs_extraction(self, extractor, generator, scheduler, long_document) -> None:
        generator.queue(REPLY)
        extractor.schedule(long_document)
        scheduler.fire((long_document.id, INSIGHTS_CONCERN))
        status = await extractor.task_for(long_document.id)
        assert status.level == "success"
