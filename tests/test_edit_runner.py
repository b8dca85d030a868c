"""Tests for the edit runner: streamed edits, patches, translation and cancellation."""

from __future__ import annotations

import asyncio
import json

import pytest

from inkpilot.ai.edit_runner import EditRequest, EditRunner
from inkpilot.ai.generation import GenerationFailed
from inkpilot.events import GenerationChunk

from tests.helpers import ScriptedGenerator, paragraphs, patch_payload


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def runner(generator, engine, queues, snapshots, bus, clock) -> EditRunner:
    return EditRunner(generator, engine, queues, snapshots, bus=bus, clock=clock)


def _stop_on_first_chunk(bus, runner: EditRunner) -> None:
    stopped = []

    def handler(event: GenerationChunk) -> None:
        if not stopped:
            stopped.append(event)
            runner.stop()

    bus.subscribe(GenerationChunk, handler)


class TestRequest:
    def test_translation_flags(self) -> None:
        assert EditRequest(actions=("translate",)).is_translation
        assert not EditRequest(actions=("translate",)).is_translation_combo
        assert EditRequest(actions=("polish", "translate")).is_translation_combo
        assert EditRequest(actions=("translate",), prompt="Keep it formal").is_translation_combo
        assert EditRequest(trigger="auto_execute").is_automatic

    @pytest.mark.asyncio
    async def test_empty_request_is_refused(self, runner, generator, document) -> None:
        outcome = await runner.run(document, EditRequest())
        assert outcome.status.level == "warning"
        assert generator.calls == []


class TestStreamedEdit:
    @pytest.mark.asyncio
    async def test_manual_edit_becomes_preview(self, runner, generator, document, queues, bus) -> None:
        before = document.content
        generator.queue(["<p>Polished ", "text.</p>"])

        outcome = await runner.run(document, EditRequest(actions=("polish",)))

        assert outcome.ok
        assert outcome.status.message == "preview generated"
        assert document.content == before
        assert outcome.preview.title == "Polish"
        assert outcome.preview.content == "<p>Polished text.</p>"
        assert queues.for_document(document).active_id == outcome.preview.id
        assert [event.text for event in bus.of_type(GenerationChunk)] == ["<p>Polished ", "text.</p>"]
        assert generator.calls[0].streamed

    @pytest.mark.asyncio
    async def test_code_fences_are_removed(self, runner, generator, document) -> None:
        generator.queue("```html\n<p>Clean.</p>\n```")
        outcome = await runner.run(document, EditRequest(prompt="Rewrite"))
        assert outcome.preview.content == "<p>Clean.</p>"

    @pytest.mark.asyncio
    async def test_sanitizer_is_applied(self, generator, engine, queues, snapshots, document) -> None:
        runner = EditRunner(generator, engine, queues, snapshots, sanitize_html=lambda html: html.replace("<script>", ""))
        generator.queue("<script><p>Safe.</p>")
        outcome = await runner.run(document, EditRequest(prompt="Rewrite"))
        assert outcome.preview.content == "<p>Safe.</p>"

    @pytest.mark.asyncio
    async def test_auto_apply_commits_with_audit(self, runner, generator, document, snapshots) -> None:
        generator.queue("<p>Shorter.</p>")

        outcome = await runner.run(document, EditRequest(prompt="Make it shorter", auto_apply=True))

        assert outcome.status.message == "auto-applied"
        assert outcome.apply_result.applied
        assert document.content == "<p>Shorter.</p>"
        assert document.goal_execution_log[-1].summary == "Make it shorter applied"
        assert document.goal_execution_log[-1].trigger == "manual_execute"
        assert len(snapshots.taken) == 1

    @pytest.mark.asyncio
    async def test_single_column_document_targets_original(self, runner, generator, document) -> None:
        generator.queue("<p>x</p>")
        outcome = await runner.run(document, EditRequest(prompt="Rewrite", target="translated"))
        assert outcome.target == "original"

    @pytest.mark.asyncio
    async def test_translated_column_is_read_when_selected(self, runner, generator, dual_document) -> None:
        generator.queue("<p>润色后。</p>")
        outcome = await runner.run(dual_document, EditRequest(actions=("polish",), target="translated"))
        assert outcome.target == "translated"
        assert "你好，世界。" in generator.calls[0].user_prompt
        assert outcome.preview.target == "translated"


class TestPatchRequests:
    @pytest.mark.asyncio
    async def test_patches_preview_against_current_text(self, runner, generator, document) -> None:
        generator.queue(
            json.dumps(
                patch_payload({"id": "p1", "action": "replace", "find": "Beta paragraph.", "content": "<p>Beta, tightened.</p>"})
            )
        )

        outcome = await runner.run(document, EditRequest(actions=("polish",), mode="update_block"))

        item = outcome.preview
        assert item.mode == "update_block"
        assert item.title == "Polish (1 patch)"
        assert [patch.id for patch in item.patches] == ["p1"]
        assert item.content == paragraphs("Alpha paragraph.", "Beta, tightened.", "Gamma paragraph.")
        assert not generator.calls[0].streamed

    @pytest.mark.asyncio
    async def test_reply_without_patches_falls_back_to_block(self, runner, generator, document) -> None:
        generator.queue("<p>A whole new block.</p>")
        outcome = await runner.run(document, EditRequest(prompt="Add a closing note", mode="update_block"))
        assert outcome.preview.patches == []
        assert outcome.preview.content == "<p>A whole new block.</p>"
        assert outcome.preview.title == "Add a closing note"


class TestTranslation:
    @pytest.mark.asyncio
    async def test_stream_writes_translated_column(self, runner, generator, dual_document, snapshots, queues) -> None:
        generator.queue(["<p>Bonjour ", "le monde.</p>"])

        outcome = await runner.run(dual_document, EditRequest(actions=("translate",)))

        assert outcome.status.message == "translation updated"
        assert outcome.target == "translated"
        assert dual_document.translated_content == "<p>Bonjour le monde.</p>"
        assert dual_document.content == "<p>Hello world.</p>"
        assert [entry[1] for entry in snapshots.taken] == ["manual"]
        assert snapshots.taken[0][2] == "<p>Hello world.</p>"
        assert len(queues.for_document(dual_document)) == 0

    @pytest.mark.asyncio
    async def test_stream_abort_keeps_partial_translation(self, runner, generator, dual_document, bus) -> None:
        _stop_on_first_chunk(bus, runner)
        generator.queue(["<p>Bonjour ", "le monde.</p>"])

        outcome = await runner.run(dual_document, EditRequest(actions=("translate",)))

        assert outcome.status.message == "interrupted, retry available"
        assert outcome.partial == "<p>Bonjour "
        assert dual_document.translated_content == "<p>Bonjour "
        assert runner.can_retry

    @pytest.mark.asyncio
    async def test_combo_updates_both_columns(self, runner, generator, dual_document, snapshots) -> None:
        generator.queue(
            json.dumps({"optimizedContent": "<p>Hello, world!</p>", "translatedContent": "<p>你好，世界！</p>"})
        )

        outcome = await runner.run(dual_document, EditRequest(actions=("polish", "translate")))

        assert outcome.status.message == "optimized and translated"
        assert dual_document.content == "<p>Hello, world!</p>"
        assert dual_document.translated_content == "<p>你好，世界！</p>"
        assert len(snapshots.taken) == 1

    @pytest.mark.asyncio
    async def test_combo_with_unchanged_reply_skips_snapshot(self, runner, generator, dual_document, snapshots) -> None:
        generator.queue(
            json.dumps({"optimizedContent": "<p>Hello world.</p>", "translatedContent": "<p>你好，世界。</p>"})
        )
        outcome = await runner.run(dual_document, EditRequest(actions=("polish", "translate")))
        assert outcome.status.message == "content already up to date"
        assert snapshots.taken == []

    @pytest.mark.asyncio
    async def test_combo_rejects_non_json_reply(self, runner, generator, dual_document) -> None:
        before = dual_document.translated_content
        generator.queue("Sorry, I cannot do that.")

        outcome = await runner.run(dual_document, EditRequest(actions=("polish", "translate")))

        assert outcome.status.level == "error"
        assert outcome.status.message == "generation failed: translation reply was not a JSON object"
        assert dual_document.translated_content == before


class TestFailuresAndCancellation:
    @pytest.mark.asyncio
    async def test_manual_failure_is_an_error(self, runner, generator, document) -> None:
        generator.queue(GenerationFailed("quota exceeded"))
        outcome = await runner.run(document, EditRequest(prompt="Rewrite"))
        assert outcome.status.level == "error"
        assert outcome.status.message == "generation failed: quota exceeded"
        assert not runner.can_retry

    @pytest.mark.asyncio
    async def test_automatic_failure_is_a_warning(self, runner, generator, document) -> None:
        generator.queue(GenerationFailed("quota exceeded"))
        outcome = await runner.run(document, EditRequest(prompt="Rewrite", trigger="auto_execute", scope="automation"))
        assert outcome.status.level == "warning"
        assert outcome.status.message == "failed, retry manually"

    @pytest.mark.asyncio
    async def test_abort_discards_buffer_and_allows_retry(self, runner, generator, document, queues, bus) -> None:
        before = document.content
        _stop_on_first_chunk(bus, runner)
        generator.queue(["<p>Half ", "done.</p>"], "<p>Fully done.</p>")

        aborted = await runner.run(document, EditRequest(prompt="Rewrite"))

        assert aborted.status.level == "warning"
        assert document.content == before
        assert len(queues.for_document(document)) == 0

        retried = await runner.retry_last()
        assert retried.preview.content == "<p>Fully done.</p>"
        assert not runner.can_retry
        assert (await runner.retry_last()).status.level == "idle"

    @pytest.mark.asyncio
    async def test_stop_leaves_automation_running(self, runner, generator, document) -> None:
        generator.queue(ScriptedGenerator.BLOCK)
        request = EditRequest(prompt="Rewrite", trigger="auto_execute", scope="automation")
        task = asyncio.ensure_future(runner.run(document, request))
        await asyncio.sleep(0)

        assert runner.is_running("automation")
        assert not runner.stop()
        await asyncio.sleep(0)
        assert not task.done()

        runner.scopes.stop("automation")
        outcome = await task
        assert outcome.status.message == "interrupted, retry available"
        assert not runner.is_running("automation")
