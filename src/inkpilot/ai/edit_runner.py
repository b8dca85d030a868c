"""Edit Runner: turn an edit request into a committed edit or a preview.

The runner builds prompts, calls the generator, cleans the output and then
either commits it through :class:`EditApplicationEngine` or places it in the
document's preview queue. Translation output is written straight into the
translated column as it streams.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, Sequence

from ..editor.apply import ApplyMode, ApplyResult, EditApplicationEngine
from ..editor.document_model import Document, Target, resolve_target, utcnow
from ..editor.patches import ParagraphPatch, PatchParseError, apply_paragraph_patches, normalize_paragraph_patches
from ..editor.snapshots import SnapshotCollaborator
from ..events import EventBus, GenerationChunk
from ..goals.plan import AuditEntry, GoalTrigger, append_execution_log, make_log_entry
from ..review.models import PreviewQueueItem, preview_title, with_patch_suffix
from ..review.preview_queue import PreviewQueues
from ..status import OperationStatus, StatusReporter
from .actions import action_labels
from .generation import (
    CancellationScopes,
    CancellationToken,
    CancelScope,
    GenerationAborted,
    GenerationFailed,
    Generator,
)
from .json_payload import parse_ai_json_payload, strip_code_fence
from .prompts import ReferenceDocument, build_edit_prompts, build_translation_combo_prompts

LOGGER = logging.getLogger(__name__)

HtmlSanitizer = Callable[[str], str]

__all__ = ["EditRequest", "EditOutcome", "EditRunner", "HtmlSanitizer"]


def _passthrough(markup: str) -> str:
    return markup


# -----------------------------------------------------------------------------
# Request / outcome
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class EditRequest:
    """One edit the user (or the automation controller) asked for.

    Attributes:
        actions: Edit action keys such as ``polish`` or ``translate``.
        prompt: Free-form instructions; may be empty when actions are given.
        mode: How the result is applied.
        target: Column the user selected.
        trigger: Provenance recorded on previews and audit entries.
        auto_apply: Commit directly instead of queueing a preview.
        references: Other pages included as read-only context.
        skill_instructions: Text produced by the skill router.
        scope: Cancellation scope the run belongs to.
    """

    actions: tuple[str, ...] = ()
    prompt: str = ""
    mode: ApplyMode = "replace"
    target: str = "original"
    trigger: GoalTrigger = "manual_execute"
    auto_apply: bool = False
    references: Sequence[ReferenceDocument] = ()
    skill_instructions: str = ""
    scope: CancelScope = "foreground"

    @property
    def is_translation(self) -> bool:
        return "translate" in self.actions

    @property
    def is_translation_combo(self) -> bool:
        return self.is_translation and (any(key != "translate" for key in self.actions) or bool(self.prompt.strip()))

    @property
    def is_automatic(self) -> bool:
        return self.trigger.startswith("auto")


@dataclass(slots=True)
class EditOutcome:
    status: OperationStatus
    target: Target = "original"
    apply_result: ApplyResult | None = None
    preview: PreviewQueueItem | None = None
    partial: str = ""

    @property
    def ok(self) -> bool:
        return self.status.ok


# -----------------------------------------------------------------------------
# Runner
# -----------------------------------------------------------------------------


class EditRunner:
    """Executes :class:`EditRequest` objects against documents."""

    def __init__(
        self,
        generator: Generator,
        engine: EditApplicationEngine,
        queues: PreviewQueues,
        snapshots: SnapshotCollaborator,
        *,
        bus: EventBus | None = None,
        scopes: CancellationScopes | None = None,
        sanitize_html: HtmlSanitizer = _passthrough,
        clock: Callable[[], datetime] = utcnow,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._generator = generator
        self._engine = engine
        self._queues = queues
        self._snapshots = snapshots
        self._bus = bus
        self._scopes = scopes or CancellationScopes()
        self._sanitize = sanitize_html
        self._clock = clock
        self._today = today
        self._status = StatusReporter("edit", bus)
        self._last_aborted: tuple[Document, EditRequest] | None = None
        self._running: set[str] = set()

    @property
    def scopes(self) -> CancellationScopes:
        return self._scopes

    @property
    def can_retry(self) -> bool:
        return self._last_aborted is not None

    def is_running(self, scope: CancelScope = "foreground") -> bool:
        return scope in self._running

    def stop(self) -> bool:
        """Cancel the running foreground generation; background runs continue."""

        return self._scopes.stop("foreground", "stopped by user")

    async def retry_last(self) -> EditOutcome:
        """Re-run the last interrupted request exactly once."""

        if self._last_aborted is None:
            return EditOutcome(status=OperationStatus(level="idle", message="nothing to retry"))
        document, request = self._last_aborted
        self._last_aborted = None
        LOGGER.info("Retrying interrupted edit on %s", document.id)
        return await self.run(document, request)

    async def run(self, document: Document, request: EditRequest) -> EditOutcome:
        if not request.actions and not request.prompt.strip():
            return EditOutcome(status=self._status.report(document.id, "warning", "no action or prompt given"))

        target: Target = "translated" if request.is_translation else resolve_target(document, request.target)
        token = self._scopes.begin(request.scope)
        self._running.add(request.scope)
        self._status.report(document.id, "running", "generating", target=target, trigger=request.trigger)
        try:
            if request.is_translation_combo:
                return await self._run_translation_combo(document, request, token)
            if request.is_translation:
                return await self._run_translation_stream(document, request, token)
            if request.mode == "update_block":
                return await self._run_patch_request(document, request, target, token)
            return await self._run_streamed_edit(document, request, target, token)
        except GenerationAborted as exc:
            self._last_aborted = (document, request)
            return EditOutcome(
                status=self._status.report(document.id, "warning", "interrupted, retry available", reason=str(exc)),
                target=target,
                partial=exc.partial,
            )
        except GenerationFailed as exc:
            if request.is_automatic:
                status = self._status.report(document.id, "warning", "failed, retry manually", error=str(exc))
            else:
                status = self._status.report(document.id, "error", f"generation failed: {exc}", error=str(exc))
            return EditOutcome(status=status, target=target)
        finally:
            if self._scopes.current(request.scope) is token:
                self._running.discard(request.scope)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    async def _run_patch_request(
        self, document: Document, request: EditRequest, target: Target, token: CancellationToken
    ) -> EditOutcome:
        source = document.read(target)
        prompts = self._edit_prompts(document, request, target, source)
        raw = await self._generator.generate(prompts.system, prompts.user, cancel=token)

        patches = [
            replace(patch, content=self._clean(patch.content)) if patch.content else patch
            for patch in normalize_paragraph_patches(parse_ai_json_payload(raw))
        ]
        if not patches:
            LOGGER.debug("No usable patches in reply for %s, falling back to update block", document.id)
            return self._deliver(document, request, target, self._clean(raw), "update_block")

        preview = self._clean(raw)
        try:
            batch = apply_paragraph_patches(source, patches)
        except PatchParseError as exc:
            LOGGER.warning("Could not preview patches for %s: %s", document.id, exc)
        else:
            if batch.applied_ids:
                preview = batch.html
        return self._deliver(document, request, target, preview, "update_block", patches=patches)

    async def _run_streamed_edit(
        self, document: Document, request: EditRequest, target: Target, token: CancellationToken
    ) -> EditOutcome:
        source = document.read(target)
        prompts = self._edit_prompts(document, request, target, source)
        buffer: list[str] = []

        def on_chunk(text: str) -> None:
            buffer.append(text)
            self._publish_chunk(document, request, text)

        try:
            raw = await self._generator.generate(prompts.system, prompts.user, on_chunk=on_chunk, cancel=token)
        except GenerationAborted:
            LOGGER.debug("Discarding %d buffered chunks for %s", len(buffer), document.id)
            raise
        return self._deliver(document, request, target, self._clean(raw), request.mode)

    async def _run_translation_stream(
        self, document: Document, request: EditRequest, token: CancellationToken
    ) -> EditOutcome:
        source = document.content
        prompts = build_edit_prompts(
            request.actions,
            request.prompt,
            "replace",
            source,
            target="translated",
            has_dual_columns=document.has_dual_columns,
            is_translation=True,
            references=request.references,
            skill_instructions=request.skill_instructions,
            today=self._today(),
        )
        streamed: list[str] = []
        snapshot_taken = False

        def on_chunk(text: str) -> None:
            nonlocal snapshot_taken
            if not snapshot_taken:
                self._snapshots.snapshot(document, "auto" if request.is_automatic else "manual")
                snapshot_taken = True
            streamed.append(text)
            document.update(translated_content="".join(streamed))
            self._publish_chunk(document, request, text)

        try:
            raw = await self._generator.generate(prompts.system, prompts.user, on_chunk=on_chunk, cancel=token)
        except GenerationAborted as exc:
            # Streamed translation stays in the column.
            raise GenerationAborted(str(exc), partial="".join(streamed)) from exc

        final = self._clean(raw)
        if not snapshot_taken and final != (document.translated_content or ""):
            self._snapshots.snapshot(document, "auto" if request.is_automatic else "manual")
        changes: dict[str, object] = {"translated_content": final}
        if request.is_automatic:
            changes["goal_execution_log"] = self._log_with(document, request, "translation updated")
        document.update(**changes)
        return EditOutcome(
            status=self._status.report(document.id, "success", "translation updated", target="translated"),
            target="translated",
        )

    async def _run_translation_combo(
        self, document: Document, request: EditRequest, token: CancellationToken
    ) -> EditOutcome:
        prompts = build_translation_combo_prompts(
            request.actions,
            request.prompt,
            document.content,
            references=request.references,
            skill_instructions=request.skill_instructions,
            today=self._today(),
        )
        raw = await self._generator.generate(prompts.system, prompts.user, cancel=token)
        payload = parse_ai_json_payload(raw)
        if not isinstance(payload, dict):
            raise GenerationFailed("translation reply was not a JSON object")
        optimized = payload.get("optimizedContent")
        translated = payload.get("translatedContent")
        if not isinstance(optimized, str) or not isinstance(translated, str):
            raise GenerationFailed("translation reply is missing optimizedContent or translatedContent")

        changes: dict[str, object] = {
            "content": self._clean(optimized),
            "translated_content": self._clean(translated),
        }
        if all(getattr(document, name) == value for name, value in changes.items()):
            return EditOutcome(
                status=self._status.report(document.id, "success", "content already up to date"),
                target="translated",
            )
        self._snapshots.snapshot(document, "auto" if request.is_automatic else "manual")
        if request.is_automatic:
            changes["goal_execution_log"] = self._log_with(document, request, "optimized and translated")
        document.update(**changes)
        return EditOutcome(
            status=self._status.report(document.id, "success", "optimized and translated", target="translated"),
            target="translated",
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _deliver(
        self,
        document: Document,
        request: EditRequest,
        target: Target,
        content: str,
        mode: ApplyMode,
        *,
        patches: list[ParagraphPatch] | None = None,
    ) -> EditOutcome:
        labels = action_labels(request.actions)
        title = preview_title(request.prompt, labels, request.trigger)
        if request.auto_apply:
            result = self._engine.apply(
                document,
                content,
                mode,
                target,
                patches=patches,
                audit=AuditEntry(
                    trigger=request.trigger,
                    summary=f"{title} applied",
                    changed_sections=("content",),
                ),
            )
            level = "success" if result.outcome in ("applied", "unchanged") else "warning"
            message = "auto-applied" if result.applied else result.message
            return EditOutcome(
                status=self._status.report(document.id, level, message, outcome=result.outcome),
                target=target,
                apply_result=result,
            )

        if patches:
            title = with_patch_suffix(title, len(patches))
        item = PreviewQueueItem(
            title=title,
            content=content,
            mode=mode,
            target=target,
            trigger=request.trigger,
            patches=list(patches or []),
        )
        self._queues.for_document(document).enqueue(item)
        return EditOutcome(
            status=self._status.report(document.id, "success", "preview generated", item_id=item.id),
            target=target,
            preview=item,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _edit_prompts(self, document: Document, request: EditRequest, target: Target, source: str):
        return build_edit_prompts(
            request.actions,
            request.prompt,
            request.mode,
            source,
            target=target,
            has_dual_columns=document.has_dual_columns,
            references=request.references,
            skill_instructions=request.skill_instructions,
            today=self._today(),
        )

    def _clean(self, text: str) -> str:
        return self._sanitize(strip_code_fence(text or ""))

    def _log_with(self, document: Document, request: EditRequest, summary: str):
        entry = make_log_entry(
            AuditEntry(trigger=request.trigger, summary=summary, changed_sections=("content",)), at=self._clock()
        )
        return append_execution_log(document.goal_execution_log, entry)

    def _publish_chunk(self, document: Document, request: EditRequest, text: str) -> None:
        if self._bus is not None:
            self._bus.publish(GenerationChunk(document_id=document.id, scope=request.scope, text=text))
