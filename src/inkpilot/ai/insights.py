"""Automatic summary, tags and action items for a document."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Mapping

from ..editor.document_model import Document, utcnow
from ..events import EventBus
from ..services.scheduler import Scheduler, TimerKey
from ..services.settings import AutomationSettings
from ..status import OperationStatus, StatusReporter
from ..utils.html import strip_tags
from .generation import CancellationToken, GenerationAborted, GenerationFailed, Generator
from .json_payload import parse_ai_json_payload
from .prompts import build_insight_prompts

LOGGER = logging.getLogger(__name__)

INSIGHTS_CONCERN = "insights"
MAX_TAGS = 8
MAX_ACTIONS = 8

__all__ = ["InsightExtractor", "insight_signature", "INSIGHTS_CONCERN"]


def insight_signature(document_id: str, plain_text: str) -> str:
    return f"{document_id}:{len(plain_text)}:{plain_text[:100]}:{plain_text[-120:]}"


def _string_list(value: Any, limit: int) -> list[str]:
    if not isinstance(value, list):
        return []
    return [text for text in (str(item).strip() for item in value if item is not None) if text][:limit]


class InsightExtractor:
    """Extracts insights once per distinct document text."""

    def __init__(
        self,
        generator: Generator,
        *,
        scheduler: Scheduler | None = None,
        settings: AutomationSettings | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._generator = generator
        self._scheduler = scheduler
        self._settings = settings or AutomationSettings()
        self._clock = clock
        self._today = today
        self._status = StatusReporter("insights", bus)
        self._signatures: dict[str, str] = {}
        self._running: set[str] = set()
        self._tasks: dict[str, asyncio.Task] = {}

    def remember(self, document: Document) -> None:
        """Treat the current text as analysed when the document already has insights."""

        if document.auto_insights_updated_at is None:
            self._signatures.pop(document.id, None)
            return
        self._signatures[document.id] = insight_signature(document.id, strip_tags(document.content))

    async def run(
        self, document: Document, *, force: bool = False, cancel: CancellationToken | None = None
    ) -> OperationStatus:
        if document.id in self._running:
            return OperationStatus(level="idle", message="insights already running")
        plain_text = strip_tags(document.content)
        if len(plain_text) < self._settings.insight_min_chars:
            return OperationStatus(level="idle", message="document too short for insights")
        signature = insight_signature(document.id, plain_text)
        if not force and self._signatures.get(document.id) == signature:
            return OperationStatus(level="idle", message="insights up to date")

        prompts = build_insight_prompts(plain_text, today=self._today())
        self._running.add(document.id)
        self._status.report(document.id, "running", "analysing document")
        try:
            raw = await self._generator.generate(prompts.system, prompts.user, cancel=cancel)
        except GenerationAborted:
            return self._status.report(document.id, "warning", "insights interrupted")
        except GenerationFailed as exc:
            return self._status.report(document.id, "error", f"insight extraction failed: {exc}")
        finally:
            self._running.discard(document.id)

        payload = parse_ai_json_payload(raw or "")
        if not isinstance(payload, Mapping):
            return self._status.report(document.id, "error", "insight reply could not be parsed")
        summary = payload.get("summary")
        document.update(
            ai_summary=summary.strip() if isinstance(summary, str) else "",
            ai_tags=_string_list(payload.get("tags"), MAX_TAGS),
            ai_action_items=_string_list(payload.get("actions"), MAX_ACTIONS),
            auto_insights_updated_at=self._clock(),
        )
        self._signatures[document.id] = signature
        return self._status.report(
            document.id, "success", "insights updated", actions=len(document.ai_action_items)
        )

    def schedule(self, document: Document, *, enabled: bool = True) -> bool:
        """Re-arm the idle timer after a content change."""

        if self._scheduler is None:
            return False
        key = self._key(document.id)
        if not enabled or len(strip_tags(document.content)) < self._settings.insight_min_chars:
            self._scheduler.cancel(key)
            return False
        self._scheduler.schedule(key, self._settings.insight_idle_seconds, lambda: self._on_idle(document))
        return True

    def task_for(self, document_id: str) -> asyncio.Task | None:
        return self._tasks.get(document_id)

    def _on_idle(self, document: Document) -> None:
        loop = asyncio.get_running_loop()
        self._tasks[document.id] = loop.create_task(self.run(document))

    @staticmethod
    def _key(document_id: str) -> TimerKey:
        return (document_id, INSIGHTS_CONCERN)
