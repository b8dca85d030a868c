"""Risk-gated automation of pending insight action items.

The controller is a per-document state machine driven through
:meth:`AutomationController.dispatch`:

* :class:`AutomationInput` arms (or re-arms) the idle timer when the input
  qualifies, otherwise cancels it.
* :class:`IdleElapsed` is posted by the timer and starts :meth:`run_pending`.
* :class:`AutomationStopped` cancels the timer and any running automatic
  generation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal

from ..ai.edit_runner import EditRequest, EditRunner
from ..ai.prompts import build_automation_prompt
from ..editor.apply import ApplyMode
from ..editor.document_model import Document, hash_text
from ..events import EventBus
from ..services.scheduler import Scheduler, TimerKey
from ..services.settings import AutomationSettings, RiskSettings, Settings
from ..status import StatusReporter
from .risk import RiskAssessment, assess_batch, exceeds_tolerance
from .strategy import AutomationStrategy, normalize_automation_strategy, resolve_automation_target

LOGGER = logging.getLogger(__name__)

AUTO_EXECUTE_CONCERN = "auto_execute"

AutomationDecision = Literal["skipped", "rejected", "executed", "failed"]

__all__ = [
    "AUTO_EXECUTE_CONCERN",
    "AutomationController",
    "AutomationDecision",
    "AutomationInput",
    "AutomationOutcome",
    "AutomationStopped",
    "IdleElapsed",
    "automation_signature",
    "pending_action_items",
]


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class AutomationInput:
    """Snapshot of everything that decides whether automation may arm."""

    document: Document
    enabled: bool = True
    foreground_busy: bool = False
    manual_selection: bool = False
    preview_pending: bool = False
    selected_target: str = "original"
    selected_mode: ApplyMode = "replace"


@dataclass(slots=True)
class IdleElapsed:
    document_id: str


@dataclass(slots=True)
class AutomationStopped:
    document_id: str


@dataclass(slots=True)
class AutomationOutcome:
    decision: AutomationDecision
    message: str = ""
    risk: RiskAssessment | None = None


@dataclass(slots=True)
class _DocumentState:
    last_signature: str | None = None
    last_run_at: float | None = None
    armed_signature: str | None = None
    pending: AutomationInput | None = None
    in_flight: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)


# -----------------------------------------------------------------------------
# Signature helpers
# -----------------------------------------------------------------------------


def pending_action_items(document: Document, limit: int) -> list[str]:
    items = [item.strip() for item in document.ai_action_items if isinstance(item, str) and item.strip()]
    return items[:limit]


def automation_signature(document: Document, strategy: AutomationStrategy) -> str:
    """Fingerprint of the automation-relevant state of ``document``."""

    def _stamp(value: datetime | None) -> str:
        return value.isoformat() if value is not None else ""

    parts = [
        document.id,
        _stamp(document.auto_insights_updated_at),
        _stamp(document.goal_plan_updated_at),
        strategy.execution_mode,
        strategy.target_preference,
        strategy.risk_tolerance,
        str(strategy.max_items),
        *pending_action_items(document, strategy.max_items),
    ]
    return hash_text("\x1f".join(parts))


# -----------------------------------------------------------------------------
# Controller
# -----------------------------------------------------------------------------


class AutomationController:
    """Debounced, cooldown-limited and risk-gated automatic execution."""

    def __init__(
        self,
        runner: EditRunner,
        scheduler: Scheduler,
        *,
        settings: AutomationSettings | None = None,
        risk_settings: RiskSettings | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ) -> None:
        self._runner = runner
        self._enabled = enabled
        self._scheduler = scheduler
        self._settings = settings or AutomationSettings()
        self._risk_settings = risk_settings or RiskSettings()
        self._clock = clock
        self._status = StatusReporter("automation", bus)
        self._states: dict[str, _DocumentState] = {}

    @classmethod
    def from_settings(
        cls,
        runner: EditRunner,
        scheduler: Scheduler,
        settings: Settings,
        *,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "AutomationController":
        return cls(
            runner,
            scheduler,
            settings=settings.automation,
            risk_settings=settings.risk,
            bus=bus,
            clock=clock,
            enabled=settings.ai_automation,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Switch automation on or off; switching off disarms every pending timer."""

        self._enabled = enabled
        if enabled:
            return
        for document_id, state in self._states.items():
            self._scheduler.cancel(self._key(document_id))
            state.pending = None
            state.armed_signature = None
        LOGGER.info("Automation disabled")

    def dispatch(self, event: AutomationInput | IdleElapsed | AutomationStopped) -> asyncio.Task | None:
        if isinstance(event, AutomationInput):
            self._on_input(event)
            return None
        if isinstance(event, IdleElapsed):
            return self._on_idle(event.document_id)
        if isinstance(event, AutomationStopped):
            self._on_stopped(event.document_id)
            return None
        raise TypeError(f"Unsupported automation event: {type(event).__name__}")

    def last_signature(self, document_id: str) -> str | None:
        state = self._states.get(document_id)
        return state.last_signature if state else None

    def is_armed(self, document_id: str) -> bool:
        return self._scheduler.pending(self._key(document_id))

    def task_for(self, document_id: str) -> asyncio.Task | None:
        state = self._states.get(document_id)
        return state.task if state else None

    async def run_pending(self, document_id: str) -> AutomationOutcome:
        """Score, gate and execute the last armed input for ``document_id``."""

        state = self._state(document_id)
        snapshot = state.pending
        if snapshot is None:
            return AutomationOutcome("skipped", "nothing pending")
        if state.in_flight:
            return AutomationOutcome("skipped", "automation already running")
        if self._runner.is_running("foreground"):
            return AutomationOutcome("skipped", "foreground generation running")
        if self._in_cooldown(state):
            return AutomationOutcome("skipped", "cooldown active")

        document = snapshot.document
        strategy = normalize_automation_strategy(
            document.automation_strategy, has_dual_columns=document.has_dual_columns
        )
        items = pending_action_items(document, strategy.max_items)
        if not items:
            return AutomationOutcome("skipped", "no pending action items")
        signature = automation_signature(document, strategy)
        if signature == state.last_signature:
            return AutomationOutcome("skipped", "already processed")

        state.pending = None
        state.armed_signature = None
        risk = assess_batch(items, self._risk_settings)
        rejection = self._rejection_reason(risk, strategy)
        if rejection:
            self._mark_processed(state, signature)
            self._status.report(
                document_id, "warning", f"automation rejected: {rejection}", risk=risk.level, reasons=risk.reasons
            )
            return AutomationOutcome("rejected", rejection, risk)

        request = EditRequest(
            actions=tuple(risk.mapped_actions),
            prompt=build_automation_prompt(items, auto_apply=strategy.auto_apply),
            mode=snapshot.selected_mode,
            target=resolve_automation_target(strategy, document, snapshot.selected_target),
            trigger="auto_execute",
            auto_apply=strategy.auto_apply,
            scope="automation",
        )
        LOGGER.info(
            "Automation executing %d items on %s (risk=%s, auto_apply=%s)",
            len(items),
            document_id,
            risk.level,
            strategy.auto_apply,
        )
        state.in_flight = True
        try:
            outcome = await self._runner.run(document, request)
        finally:
            state.in_flight = False
            self._mark_processed(state, signature)

        if not outcome.ok:
            message = "auto-execution failed, snapshot kept, retry manually"
            self._status.report(document_id, "warning", message, detail=outcome.status.message)
            return AutomationOutcome("failed", message, risk)
        message = "auto-applied" if strategy.auto_apply else "preview generated, awaiting confirmation"
        self._status.report(document_id, "success", message, risk=risk.level)
        return AutomationOutcome("executed", message, risk)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_input(self, event: AutomationInput) -> None:
        document = event.document
        state = self._state(document.id)
        key = self._key(document.id)
        reason = self._blocking_reason(event, state)
        if reason is not None:
            if self._scheduler.cancel(key):
                LOGGER.debug("Automation timer for %s cancelled: %s", document.id, reason)
            state.armed_signature = None
            state.pending = None
            return

        strategy = normalize_automation_strategy(
            document.automation_strategy, has_dual_columns=document.has_dual_columns
        )
        signature = automation_signature(document, strategy)
        if signature == state.last_signature:
            self._scheduler.cancel(key)
            state.armed_signature = None
            state.pending = None
            return
        state.pending = event
        if signature == state.armed_signature and self._scheduler.pending(key):
            return
        state.armed_signature = signature
        self._scheduler.schedule(key, strategy.idle_seconds, lambda: self.dispatch(IdleElapsed(document.id)))
        LOGGER.debug("Automation armed for %s in %.0fs", document.id, strategy.idle_seconds)

    def _on_idle(self, document_id: str) -> asyncio.Task | None:
        state = self._state(document_id)
        if state.pending is None or self._in_cooldown(state):
            LOGGER.debug("Idle elapsed for %s but nothing runnable", document_id)
            return None
        loop = asyncio.get_running_loop()
        state.task = loop.create_task(self.run_pending(document_id))
        return state.task

    def _on_stopped(self, document_id: str) -> None:
        state = self._state(document_id)
        self._scheduler.cancel(self._key(document_id))
        state.pending = None
        state.armed_signature = None
        if state.in_flight:
            self._runner.scopes.stop("automation", "automation stopped")
        LOGGER.debug("Automation stopped for %s", document_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _blocking_reason(self, event: AutomationInput, state: _DocumentState) -> str | None:
        if not (self._enabled and event.enabled):
            return "automation disabled"
        if event.foreground_busy or self._runner.is_running("foreground"):
            return "foreground generation running"
        if event.manual_selection:
            return "manual selection pending"
        if event.preview_pending:
            return "preview awaiting review"
        if state.in_flight:
            return "automation already running"
        if self._in_cooldown(state):
            return "cooldown active"
        strategy = normalize_automation_strategy(
            event.document.automation_strategy, has_dual_columns=event.document.has_dual_columns
        )
        if not pending_action_items(event.document, strategy.max_items):
            return "no pending action items"
        return None

    def _rejection_reason(self, risk: RiskAssessment, strategy: AutomationStrategy) -> str:
        if not risk.mapped_actions:
            return "no recognized action"
        if exceeds_tolerance(risk.level, strategy.risk_tolerance):
            return f"risk {risk.level} exceeds tolerance {strategy.risk_tolerance}"
        return ""

    def _in_cooldown(self, state: _DocumentState) -> bool:
        if state.last_run_at is None:
            return False
        return self._clock() - state.last_run_at < self._settings.cooldown_seconds

    def _mark_processed(self, state: _DocumentState, signature: str) -> None:
        state.last_signature = signature
        state.last_run_at = self._clock()

    def _state(self, document_id: str) -> _DocumentState:
        state = self._states.get(document_id)
        if state is None:
            state = _DocumentState()
            self._states[document_id] = state
        return state

    @staticmethod
    def _key(document_id: str) -> TimerKey:
        return (document_id, AUTO_EXECUTE_CONCERN)
