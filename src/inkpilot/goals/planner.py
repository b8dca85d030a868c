"""Goal planning service: generate, store, render and re-plan goal plans."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Callable

from ..ai.generation import CancellationScopes, GenerationAborted, GenerationFailed, Generator
from ..ai.json_payload import parse_ai_json_payload
from ..ai.prompts import build_planner_prompts
from ..editor.anchors import ParseError
from ..editor.document_model import Document, utcnow
from ..editor.snapshots import SnapshotCollaborator
from ..events import EventBus, GoalPlanUpdated
from ..services.scheduler import Scheduler, TimerKey
from ..services.settings import AutomationSettings
from ..status import OperationStatus, StatusReporter
from ..utils.html import strip_tags
from .plan import (
    MAX_NEXT_ACTIONS,
    AuditEntry,
    GoalPlan,
    GoalTrigger,
    PlanUnusableError,
    append_execution_log,
    make_log_entry,
    normalize_goal_plan,
)
from .render import merge_goal_plan, reconcile_goal_plan

LOGGER = logging.getLogger(__name__)

AUTO_REPLAN_CONCERN = "auto_replan"
DIFF_MAGNITUDE_CAP = 1000
PLAN_SECTIONS = ("summary", "milestones", "tasks", "nextActions", "risks")

__all__ = ["GoalPlanner", "estimate_diff_magnitude", "AUTO_REPLAN_CONCERN"]


def estimate_diff_magnitude(previous: str, current: str) -> int:
    """Length difference plus positional mismatches, stopping once the cap is hit."""

    if previous == current:
        return 0
    mismatch = abs(len(previous) - len(current))
    for left, right in zip(previous, current):
        if left != right:
            mismatch += 1
        if mismatch >= DIFF_MAGNITUDE_CAP:
            return mismatch
    return mismatch


def _plan_log_summary(trigger: GoalTrigger) -> str:
    if trigger == "init":
        return "initial goal plan"
    if trigger == "auto_replan":
        return "auto replan updated goal plan"
    return "goal plan updated"


class GoalPlanner:
    """Owns the goal plan lifecycle of documents.

    Plans are generated from a goal, stored on the document and only written
    into the page on :meth:`apply_to_page`. Checkbox edits made in the page
    flow back through :meth:`sync_checkboxes`.
    """

    def __init__(
        self,
        generator: Generator,
        snapshots: SnapshotCollaborator,
        *,
        scheduler: Scheduler | None = None,
        scopes: CancellationScopes | None = None,
        settings: AutomationSettings | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._generator = generator
        self._snapshots = snapshots
        self._scheduler = scheduler
        self._scopes = scopes or CancellationScopes()
        self._settings = settings or AutomationSettings()
        self._bus = bus
        self._clock = clock
        self._today = today
        self._status = StatusReporter("plan", bus)
        self._baselines: dict[str, str] = {}
        self._planning: set[str] = set()
        self._tasks: dict[str, asyncio.Task] = {}

    def is_planning(self, document_id: str) -> bool:
        return document_id in self._planning

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def plan(
        self,
        document: Document,
        goal: str | None = None,
        *,
        constraints: str = "",
        deadline: str = "",
        trigger: GoalTrigger = "init",
    ) -> OperationStatus:
        """Generate a plan for ``goal`` (or the stored goal) and store it on ``document``."""

        source = document.goal_source or {}
        goal_text = (goal or source.get("goal") or "").strip()
        if not goal_text:
            return self._status.report(document.id, "warning", "no goal to plan")
        constraints = constraints.strip() or source.get("constraints", "")
        deadline = deadline.strip() or source.get("deadline", "")
        plain_text = strip_tags(document.content)
        prompts = build_planner_prompts(goal_text, constraints, deadline, plain_text, today=self._today())

        token = self._scopes.begin("workflow")
        self._planning.add(document.id)
        self._status.report(document.id, "running", "planning", trigger=trigger)
        try:
            raw = await self._generator.generate(prompts.system, prompts.user, cancel=token)
            plan = normalize_goal_plan(parse_ai_json_payload(raw or ""))
            if plan is None:
                raise PlanUnusableError("plan reply could not be parsed, please retry")
        except GenerationAborted:
            return self._status.report(document.id, "warning", "planning interrupted, retry available")
        except (GenerationFailed, PlanUnusableError) as exc:
            return self._status.report(document.id, "error", str(exc) or "goal planning failed", trigger=trigger)
        finally:
            self._planning.discard(document.id)

        goal_source = {"goal": goal_text}
        if constraints:
            goal_source["constraints"] = constraints
        if deadline:
            goal_source["deadline"] = deadline
        now = self._clock()
        entry = make_log_entry(
            AuditEntry(trigger=trigger, summary=_plan_log_summary(trigger), changed_sections=PLAN_SECTIONS), at=now
        )
        document.update(
            goal_source=goal_source,
            goal_plan=plan,
            goal_plan_updated_at=now,
            ai_summary=plan.summary,
            ai_action_items=[item.title for item in plan.next_actions][:MAX_NEXT_ACTIONS],
            goal_execution_log=append_execution_log(document.goal_execution_log, entry),
        )
        self._baselines[document.id] = plain_text
        self._publish(document, trigger, PLAN_SECTIONS)
        return self._status.report(document.id, "success", entry.summary, tasks=len(plan.tasks))

    def apply_to_page(self, document: Document, plan: GoalPlan | None = None) -> OperationStatus:
        """Render the plan into the page, replacing an existing plan block."""

        plan = plan or document.goal_plan
        if plan is None:
            return self._status.report(document.id, "warning", "no plan to apply")
        try:
            content = merge_goal_plan(document.content, plan)
        except ParseError as exc:
            return self._status.report(document.id, "error", f"page markup could not be parsed: {exc}")

        sections = ("content", "tasks", "nextActions", "milestones")
        now = self._clock()
        self._snapshots.snapshot(document, "manual")
        entry = make_log_entry(
            AuditEntry(trigger="manual_replan", summary="applied goal plan to page", changed_sections=sections), at=now
        )
        document.update(
            content=content,
            goal_plan=plan,
            goal_plan_updated_at=now,
            ai_summary=plan.summary,
            ai_action_items=[item.title for item in plan.next_actions][:MAX_NEXT_ACTIONS],
            goal_execution_log=append_execution_log(document.goal_execution_log, entry),
        )
        self._publish(document, "manual_replan", sections)
        return self._status.report(document.id, "success", entry.summary)

    def sync_checkboxes(self, document: Document) -> OperationStatus:
        """Fold task checkbox, title and priority edits in the page back into the plan."""

        plan = document.goal_plan
        if plan is None or not plan.tasks:
            return OperationStatus(level="idle", message="no plan tasks")
        try:
            updated = reconcile_goal_plan(document.content, plan)
        except ParseError as exc:
            LOGGER.debug("Checkbox sync skipped for %s: %s", document.id, exc)
            return OperationStatus(level="idle", message="page markup could not be parsed")
        if updated is None:
            return OperationStatus(level="idle", message="plan already in sync")

        now = self._clock()
        entry = make_log_entry(
            AuditEntry(trigger="manual_replan", summary="synced page checkboxes to plan", changed_sections=("tasks",)),
            at=now,
        )
        document.update(
            goal_plan=updated,
            goal_plan_updated_at=now,
            goal_execution_log=append_execution_log(document.goal_execution_log, entry),
        )
        self._publish(document, "manual_replan", ("tasks",))
        return self._status.report(document.id, "success", entry.summary)

    # ------------------------------------------------------------------
    # Automatic re-planning
    # ------------------------------------------------------------------

    def should_auto_replan(self, document: Document, now: datetime | None = None) -> bool:
        if document.goal_plan is None or self.is_planning(document.id):
            return False
        now = now or self._clock()
        if document.goal_plan_updated_at is not None:
            elapsed = (now - document.goal_plan_updated_at).total_seconds()
            if elapsed < self._settings.replan_interval_seconds:
                return False
        baseline = self._baselines.get(document.id, "")
        magnitude = estimate_diff_magnitude(baseline, strip_tags(document.content))
        return magnitude >= self._settings.replan_min_diff

    def schedule_auto_replan(self, document: Document, *, enabled: bool = True, busy: bool = False) -> bool:
        """Arm the idle timer after a content change; returns whether it was armed."""

        if self._scheduler is None:
            return False
        key = self._key(document.id)
        if not enabled or busy or document.goal_plan is None or self.is_planning(document.id):
            self._scheduler.cancel(key)
            return False
        self._scheduler.schedule(key, self._settings.replan_idle_seconds, lambda: self._on_idle(document))
        return True

    def task_for(self, document_id: str) -> asyncio.Task | None:
        return self._tasks.get(document_id)

    def _on_idle(self, document: Document) -> None:
        if not self.should_auto_replan(document):
            LOGGER.debug("Auto replan for %s not needed", document.id)
            return
        LOGGER.info("Auto replanning %s", document.id)
        loop = asyncio.get_running_loop()
        self._tasks[document.id] = loop.create_task(self.plan(document, trigger="auto_replan"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _publish(self, document: Document, trigger: str, sections: tuple[str, ...]) -> None:
        if self._bus is not None:
            self._bus.publish(GoalPlanUpdated(document_id=document.id, trigger=trigger, changed_sections=sections))

    @staticmethod
    def _key(document_id: str) -> TimerKey:
        return (document_id, AUTO_REPLAN_CONCERN)
