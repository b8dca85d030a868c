"""Goal plan records, normalization of model output and the execution log."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Literal, Mapping

from ..editor.document_model import utcnow
from ..utils.html import normalize_whitespace

LOGGER = logging.getLogger(__name__)

GoalStatus = Literal["todo", "doing", "done", "blocked"]
TaskPriority = Literal["p0", "p1", "p2"]
RiskLevel = Literal["low", "medium", "high"]
GoalTrigger = Literal["init", "manual_execute", "auto_execute", "manual_replan", "auto_replan"]

GOAL_STATUSES: tuple[str, ...] = ("todo", "doing", "done", "blocked")
TASK_PRIORITIES: tuple[str, ...] = ("p0", "p1", "p2")
RISK_LEVELS: tuple[str, ...] = ("low", "medium", "high")
GOAL_TRIGGERS: tuple[str, ...] = ("init", "manual_execute", "auto_execute", "manual_replan", "auto_replan")

MAX_MILESTONES = 8
MAX_TASKS = 20
MAX_NEXT_ACTIONS = 3
MAX_RISKS = 6
MAX_EXECUTION_LOG = 20
DEFAULT_NEXT_ACTION_REASON = "Moves the goal forward"

__all__ = [
    "GoalStatus",
    "TaskPriority",
    "RiskLevel",
    "GoalTrigger",
    "GOAL_STATUSES",
    "TASK_PRIORITIES",
    "RISK_LEVELS",
    "GOAL_TRIGGERS",
    "Milestone",
    "GoalTask",
    "NextAction",
    "GoalRisk",
    "GoalPlan",
    "GoalExecutionLog",
    "AuditEntry",
    "PlanUnusableError",
    "normalize_goal_plan",
    "make_log_entry",
    "append_execution_log",
]


class PlanUnusableError(ValueError):
    """Raised when model output cannot be turned into a goal plan."""


@dataclass(slots=True)
class Milestone:
    id: str
    title: str
    due: str | None = None
    status: GoalStatus = "todo"


@dataclass(slots=True)
class GoalTask:
    id: str
    title: str
    priority: TaskPriority = "p1"
    milestone_id: str | None = None
    status: GoalStatus = "todo"
    owner: str | None = None


@dataclass(slots=True)
class NextAction:
    id: str
    title: str
    reason: str = DEFAULT_NEXT_ACTION_REASON


@dataclass(slots=True)
class GoalRisk:
    id: str
    title: str
    level: RiskLevel = "medium"
    mitigation: str | None = None


@dataclass(slots=True)
class GoalPlan:
    """A structured plan as stored on the document.

    A usable plan always has a summary and at least one task or next action.
    """

    summary: str
    milestones: list[Milestone] = field(default_factory=list)
    tasks: list[GoalTask] = field(default_factory=list)
    next_actions: list[NextAction] = field(default_factory=list)
    risks: list[GoalRisk] = field(default_factory=list)
    version: str = "v1"

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys the planner prompt asks for."""

        return {
            "version": self.version,
            "summary": self.summary,
            "milestones": [
                {"id": item.id, "title": item.title, "due": item.due, "status": item.status}
                for item in self.milestones
            ],
            "tasks": [
                {
                    "id": task.id,
                    "title": task.title,
                    "priority": task.priority,
                    "milestoneId": task.milestone_id,
                    "status": task.status,
                    "owner": task.owner,
                }
                for task in self.tasks
            ],
            "nextActions": [{"id": item.id, "title": item.title, "reason": item.reason} for item in self.next_actions],
            "risks": [
                {"id": item.id, "title": item.title, "level": item.level, "mitigation": item.mitigation}
                for item in self.risks
            ],
        }


@dataclass(slots=True)
class GoalExecutionLog:
    """Append-only audit record of a plan or edit run."""

    id: str
    at: datetime
    trigger: GoalTrigger
    summary: str
    changed_sections: tuple[str, ...] = ()


@dataclass(slots=True)
class AuditEntry:
    """What a caller wants recorded in the execution log alongside a write."""

    trigger: GoalTrigger
    summary: str
    changed_sections: tuple[str, ...] = ()


def normalize_goal_plan(raw: Any, *, now_ms: int | None = None) -> GoalPlan | None:
    """Clamp ``raw`` into a :class:`GoalPlan`.

    Items without a title are dropped individually; ``None`` is returned only
    when the plan as a whole is unusable.
    """

    if not isinstance(raw, Mapping):
        return None
    summary = _text(raw.get("summary"))
    if not summary:
        LOGGER.debug("Goal plan rejected: missing summary")
        return None
    stamp = int(time.time() * 1000) if now_ms is None else now_ms

    milestones = [
        Milestone(
            id=_text(item.get("id")) or f"ms-{stamp}-{index}",
            title=title,
            due=_text(item.get("due")) or None,
            status=_choice(item.get("status"), GOAL_STATUSES, "todo"),
        )
        for index, item, title in _titled(raw.get("milestones"))
    ][:MAX_MILESTONES]

    tasks = [
        GoalTask(
            id=_text(item.get("id")) or f"task-{stamp}-{index}",
            title=title,
            priority=_choice(item.get("priority"), TASK_PRIORITIES, "p1"),
            milestone_id=_text(_pick(item, "milestoneId", "milestone_id")) or None,
            status=_choice(item.get("status"), GOAL_STATUSES, "todo"),
            owner="me" if _text(item.get("owner")).lower() == "me" else None,
        )
        for index, item, title in _titled(raw.get("tasks"))
    ][:MAX_TASKS]

    next_actions = [
        NextAction(
            id=_text(item.get("id")) or f"next-{stamp}-{index}",
            title=title,
            reason=_text(item.get("reason")) or DEFAULT_NEXT_ACTION_REASON,
        )
        for index, item, title in _titled(_pick(raw, "nextActions", "next_actions"))
    ][:MAX_NEXT_ACTIONS]

    risks = [
        GoalRisk(
            id=_text(item.get("id")) or f"risk-{stamp}-{index}",
            title=title,
            level=_choice(item.get("level"), RISK_LEVELS, "medium"),
            mitigation=_text(item.get("mitigation")) or None,
        )
        for index, item, title in _titled(raw.get("risks"))
    ][:MAX_RISKS]

    if not tasks and not next_actions:
        LOGGER.debug("Goal plan rejected: no tasks and no next actions")
        return None
    return GoalPlan(summary=summary, milestones=milestones, tasks=tasks, next_actions=next_actions, risks=risks)


def make_log_entry(audit: AuditEntry, *, at: datetime | None = None) -> GoalExecutionLog:
    stamp = at or utcnow()
    return GoalExecutionLog(
        id=f"goal-log-{int(stamp.timestamp() * 1000)}",
        at=stamp,
        trigger=audit.trigger,
        summary=audit.summary,
        changed_sections=tuple(audit.changed_sections),
    )


def append_execution_log(
    log: Iterable[GoalExecutionLog], entry: GoalExecutionLog
) -> list[GoalExecutionLog]:
    """Return a new log with ``entry`` appended, keeping the newest entries."""

    entries = [*log, entry]
    return entries[-MAX_EXECUTION_LOG:]


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return normalize_whitespace(str(value))


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> Any:
    candidate = _text(value).lower()
    return candidate if candidate in allowed else default


def _pick(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in source:
            return source[key]
    return None


def _titled(items: Any):
    if not isinstance(items, list):
        return
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            continue
        title = _text(item.get("title"))
        if title:
            yield index, item, title
