"""Render a goal plan into page HTML and read checkbox edits back out of it."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

from bs4 import BeautifulSoup, Tag

from ..editor.anchors import parse_html
from ..utils.html import escape_html, normalize_whitespace
from .plan import GoalPlan

LOGGER = logging.getLogger(__name__)

PLAN_ATTRIBUTE = "data-goal-plan"
PLAN_VERSION = "v1"
SPACER = "<p></p>"

_TASK_HEADINGS = {"tasks", "task list", "任务清单"}
_PRIORITY_PREFIX_RE = re.compile(r"^\[(p[0-2])\]\s*", re.IGNORECASE)
_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")

__all__ = [
    "PLAN_ATTRIBUTE",
    "ParsedTask",
    "render_goal_plan",
    "merge_goal_plan",
    "parse_goal_tasks",
    "reconcile_goal_plan",
]


@dataclass(slots=True)
class ParsedTask:
    """A task row as currently shown in the page."""

    checked: bool
    title: str
    priority: str | None = None


def render_goal_plan(plan: GoalPlan) -> str:
    """Deterministic HTML for ``plan``, independent of any page content."""

    sections = [
        '<section data-goal-section="summary">'
        f"<h2>Goal plan</h2><p>{escape_html(plan.summary)}</p>"
        "</section>"
    ]
    if plan.milestones:
        rows = "".join(
            f"<li><strong>{escape_html(item.title)}</strong>"
            f"{f' ({escape_html(item.due)})' if item.due else ''} - {item.status}</li>"
            for item in plan.milestones
        )
        sections.append(f'<section data-goal-section="milestones"><h3>Milestones</h3><ul>{rows}</ul></section>')
    if plan.tasks:
        rows = "".join(_render_task(index, task) for index, task in enumerate(plan.tasks))
        sections.append(
            '<section data-goal-section="tasks"><h3>Tasks</h3>'
            f'<ul data-type="taskList">{rows}</ul></section>'
        )
    if plan.next_actions:
        rows = "".join(
            f"<li><strong>{escape_html(item.title)}</strong> - {escape_html(item.reason)}</li>"
            for item in plan.next_actions
        )
        sections.append(f'<section data-goal-section="next-actions"><h3>Next actions</h3><ol>{rows}</ol></section>')
    if plan.risks:
        rows = "".join(
            f"<li>[{item.level.upper()}] {escape_html(item.title)}"
            f"{f' - {escape_html(item.mitigation)}' if item.mitigation else ''}</li>"
            for item in plan.risks
        )
        sections.append(f'<section data-goal-section="risks"><h3>Risks</h3><ul>{rows}</ul></section>')

    markup = f'<div class="goal-plan-block" {PLAN_ATTRIBUTE}="{PLAN_VERSION}">{"".join(sections)}</div>'
    # Serialize through the parser so merged pages are a fixed point.
    return str(BeautifulSoup(markup, "html.parser"))


def merge_goal_plan(existing_html: str, plan: GoalPlan) -> str:
    """Place the rendered plan into ``existing_html``.

    An existing plan container is replaced in place; otherwise the plan is
    inserted at the very start followed by an empty spacer paragraph.
    """

    rendered = render_goal_plan(plan)
    if not (existing_html or "").strip():
        return rendered + SPACER

    soup = parse_html(existing_html)
    container = _rendered_container(rendered)
    current = _find_container(soup)
    if current is not None:
        current.replace_with(container)
        LOGGER.debug("Goal plan replaced in place")
    else:
        soup.insert(0, container)
        container.insert_after(BeautifulSoup(SPACER, "html.parser").p)
        LOGGER.debug("Goal plan inserted at top of page")
    return str(soup)


def parse_goal_tasks(existing_html: str) -> list[ParsedTask]:
    """Read task rows from the plan's task list, in page order."""

    if not (existing_html or "").strip():
        return []
    soup = parse_html(existing_html)
    task_list = _find_task_list(soup)
    if task_list is None:
        return []
    parsed: list[ParsedTask] = []
    for item in task_list.find_all("li", recursive=False):
        text = normalize_whitespace(item.get_text(" "))
        priority = None
        match = _PRIORITY_PREFIX_RE.match(text)
        if match:
            priority = match.group(1).lower()
            text = text[match.end() :].strip()
        if not text:
            continue
        parsed.append(ParsedTask(checked=_is_checked(item), title=text, priority=priority))
    return parsed


def reconcile_goal_plan(existing_html: str, plan: GoalPlan) -> GoalPlan | None:
    """Fold checkbox, title and priority edits back into ``plan``.

    Tasks are matched by position. Returns ``None`` when nothing changed.
    """

    parsed = parse_goal_tasks(existing_html)
    count = min(len(parsed), len(plan.tasks))
    if count == 0:
        return None

    tasks = list(plan.tasks)
    changed = False
    for index in range(count):
        row = parsed[index]
        task = tasks[index]
        if row.checked:
            status = "done"
        elif task.status in ("doing", "blocked"):
            status = task.status
        else:
            status = "todo"
        updated = replace(
            task,
            status=status,
            title=row.title or task.title,
            priority=row.priority or task.priority,
        )
        if updated != task:
            tasks[index] = updated
            changed = True
    if not changed:
        return None
    return replace(plan, tasks=tasks)


def _render_task(index: int, task) -> str:
    done = task.status == "done"
    checkbox = '<input type="checkbox" checked="checked"/>' if done else '<input type="checkbox"/>'
    return (
        f'<li data-type="taskItem" data-checked="{"true" if done else "false"}" '
        f'data-goal-task-index="{index}" data-goal-task-id="{escape_html(task.id)}">'
        f"<label>{checkbox}<span></span></label>"
        f"<div><p>[{task.priority.upper()}] {escape_html(task.title)}</p></div></li>"
    )


def _rendered_container(rendered: str) -> Tag:
    return BeautifulSoup(rendered, "html.parser").find(attrs={PLAN_ATTRIBUTE: True})


def _find_container(soup: BeautifulSoup) -> Tag | None:
    return soup.find(attrs={PLAN_ATTRIBUTE: True})


def _find_task_list(soup: BeautifulSoup) -> Tag | None:
    container = _find_container(soup)
    if container is not None:
        task_list = container.find("ul", attrs={"data-type": "taskList"})
        if task_list is not None:
            return task_list
    for heading in soup.find_all(_HEADING_TAGS):
        if normalize_whitespace(heading.get_text()).lower() in _TASK_HEADINGS:
            task_list = heading.find_next("ul", attrs={"data-type": "taskList"})
            if task_list is not None:
                return task_list
    return None


def _is_checked(item: Tag) -> bool:
    flag = item.get("data-checked")
    if flag is not None:
        return str(flag).lower() == "true"
    checkbox = item.find("input", attrs={"type": "checkbox"})
    return checkbox is not None and checkbox.has_attr("checked")
