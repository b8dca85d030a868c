"""Reusable skills the router can select."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

SkillScope = Literal["current_doc", "knowledge_base", "new_page"]
SkillOutput = Literal["plan", "rewrite", "translate"]
SkillCadence = Literal["manual", "auto"]
SkillRisk = Literal["low", "medium", "high"]

SKILL_SCOPES: tuple[str, ...] = ("current_doc", "knowledge_base", "new_page")
SKILL_OUTPUTS: tuple[str, ...] = ("plan", "rewrite", "translate")
SKILL_CADENCES: tuple[str, ...] = ("manual", "auto")
SKILL_RISKS: tuple[str, ...] = ("low", "medium", "high")

GOAL_BREAKDOWN_SKILL_ID = "goal_breakdown"

__all__ = [
    "Skill",
    "SkillScope",
    "SkillOutput",
    "SkillCadence",
    "SkillRisk",
    "DEFAULT_SKILLS",
    "GOAL_BREAKDOWN_SKILL_ID",
    "skill_from_mapping",
]


@dataclass(frozen=True, slots=True)
class Skill:
    """A named instruction template with routing metadata."""

    id: str
    name: str
    description: str
    prompt: str
    scope: SkillScope = "current_doc"
    output: SkillOutput = "plan"
    cadence: SkillCadence = "manual"
    risk: SkillRisk = "low"

    def profile(self) -> str:
        """Text used for lexical similarity scoring."""

        return "\n".join(
            (self.name, self.description, self.prompt, self.scope, self.output, self.cadence, self.risk)
        )

    def catalog_line(self) -> str:
        return (
            f"id={self.id}; name={self.name}; desc={self.description}; scope={self.scope}; "
            f"output={self.output}; cadence={self.cadence}; risk={self.risk}; prompt={self.prompt[:420]}"
        )


def skill_from_mapping(payload: Mapping[str, Any]) -> Skill:
    """Build a skill from stored data, falling back to defaults for unknown enum values."""

    def _enum(key: str, allowed: tuple[str, ...], default: str) -> Any:
        value = payload.get(key)
        return value if isinstance(value, str) and value in allowed else default

    skill_id = str(payload.get("id") or "").strip()
    name = str(payload.get("name") or "").strip()
    if not skill_id or not name:
        raise ValueError("Skill requires an id and a name")
    return Skill(
        id=skill_id,
        name=name,
        description=str(payload.get("description") or "").strip(),
        prompt=str(payload.get("prompt") or "").strip(),
        scope=_enum("scope", SKILL_SCOPES, "current_doc"),
        output=_enum("output", SKILL_OUTPUTS, "plan"),
        cadence=_enum("cadence", SKILL_CADENCES, "manual"),
        risk=_enum("risk", SKILL_RISKS, "low"),
    )


DEFAULT_SKILLS: tuple[Skill, ...] = (
    Skill(
        id=GOAL_BREAKDOWN_SKILL_ID,
        name="Goal breakdown",
        description="Break a goal into milestones and today's actions",
        prompt=(
            "Use the goal breakdown skill: restate the goal in one sentence, list 3-5 milestones with "
            "acceptance criteria, 5-8 tasks executable today ordered by priority, then key risks and mitigations."
        ),
        scope="current_doc",
        output="plan",
        cadence="manual",
        risk="low",
    ),
    Skill(
        id="risk_review",
        name="Risk review",
        description="Spot failure points early and propose corrections",
        prompt=(
            "Use the risk review skill: identify the key assumptions and failure points of the current plan, "
            "give trigger signals and the cheapest correction, and end with an executable next-step list."
        ),
        scope="current_doc",
        output="plan",
        cadence="auto",
        risk="medium",
    ),
    Skill(
        id="deep_research",
        name="Deep research",
        description="Search the web and write an in-depth report",
        prompt=(
            "Use the deep research skill: search the web for the topic, gather multiple viewpoints and data, "
            "then write a structured report with background, key data comparison, core viewpoints and conclusions."
        ),
        scope="new_page",
        output="plan",
        cadence="auto",
        risk="high",
    ),
)
