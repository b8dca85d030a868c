"""Select skills for a free-text request.

The model is asked first under a short timeout. When it times out, fails,
or returns nothing usable, a character-bigram similarity ranking decides.
Either way the goal breakdown skill is pruned unless the request shows a
real planning intent.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from ..services.settings import RoutingSettings
from .generation import CancellationToken, GenerationError, Generator
from .json_payload import parse_ai_json_payload
from .prompts import build_router_prompts
from .skills import DEFAULT_SKILLS, GOAL_BREAKDOWN_SKILL_ID, Skill

LOGGER = logging.getLogger(__name__)

_GRAM_STRIP_RE = re.compile(r"[^a-z0-9一-龥]+")
_COMPACT_RE = re.compile(r"[\s_-]+")
_GOAL_BREAKDOWN_NAME_RE = re.compile(r"目标拆解|goal\s*breakdown", re.IGNORECASE)
_QA_SIGNALS_RE = re.compile(r"是什么|为什么|多少|谁|哪里|何时|怎么回事|能不能|可以吗|吗\?|吗？|\?$|？$", re.IGNORECASE)
_QA_MAX_LENGTH = 56

PLANNING_CUES: tuple[str, ...] = (
    "目标拆解",
    "拆成步骤",
    "拆解",
    "里程碑",
    "行动项",
    "任务分解",
    "执行计划",
    "路线图",
    "roadmap",
    "breakdown",
    "plan",
    "next actions",
)
PLANNING_PROFILE = "目标拆解 里程碑 执行计划 roadmap 分阶段 行动清单 任务分解 优先级 next actions"
SEARCH_PROFILE = "联网搜索 web search latest current update 实时 调研 新闻 行情 价格"

_HINT_KEYS = (
    "selected_skill_ids",
    "selectedSkillIds",
    "selected_skills",
    "selectedSkills",
    "skill_ids",
    "skillIds",
    "skills",
)
_HINT_FIELDS = ("id", "name", "skill_id", "skillId", "skill_name", "skillName")
_SEARCH_KEYS = (
    "enable_web_search",
    "enableWebSearch",
    "auto_search",
    "autoSearch",
    "need_web_search",
    "needWebSearch",
)
_TRUE_WORDS = {"true", "yes", "y", "1", "on"}
_FALSE_WORDS = {"false", "no", "n", "0", "off"}
_RISK_ORDER = {"low": 0, "medium": 1, "high": 2}

__all__ = [
    "RoutingResult",
    "RoutingPreferences",
    "SkillRouter",
    "bigrams",
    "similarity",
    "rank_by_similarity",
    "prune_over_triggered",
    "should_enable_search",
    "resolve_skill_hints",
    "parse_boolean_like",
    "routing_preferences",
    "build_skill_instructions",
]


@dataclass(slots=True)
class RoutingResult:
    skills: list[Skill] = field(default_factory=list)
    auto_search: bool = False
    source: str = "none"


@dataclass(slots=True)
class RoutingPreferences:
    scope: str
    output: str
    cadence: str
    risk: str


# ----------------------------------------------------------------------
# Lexical similarity
# ----------------------------------------------------------------------


def bigrams(text: str) -> set[str]:
    normalized = _GRAM_STRIP_RE.sub("", (text or "").lower())
    if not normalized:
        return set()
    if len(normalized) == 1:
        return {normalized}
    return {normalized[index : index + 2] for index in range(len(normalized) - 1)}


def similarity(left: str, right: str) -> float:
    """Shared bigrams divided by the larger bigram set."""

    left_grams = bigrams(left)
    right_grams = bigrams(right)
    if not left_grams or not right_grams:
        return 0.0
    return len(left_grams & right_grams) / max(len(left_grams), len(right_grams))


def rank_by_similarity(
    text: str,
    catalog: Sequence[Skill],
    settings: RoutingSettings | None = None,
) -> list[Skill]:
    settings = settings or RoutingSettings()
    if not text.strip() or not catalog:
        return []
    ranked = sorted(
        ((similarity(text, skill.profile()), position, skill) for position, skill in enumerate(catalog)),
        key=lambda entry: (-entry[0], entry[1]),
    )
    top_score = ranked[0][0]
    if top_score < settings.absolute_floor:
        return []
    threshold = max(settings.absolute_floor, top_score * settings.relative_floor)
    return [skill for score, _, skill in ranked if score >= threshold][: settings.max_skills]


# ----------------------------------------------------------------------
# Planning post-filter and search intent
# ----------------------------------------------------------------------


def is_goal_breakdown(skill: Skill) -> bool:
    return skill.id == GOAL_BREAKDOWN_SKILL_ID or bool(_GOAL_BREAKDOWN_NAME_RE.search(f"{skill.id} {skill.name}"))


def has_planning_cue(text: str) -> bool:
    lowered = text.lower()
    return any(cue in lowered for cue in PLANNING_CUES)


def is_direct_question(text: str) -> bool:
    compact = re.sub(r"\s+", "", text)
    return len(compact) <= _QA_MAX_LENGTH and bool(_QA_SIGNALS_RE.search(compact))


def prune_over_triggered(
    text: str,
    skills: Sequence[Skill],
    settings: RoutingSettings | None = None,
) -> list[Skill]:
    """Drop the goal breakdown skill unless the request carries planning intent."""

    settings = settings or RoutingSettings()
    if not skills:
        return []
    if has_planning_cue(text):
        return list(skills)
    plan_score = similarity(text, PLANNING_PROFILE)
    question = is_direct_question(text)
    threshold = settings.planning_solo_threshold if len(skills) == 1 else settings.planning_shared_threshold
    keep_planner = plan_score >= threshold and not question
    return [skill for skill in skills if keep_planner or not is_goal_breakdown(skill)]


def should_enable_search(
    text: str,
    skills: Sequence[Skill],
    settings: RoutingSettings | None = None,
) -> bool:
    settings = settings or RoutingSettings()
    if similarity(text, SEARCH_PROFILE) >= settings.search_request_threshold:
        return True
    return any(
        similarity(f"{skill.name}\n{skill.description}\n{skill.prompt}", SEARCH_PROFILE)
        >= settings.search_skill_threshold
        for skill in skills
    )


# ----------------------------------------------------------------------
# Model reply parsing
# ----------------------------------------------------------------------


def _hint_value(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        for key in _HINT_FIELDS:
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
    return ""


def _hint_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [hint for hint in (_hint_value(item) for item in value) if hint]
    single = _hint_value(value)
    return [single] if single else []


def _compact(value: str) -> str:
    return _COMPACT_RE.sub("", value.strip().lower())


def resolve_skill_hints(hints: Iterable[str], catalog: Sequence[Skill]) -> list[Skill]:
    """Map model-provided ids or names onto catalog skills, preserving hint order."""

    selected: dict[str, Skill] = {}
    for hint in hints:
        normalized = hint.strip().lower()
        compact = _compact(hint)
        if not normalized:
            continue
        for skill in catalog:
            skill_id = skill.id.strip().lower()
            name = skill.name.strip().lower()
            if (
                normalized in (skill_id, name)
                or compact in (_compact(skill.id), _compact(skill.name))
                or normalized in skill_id
                or normalized in name
                or (skill_id and skill_id in normalized)
                or (name and name in normalized)
            ):
                selected.setdefault(skill.id, skill)
                break
    return list(selected.values())


def parse_boolean_like(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    if normalized in _TRUE_WORDS:
        return True
    if normalized in _FALSE_WORDS:
        return False
    return None


# ----------------------------------------------------------------------
# Router
# ----------------------------------------------------------------------


class SkillRouter:
    """Model-assisted skill selection with a deterministic fallback."""

    def __init__(self, generator: Generator | None, settings: RoutingSettings | None = None) -> None:
        self._generator = generator
        self._settings = settings or RoutingSettings()

    async def route(self, text: str, catalog: Sequence[Skill] = DEFAULT_SKILLS) -> RoutingResult:
        request = (text or "").strip()
        if not request or not catalog:
            return RoutingResult()

        routed = await self._route_with_model(request, catalog)
        if routed is not None:
            return routed

        skills = prune_over_triggered(request, rank_by_similarity(request, catalog, self._settings), self._settings)
        result = RoutingResult(
            skills=skills,
            auto_search=should_enable_search(request, skills, self._settings),
            source="similarity",
        )
        LOGGER.debug("Similarity routing picked %s (search=%s)", [s.id for s in skills], result.auto_search)
        return result

    async def _route_with_model(self, request: str, catalog: Sequence[Skill]) -> RoutingResult | None:
        if self._generator is None:
            return None
        prompts = build_router_prompts(request, [skill.catalog_line() for skill in catalog])
        token = CancellationToken()
        try:
            raw = await asyncio.wait_for(
                self._generator.generate(prompts.system, prompts.user, cancel=token),
                timeout=self._settings.timeout_seconds,
            )
        except asyncio.TimeoutError:
            token.cancel("routing timeout")
            LOGGER.debug("Skill routing timed out after %.1fs", self._settings.timeout_seconds)
            return None
        except GenerationError as exc:
            LOGGER.warning("Skill routing with model failed, using similarity fallback: %s", exc)
            return None

        payload = parse_ai_json_payload(raw or "")
        if not isinstance(payload, Mapping):
            return None
        hints = [hint for key in _HINT_KEYS for hint in _hint_list(payload.get(key))]
        skills = prune_over_triggered(
            request, resolve_skill_hints(hints, catalog)[: self._settings.max_skills], self._settings
        )
        model_search = next(
            (flag for flag in (parse_boolean_like(payload.get(key)) for key in _SEARCH_KEYS) if flag is not None),
            False,
        )
        auto_search = model_search or should_enable_search(request, skills, self._settings)
        if not skills and not model_search:
            return None
        LOGGER.debug("Model routing picked %s (search=%s)", [s.id for s in skills], auto_search)
        return RoutingResult(skills=skills, auto_search=auto_search, source="model")


def routing_preferences(skills: Sequence[Skill]) -> RoutingPreferences | None:
    """Workflow settings implied by the selected skills; the first skill is primary."""

    if not skills:
        return None
    primary = skills[0]
    return RoutingPreferences(
        scope=primary.scope,
        output=primary.output,
        cadence="auto" if any(skill.cadence == "auto" for skill in skills) else "manual",
        risk=max((skill.risk for skill in skills), key=_RISK_ORDER.__getitem__),
    )


def build_skill_instructions(skills: Sequence[Skill]) -> str:
    if not skills:
        return ""
    lines = ["ACTIVE SKILLS (follow them in order):"]
    lines.extend(f"[{skill.name}] {skill.prompt}" for skill in skills)
    return "\n".join(lines)
