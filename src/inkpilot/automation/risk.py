"""Keyword classification and risk scoring of pending action items."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal, Sequence

from ..services.settings import RiskSettings

LOGGER = logging.getLogger(__name__)

RiskLevel = Literal["low", "medium", "high"]
RISK_ORDINALS: dict[str, int] = {"low": 1, "medium": 2, "high": 3}

DESTRUCTIVE_RE = re.compile(r"(删除|清空|覆盖|重写整篇|彻底替换|drop|delete|erase|overwrite|wipe)", re.IGNORECASE)
HEAVY_REWRITE_ACTIONS = frozenset({"write", "template", "organize", "format"})

_ACTION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (key, re.compile(pattern))
    for key, pattern in (
        ("write", r"写作|续写|扩写|draft|write"),
        ("polish", r"润色|优化表达|polish|refine"),
        ("template", r"模板|template"),
        ("summarize", r"总结|摘要|summary|summarize"),
        ("format", r"格式|排版|format"),
        ("paragraphs", r"段落|paragraph"),
        ("organize", r"逻辑|结构|organize|restructure"),
        ("grammar", r"语法|错别字|grammar|spelling"),
        ("translate", r"翻译|translate"),
        ("generate_table", r"表格|table"),
        ("generate_schedule", r"日程|时间线|计划表|schedule|timeline"),
        ("tone_pro", r"专业|正式|professional"),
        ("tone_casual", r"友好|口语|casual|friendly"),
        ("explain", r"解释|说明|explain|code"),
        ("action_items", r"待办|任务|action item|todo"),
    )
)

__all__ = [
    "RiskAssessment",
    "RiskLevel",
    "RISK_ORDINALS",
    "assess_batch",
    "classify_action_item",
    "exceeds_tolerance",
    "risk_bucket",
]


@dataclass(slots=True)
class RiskAssessment:
    level: RiskLevel
    score: int
    mapped_actions: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)


def classify_action_item(item: str) -> list[str]:
    """Edit actions an action-item string maps to, in catalog order."""

    lowered = (item or "").lower()
    return [key for key, pattern in _ACTION_PATTERNS if pattern.search(lowered)]


def risk_bucket(score: int, settings: RiskSettings | None = None) -> RiskLevel:
    settings = settings or RiskSettings()
    if score >= settings.high_threshold:
        return "high"
    if score >= settings.medium_threshold:
        return "medium"
    return "low"


def assess_batch(items: Sequence[str], settings: RiskSettings | None = None) -> RiskAssessment:
    """Score the batch; adding an item can never lower the level."""

    settings = settings or RiskSettings()
    score = 0
    mapped: list[str] = []
    reasons: list[str] = []
    for item in items:
        actions = classify_action_item(item)
        if DESTRUCTIVE_RE.search(item or ""):
            score += settings.destructive_weight
            reasons.append(f"destructive wording: {item}")
        if not actions:
            score += settings.unmapped_weight
            reasons.append(f"unrecognized action: {item}")
        if "translate" in actions:
            score += settings.translate_weight
            reasons.append(f"translation: {item}")
        if HEAVY_REWRITE_ACTIONS.intersection(actions):
            score += settings.heavy_rewrite_weight
            reasons.append(f"heavy rewrite: {item}")
        for action in actions:
            if action not in mapped:
                mapped.append(action)
    level = risk_bucket(score, settings)
    LOGGER.debug("Risk assessment for %d items: score=%d level=%s actions=%s", len(items), score, level, mapped)
    return RiskAssessment(level=level, score=score, mapped_actions=mapped, reasons=reasons)


def exceeds_tolerance(level: str, tolerance: str) -> bool:
    return RISK_ORDINALS[level] > RISK_ORDINALS.get(tolerance, RISK_ORDINALS["medium"])
