"""Per-document automation strategy and its normalization."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal, Mapping

from ..editor.document_model import Document, Target

ExecutionMode = Literal["preview", "auto_apply"]
TargetPreference = Literal["original", "translated", "follow_selector"]
RiskTolerance = Literal["low", "medium", "high"]

DEFAULT_IDLE_MS = 65_000
MIN_IDLE_MS = 20_000
MAX_IDLE_MS = 120_000
DEFAULT_MAX_ITEMS = 3
MIN_MAX_ITEMS = 1
MAX_MAX_ITEMS = 5

_TARGET_PREFERENCES = ("original", "translated", "follow_selector")
_RISK_TOLERANCES = ("low", "medium", "high")

__all__ = [
    "AutomationStrategy",
    "ExecutionMode",
    "TargetPreference",
    "RiskTolerance",
    "normalize_automation_strategy",
    "resolve_automation_target",
]


@dataclass(frozen=True, slots=True)
class AutomationStrategy:
    """How unattended runs behave for one document."""

    execution_mode: ExecutionMode = "preview"
    target_preference: TargetPreference = "follow_selector"
    risk_tolerance: RiskTolerance = "medium"
    idle_ms: int = DEFAULT_IDLE_MS
    max_items: int = DEFAULT_MAX_ITEMS

    @property
    def auto_apply(self) -> bool:
        return self.execution_mode == "auto_apply"

    @property
    def idle_seconds(self) -> float:
        return self.idle_ms / 1000.0


def normalize_automation_strategy(raw: Any, *, has_dual_columns: bool) -> AutomationStrategy:
    """Coerce stored or user-supplied values into a valid strategy.

    Accepts an existing :class:`AutomationStrategy`, a mapping with snake or
    camel case keys, or ``None``. Invalid values fall back to defaults and
    numbers are clamped into range.
    """

    if isinstance(raw, AutomationStrategy):
        source: Mapping[str, Any] = {
            "execution_mode": raw.execution_mode,
            "target_preference": raw.target_preference,
            "risk_tolerance": raw.risk_tolerance,
            "idle_ms": raw.idle_ms,
            "max_items": raw.max_items,
        }
    elif isinstance(raw, Mapping):
        source = raw
    else:
        source = {}

    execution_mode = "auto_apply" if _pick(source, "execution_mode", "executionMode") == "auto_apply" else "preview"

    preference = _pick(source, "target_preference", "targetPreference")
    if preference not in _TARGET_PREFERENCES:
        preference = "follow_selector"
    if preference == "translated" and not has_dual_columns:
        preference = "follow_selector"

    tolerance = _pick(source, "risk_tolerance", "riskTolerance")
    if tolerance not in _RISK_TOLERANCES:
        tolerance = "medium"

    return AutomationStrategy(
        execution_mode=execution_mode,
        target_preference=preference,
        risk_tolerance=tolerance,
        idle_ms=_clamp_number(_pick(source, "idle_ms", "idleMs"), DEFAULT_IDLE_MS, MIN_IDLE_MS, MAX_IDLE_MS),
        max_items=_clamp_number(
            _pick(source, "max_items", "maxItems"), DEFAULT_MAX_ITEMS, MIN_MAX_ITEMS, MAX_MAX_ITEMS
        ),
    )


def resolve_automation_target(
    strategy: AutomationStrategy, document: Document, selected_target: str | None
) -> Target:
    if not document.has_dual_columns:
        return "original"
    if strategy.target_preference == "translated":
        return "translated"
    if strategy.target_preference == "original":
        return "original"
    return "translated" if selected_target == "translated" else "original"


def _pick(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in source:
            return source[key]
    return None


def _clamp_number(value: Any, default: int, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return int(min(high, max(low, round(value))))
