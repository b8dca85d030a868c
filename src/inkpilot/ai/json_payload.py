"""Tolerant extraction of JSON objects and HTML from model replies."""

from __future__ import annotations

import json
import re
from typing import Any

__all__ = ["parse_ai_json_payload", "strip_code_fence"]

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(?P<body>.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence such as ```html or ```json."""

    if not text:
        return ""
    match = _FENCE_RE.match(text)
    return (match.group("body") if match else text).strip()


def parse_ai_json_payload(text: str) -> Any | None:
    """Parse the first JSON object in ``text``; ``None`` when there is none."""

    body = strip_code_fence(text)
    if not body:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        pass
    start = body.find("{")
    end = body.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(body[start : end + 1])
    except json.JSONDecodeError:
        return None
