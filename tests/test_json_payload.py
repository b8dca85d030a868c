"""Tests for tolerant JSON extraction from model replies."""

from __future__ import annotations

import pytest

from inkpilot.ai.json_payload import parse_ai_json_payload, strip_code_fence


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("```html\n<p>x</p>\n```", "<p>x</p>"),
        ("```\nplain\n```", "plain"),
        ("  <p>no fence</p>  ", "<p>no fence</p>"),
        ("", ""),
    ],
)
def test_strip_code_fence(text: str, expected: str) -> None:
    assert strip_code_fence(text) == expected


def test_plain_json() -> None:
    assert parse_ai_json_payload('{"a": 1}') == {"a": 1}


def test_fenced_json() -> None:
    assert parse_ai_json_payload('```json\n{"patches": []}\n```') == {"patches": []}


def test_json_embedded_in_prose() -> None:
    reply = 'Here is the plan:\n{"summary": "Ship it", "tasks": []}\nLet me know!'
    assert parse_ai_json_payload(reply) == {"summary": "Ship it", "tasks": []}


@pytest.mark.parametrize("reply", ["", "no braces at all", "{broken json", "} backwards {"])
def test_unparseable_replies(reply: str) -> None:
    assert parse_ai_json_payload(reply) is None
