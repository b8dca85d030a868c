"""Small HTML/text helpers shared across the pipeline."""

from __future__ import annotations

import html
import re

from bs4 import BeautifulSoup

__all__ = ["html_to_text", "normalize_whitespace", "escape_html", "strip_tags", "is_blank_html"]

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space and trim."""

    return _WHITESPACE_RE.sub(" ", text or "").strip()


def html_to_text(markup: str) -> str:
    """Plain text of ``markup`` with block boundaries kept as whitespace."""

    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    return normalize_whitespace(soup.get_text(" "))


def strip_tags(markup: str) -> str:
    if not markup:
        return ""
    return BeautifulSoup(markup, "html.parser").get_text().strip()


def escape_html(text: str) -> str:
    return html.escape(text or "", quote=True)


def is_blank_html(markup: str | None) -> bool:
    return not html_to_text(markup or "")
