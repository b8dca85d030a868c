"""Locate block-level elements by a drift-tolerant text snippet.

A document is viewed as an ordered list of :class:`Block` entries, one per
block element in document order. Anchor lookup is a scan over that list;
callers re-index after every mutation so later lookups see earlier edits.
"""

from __future__ import annotations

from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Sequence

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from ..utils.html import normalize_whitespace

__all__ = [
    "BLOCK_TAGS",
    "Block",
    "ParseError",
    "parse_html",
    "index_blocks",
    "find_block",
    "normalize_patch_text",
]

BLOCK_TAGS: tuple[str, ...] = ("p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre", "td", "th")

_STRUCTURAL_TAGS: frozenset[str] = frozenset(BLOCK_TAGS + ("ul", "ol", "table", "thead", "tbody", "tr", "div", "section"))


class ParseError(ValueError):
    """Raised when HTML input is structurally invalid."""


@dataclass(slots=True)
class Block:
    """One block element of the document, with its normalized text."""

    index: int
    tag: str
    text: str
    node: Tag


def normalize_patch_text(text: str) -> str:
    return normalize_whitespace(text)


def parse_html(markup: str) -> BeautifulSoup:
    """Parse ``markup`` into a mutable tree.

    Raises :class:`ParseError` for non-string input, markup the parser
    rejects, or closing block tags without a matching opener.
    """

    if not isinstance(markup, str):
        raise ParseError(f"Expected HTML string, got {type(markup).__name__}")
    _check_balanced_closers(markup)
    try:
        return BeautifulSoup(markup, "html.parser")
    except ParserRejectedMarkup as exc:
        raise ParseError(str(exc)) from exc


def index_blocks(soup: BeautifulSoup) -> list[Block]:
    blocks: list[Block] = []
    for index, node in enumerate(soup.find_all(BLOCK_TAGS)):
        blocks.append(Block(index=index, tag=node.name, text=normalize_patch_text(node.get_text()), node=node))
    return blocks


def find_block(blocks: Sequence[Block], snippet: str) -> Block | None:
    """Return the first block whose text contains ``snippet`` or is contained by it."""

    needle = normalize_patch_text(snippet)
    if not needle:
        return None
    for block in blocks:
        if not block.text:
            continue
        if needle in block.text or block.text in needle:
            return block
    return None


class _CloserAudit(HTMLParser):
    """Counts structural open and close tags as the tokenizer reports them."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.depth: dict[str, int] = {}

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in _STRUCTURAL_TAGS:
            self.depth[tag] = self.depth.get(tag, 0) + 1

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        return None

    def handle_endtag(self, tag: str) -> None:
        if tag not in _STRUCTURAL_TAGS:
            return
        remaining = self.depth.get(tag, 0) - 1
        if remaining < 0:
            line, column = self.getpos()
            raise ParseError(f"Unexpected closing </{tag}> at line {line}, column {column}")
        self.depth[tag] = remaining


def _check_balanced_closers(markup: str) -> None:
    audit = _CloserAudit()
    audit.feed(markup)
    audit.close()
