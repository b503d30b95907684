"""Markdown renderer collaborator used for excerpts.

Full HTML rendering belongs to whatever templating layer consumes the site
model. The pipeline only needs plain text to cut excerpts from, so any
object with a ``render(markdown) -> html`` method can be plugged in.
"""

from __future__ import annotations

import html
import re
from typing import Protocol

from markdown_it import MarkdownIt

_PRE_BLOCK = re.compile(r"<pre\b.*?</pre>", re.DOTALL | re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")

ELLIPSIS = "…"


class Renderer(Protocol):
    """Converts markdown to HTML."""

    def render(self, markdown: str) -> str: ...


class MarkdownItRenderer:
    """CommonMark renderer backed by markdown-it-py, with tables enabled."""

    def __init__(self) -> None:
        self._md = MarkdownIt("commonmark")
        self._md.enable("table")

    def render(self, markdown: str) -> str:
        return self._md.render(markdown)


def html_to_text(rendered: str) -> str:
    """Strip markup from rendered HTML, dropping code blocks entirely."""
    text = _PRE_BLOCK.sub(" ", rendered)
    text = _TAG.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE.sub(" ", text).strip()


def truncate(text: str, length: int) -> str:
    """Cut text to at most ``length`` characters on a word boundary."""
    if len(text) <= length:
        return text
    cut = text[:length]
    space = cut.rfind(" ")
    if space > length // 2:
        cut = cut[:space]
    return cut.rstrip(" ,;:.-") + ELLIPSIS


def make_excerpt(body: str, summary: str | None, renderer: Renderer, length: int) -> str:
    """Return the explicit summary, or the first ``length`` characters of the body text."""
    if summary and summary.strip():
        return summary.strip()
    return truncate(html_to_text(renderer.render(body)), length)
