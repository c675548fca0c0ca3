"""Protected-span helpers for rewriting text around existing links.

Spans are located by offset and left untouched, so nothing depends on a
placeholder string that user text could also contain.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

ANCHOR_RE = re.compile(
    r"<a\b[^>]*>.*?</a\s*>|(?<!!)\[[^\]\n]+\]\([^)\s]+\)",
    re.IGNORECASE | re.DOTALL,
)
_HREF_RE = re.compile(r"""href\s*=\s*(["'])(.*?)\1|\]\(([^)\s]+)\)""", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_MD_LINK_TEXT_RE = re.compile(r"^\[([^\]]*)\]")


@dataclass(frozen=True)
class Segment:
    text: str
    protected: bool


def protected_spans(text: str, pattern: re.Pattern[str] = ANCHOR_RE) -> list[tuple[int, int]]:
    return [match.span() for match in pattern.finditer(text)]


def inside_span(position: int, spans: list[tuple[int, int]]) -> bool:
    return any(start <= position < end for start, end in spans)


def segment(text: str, pattern: re.Pattern[str] = ANCHOR_RE) -> list[Segment]:
    segments: list[Segment] = []
    cursor = 0
    for start, end in protected_spans(text, pattern):
        if start > cursor:
            segments.append(Segment(text[cursor:start], False))
        segments.append(Segment(text[start:end], True))
        cursor = end
    if cursor < len(text):
        segments.append(Segment(text[cursor:], False))
    return segments


def join(segments: list[Segment]) -> str:
    return "".join(item.text for item in segments)


def rewrite_unprotected(
    text: str,
    rewrite: Callable[[str], str],
    pattern: re.Pattern[str] = ANCHOR_RE,
) -> str:
    return join(
        [item if item.protected else Segment(rewrite(item.text), False) for item in segment(text, pattern)]
    )


def replace_first_unprotected(
    text: str,
    regex: re.Pattern[str],
    replacement: Callable[[re.Match[str]], str],
    pattern: re.Pattern[str] = ANCHOR_RE,
) -> tuple[str, bool]:
    """Replace the first match of ``regex`` that lies entirely outside protected spans."""
    segments = segment(text, pattern)
    for index, item in enumerate(segments):
        if item.protected:
            continue
        match = regex.search(item.text)
        if match is None:
            continue
        rewritten = item.text[: match.start()] + replacement(match) + item.text[match.end() :]
        segments[index] = Segment(rewritten, False)
        return join(segments), True
    return text, False


def anchors(text: str, pattern: re.Pattern[str] = ANCHOR_RE) -> list[tuple[str, str]]:
    """(href, visible text) for every link in ``text``."""
    found: list[tuple[str, str]] = []
    for match in pattern.finditer(text):
        raw = match.group(0)
        href_match = _HREF_RE.search(raw)
        href = ""
        if href_match:
            href = href_match.group(2) if href_match.group(2) is not None else (href_match.group(3) or "")
        md_text = _MD_LINK_TEXT_RE.match(raw)
        visible = md_text.group(1) if md_text else _TAG_RE.sub("", raw)
        found.append((href, visible))
    return found
