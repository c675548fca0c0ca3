from __future__ import annotations

import re

from truckbot.linking.spans import inside_span, protected_spans

BULLET = "• "

_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*•–]\s+|\d+[.)]\s+)")
_BARE_NUMERAL_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])$")
_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9\"'(<])")


def is_list_item(line: str) -> bool:
    return bool(_LIST_ITEM_RE.match(line))


def split_sentences(text: str) -> list[str]:
    """Sentence units of ``text``; never splits inside a link or after a bare list numeral."""
    spans = protected_spans(text)
    units: list[str] = []
    start = 0
    for match in _SENTENCE_BREAK_RE.finditer(text):
        if inside_span(match.start(), spans):
            continue
        candidate = text[start : match.start()].strip()
        if not candidate or _BARE_NUMERAL_RE.match(candidate):
            continue
        units.append(candidate)
        start = match.end()
    tail = text[start:].strip()
    if tail:
        units.append(tail)
    return units


def _bulleted(line: str) -> str:
    return line if is_list_item(line) else f"{BULLET}{line}"


def to_lines(text: str) -> str:
    """Reflow a reply into short bullet lines for the chat widget."""
    if not text or not text.strip():
        return ""
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if any(is_list_item(line) for line in lines):
        return "\n".join(lines)

    output: list[str] = []
    for line in lines:
        output.extend(_bulleted(unit) for unit in split_sentences(line))
    return "\n".join(output)
