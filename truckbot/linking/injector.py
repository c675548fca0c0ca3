from __future__ import annotations

import html
import logging
import re

from truckbot.linking.spans import anchors, replace_first_unprotected, rewrite_unprotected
from truckbot.models import LinkItem
from truckbot.rules import term_pattern

LOGGER = logging.getLogger("truckbot.injector")

LINK_ATTRIBUTES = 'target="_blank" rel="nofollow sponsored noopener"'

TOKEN_STOPWORDS = {
    "the", "a", "an", "and", "or", "for", "with", "of", "to", "on", "in", "by", "fits", "fit",
    "truck", "trucks", "pickup", "new", "best", "set", "pack",
}

_IMAGE_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_HEADER_RE = re.compile(r"^[ \t]{0,3}#{1,6}[ \t]+", re.MULTILINE)
_CODE_RE = re.compile(r"`{1,3}([^`]*)`{1,3}")
_BOLD_RE = re.compile(r"(\*\*|__)(?=\S)(.+?)(?<=\S)\1", re.DOTALL)
_ITALIC_RE = re.compile(r"(?<![\w*])([*_])(?=\S)([^*_\n]+?)(?<=\S)\1(?![\w*])")
_WORD_RE = re.compile(r"[A-Za-z0-9][\w&+\-.]*[A-Za-z0-9]|[A-Za-z0-9]")


def strip_markup(text: str) -> str:
    """Remove bold/italic markers, headers, code spans and images outside existing links."""

    def _strip(chunk: str) -> str:
        chunk = _IMAGE_RE.sub("", chunk)
        chunk = _HEADER_RE.sub("", chunk)
        chunk = _CODE_RE.sub(r"\1", chunk)
        chunk = _BOLD_RE.sub(r"\2", chunk)
        return _ITALIC_RE.sub(r"\2", chunk)

    return rewrite_unprotected(text, _strip)


def significant_tokens(name: str, limit: int = 3) -> list[str]:
    words = [word for word in _WORD_RE.findall(name) if word.lower() not in TOKEN_STOPWORDS]
    return words[:limit]


def _token_regex(words: list[str]) -> re.Pattern[str]:
    body = r"[\s\-]+".join(re.escape(word) for word in words)
    return re.compile(rf"(?<![\w&]){body}(?![\w&])", re.IGNORECASE)


def _phrase_regex(name: str) -> re.Pattern[str]:
    return re.compile(term_pattern(name), re.IGNORECASE)


def _either(first: re.Pattern[str], second: re.Pattern[str]) -> re.Pattern[str]:
    return re.compile(rf"(?:{first.pattern})|(?:{second.pattern})", re.IGNORECASE)


def item_patterns(name: str) -> list[re.Pattern[str]]:
    """Ordered match strategies: 3-token, 2-token, then the phrase alone.

    Each token pattern is tried as an alternative after the full phrase, so a
    mention that spells out the whole name is linked whole.
    """
    if not name.strip():
        return []
    phrase = _phrase_regex(name.strip())
    patterns: list[re.Pattern[str]] = []
    words = significant_tokens(name)
    if len(words) >= 3:
        patterns.append(_either(phrase, _token_regex(words[:3])))
    if len(words) >= 2:
        patterns.append(_either(phrase, _token_regex(words[:2])))
    patterns.append(phrase)
    return patterns


def render_anchor(url: str, label: str) -> str:
    return f'<a href="{html.escape(url, quote=True)}" {LINK_ATTRIBUTES}>{label}</a>'


def _already_linked(
    text: str,
    item: LinkItem,
    patterns: list[re.Pattern[str]],
    existing: list[tuple[str, str]],
) -> bool:
    escaped_url = html.escape(item.url, quote=True)
    if any(href in (item.url, escaped_url) for href, _ in anchors(text)):
        return True
    # only links present before this pass can claim an item by their text
    return any(pattern.search(visible) for _, visible in existing for pattern in patterns)


def inject(text: str, items: list[LinkItem]) -> str:
    """Wrap the first unlinked mention of each item in an affiliate anchor.

    Existing links are protected spans and are recomputed after every item,
    so a phrase never ends up inside two anchors and re-running is a no-op.
    """
    if not text:
        return text
    result = strip_markup(text)
    existing = anchors(result)
    for item in sorted(items, key=lambda entry: len(entry.name), reverse=True):
        if not item.name.strip() or not item.url:
            continue
        patterns = item_patterns(item.name)
        if _already_linked(result, item, patterns, existing):
            continue
        for pattern in patterns:
            result, replaced = replace_first_unprotected(
                result,
                pattern,
                lambda match: render_anchor(item.url, match.group(0)),
            )
            if replaced:
                break
    return result


def count_links(text: str) -> int:
    return len(anchors(text))
