from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Union

RuleValue = Union[str, Callable[["re.Match[str]"], "str | None"]]


@dataclass(frozen=True)
class Rule:
    """One row of an ordered pattern -> tag table."""

    pattern: re.Pattern[str]
    value: RuleValue

    def resolve(self, match: re.Match[str]) -> str | None:
        if callable(self.value):
            return self.value(match)
        return self.value


def rule(pattern: str, value: RuleValue, *, case_sensitive: bool = False) -> Rule:
    flags = 0 if case_sensitive else re.IGNORECASE
    return Rule(pattern=re.compile(pattern, flags), value=value)


def first_match(rules: Iterable[Rule], text: str) -> str | None:
    for row in rules:
        match = row.pattern.search(text)
        if match is None:
            continue
        value = row.resolve(match)
        if value:
            return value
    return None


def all_matches(rules: Iterable[Rule], text: str) -> list[str]:
    values: list[str] = []
    for row in rules:
        match = row.pattern.search(text)
        if match is None:
            continue
        value = row.resolve(match)
        if value and value not in values:
            values.append(value)
    return values


def phrase_pattern(term: str, *, plural: bool = False) -> str:
    """Word-bounded pattern for a vocabulary term, tolerant of space/hyphen variants."""
    parts = [re.escape(part) for part in re.split(r"[\s\-]+", term.strip()) if part]
    body = r"[\s\-]*".join(parts)
    if plural:
        body += r"(?:e?s)?"
    return rf"(?<![\w&]){body}(?![\w&])"


def term_pattern(term: str) -> str:
    """phrase_pattern that accepts the singular or plural form of the last word."""
    stem = term.strip()
    if stem.endswith("s") and not stem.endswith("ss"):
        stem = stem[:-1]
    return phrase_pattern(stem, plural=True)
