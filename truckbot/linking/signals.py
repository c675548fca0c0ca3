from __future__ import annotations

import logging
import re

from truckbot.fitment.extractor import MAKE_RULES, MODEL_RULES, TRIM_RULES, extract_year
from truckbot.models import ProductSignal
from truckbot.rules import Rule, all_matches, phrase_pattern, rule, term_pattern

LOGGER = logging.getLogger("truckbot.signals")

CATEGORY_TERMS = [
    "tonneau cover",
    "bed cover",
    "bed liner",
    "bed rack",
    "bed accessories",
    "lift kit",
    "leveling kit",
    "cold air intake",
    "running boards",
    "nerf bars",
    "side steps",
    "floor mats",
    "floor liners",
    "seat covers",
    "brake pads",
    "brake rotors",
    "brake kit",
    "shocks",
    "struts",
    "coilovers",
    "cat-back exhaust",
    "exhaust system",
    "exhaust",
    "tuner",
    "programmer",
    "headlights",
    "tail lights",
    "fog lights",
    "light bar",
    "wheels",
    "tires",
    "all-terrain tires",
    "mud flaps",
    "trailer hitch",
    "hitch",
    "tow mirrors",
    "winch",
    "bumper",
    "grille",
    "air filter",
    "oil filter",
    "spark plugs",
    "wiper blades",
    "roof rack",
    "toolbox",
    "dash cam",
    "phone mount",
]

# (name, case_sensitive); common English words only count when written as a brand.
BRAND_TERMS: list[tuple[str, bool]] = [
    ("BAK", True),
    ("BAKFlip", False),
    ("UnderCover", False),
    ("Retrax", False),
    ("TruXedo", False),
    ("Extang", False),
    ("GatorTrax", False),
    ("TonnoPro", False),
    ("Bestop", False),
    ("Leer", True),
    ("Tyger", False),
    ("Rough Country", False),
    ("Bilstein", False),
    ("FOX", True),
    ("ICON", True),
    ("Method", True),
    ("Fuel", True),
    ("Go Rhino", False),
    ("AMP Research", False),
    ("WeatherTech", False),
    ("Husky", True),
    ("Airaid", False),
    ("K&N", False),
    ("MBRP", False),
    ("Borla", False),
    ("MagnaFlow", False),
    ("PowerStop", False),
    ("Power Stop", False),
    ("Bosch", False),
    ("Wagner", False),
    ("Hellwig", False),
    ("ReadyLIFT", False),
    ("Zone Offroad", False),
    ("BFGoodrich", False),
    ("Falken", False),
    ("Toyo", True),
    ("Nitto", False),
    ("Warn", True),
    ("Smittybilt", False),
    ("Baja Designs", False),
    ("Rigid Industries", False),
    ("Morimoto", False),
    ("Curt", True),
    ("B&W", False),
    ("Superchips", False),
    ("Hypertech", False),
    ("SCT", True),
    ("Banks", True),
    ("Flowmaster", False),
    ("Lund", True),
    ("DECKED", True),
]


CATEGORY_RULES: list[Rule] = [rule(term_pattern(term), term) for term in CATEGORY_TERMS]
BRAND_RULES: list[Rule] = [
    rule(phrase_pattern(name), name, case_sensitive=case_sensitive) for name, case_sensitive in BRAND_TERMS
]

PRODUCT_TOKENS = {
    "kit", "kits", "series", "filter", "filters", "pads", "pad", "rotors", "rotor", "cover", "covers",
    "intake", "exhaust", "liner", "liners", "mats", "mat", "boards", "board", "steps", "step", "bars",
    "bar", "rack", "shocks", "shock", "struts", "strut", "coilovers", "tires", "tire", "wheels", "wheel",
    "lights", "light", "headlights", "tuner", "programmer", "hitch", "winch", "bumper", "grille", "mirrors",
    "flaps", "plugs", "blades", "toolbox", "cam", "mount", "system", "lift", "leveling",
    "folding", "retractable", "roll", "tonneau",
}

_LEADING_FILLERS = {
    "the", "a", "an", "this", "that", "these", "those", "your", "our", "my", "try", "consider", "check",
    "get", "grab", "go", "look", "also", "both", "for", "if", "and", "or", "with", "some", "popular",
    "top", "great", "good", "solid", "options", "option", "picks", "pick",
}

PHRASE_STOPLIST = {
    "these include",
    "key features",
    "pros and cons",
    "final thoughts",
    "bottom line",
    "pro tip",
    "quick tip",
    "united states",
    "united kingdom",
    "customer service",
    "amazon associate",
    "check price",
    "best overall",
    "best budget",
    "best value",
    "hard folding",
    "soft roll up",
    "let me know",
}

_PHRASE_TOKEN = r"(?:[A-Z][\w&+'\-]*|\d+(?:\.\d+)?[A-Za-z]*|&)"
_PHRASE_RE = re.compile(rf"(?<![\w&])[A-Z][\w&+'\-]*(?: {_PHRASE_TOKEN}){{1,6}}")
_MIXED_TOKEN_RE = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)[\w\-]+$")

_VEHICLE_TOKEN_RULES: list[Rule] = MAKE_RULES + MODEL_RULES + TRIM_RULES


def detect_categories(text: str) -> set[str]:
    return set(all_matches(CATEGORY_RULES, text or ""))


def detect_brands(text: str) -> set[str]:
    return set(all_matches(BRAND_RULES, text or ""))


def _is_vehicle_token(token: str) -> bool:
    if extract_year(token):
        return True
    return any(row.pattern.fullmatch(token) for row in _VEHICLE_TOKEN_RULES)


def _is_vehicle_reference(tokens: list[str]) -> bool:
    phrase = " ".join(tokens)
    has_make = any(row.pattern.search(phrase) for row in MAKE_RULES)
    has_model = any(row.pattern.search(phrase) for row in MODEL_RULES)
    if has_make and (has_model or extract_year(phrase)):
        return True
    if has_model and any(row.pattern.search(phrase) for row in TRIM_RULES):
        return True
    return all(_is_vehicle_token(token) for token in tokens)


def _looks_like_product(tokens: list[str]) -> bool:
    for token in tokens:
        if "&" in token:
            return True
        if token.lower() in PRODUCT_TOKENS:
            return True
        if _MIXED_TOKEN_RE.match(token) and not _is_vehicle_token(token):
            return True
    return False


def _trim_fillers(tokens: list[str]) -> list[str]:
    start = 0
    while start < len(tokens) and tokens[start].lower() in _LEADING_FILLERS:
        start += 1
    return tokens[start:]


def harvest_product_phrases(text: str) -> set[str]:
    """Capitalized 2-7 token runs that read like product names.

    Harvesting is high recall; the stoplist, vehicle-reference and
    product-token filters keep only phrases worth linking.
    """
    phrases: set[str] = set()
    for match in _PHRASE_RE.finditer(text or ""):
        tokens = _trim_fillers(match.group(0).split(" "))
        while tokens and tokens[-1] in {"&", "-"}:
            tokens.pop()
        if len(tokens) < 2:
            continue
        phrase = " ".join(tokens)
        if phrase.lower() in PHRASE_STOPLIST:
            continue
        if _is_vehicle_reference(tokens):
            continue
        if not _looks_like_product(tokens):
            continue
        phrases.add(phrase)
    return phrases


def _ordered(values: set[str], text: str) -> list[str]:
    lowered = text.lower()
    return sorted(values, key=lambda value: (lowered.find(value.lower()), value))


def detect(text: str) -> list[ProductSignal]:
    """All signals in ``text``: categories, then brands, then product phrases, each in reading order."""
    if not text:
        return []
    signals: list[ProductSignal] = []
    try:
        signals.extend(ProductSignal("category", value) for value in _ordered(detect_categories(text), text))
        signals.extend(ProductSignal("brand", value) for value in _ordered(detect_brands(text), text))
        signals.extend(ProductSignal("productPhrase", value) for value in _ordered(harvest_product_phrases(text), text))
    except Exception as exc:
        LOGGER.warning("signal detection failed: %s", exc)
        return []
    return signals


def has_product_signal(text: str) -> bool:
    return bool(detect_categories(text) or detect_brands(text))
