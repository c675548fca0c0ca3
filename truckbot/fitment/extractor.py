from __future__ import annotations

import re

from truckbot.models import VehicleProfile
from truckbot.rules import Rule, first_match, phrase_pattern, rule

YEAR_MIN = 1990
YEAR_MAX = 2030

_YEAR_RE = re.compile(
    r"(?<![\d.\-])(\d{4})(?!\d)(?!\s*(?:miles?|mi|km|k|lbs?|pounds?|rpm|cc|psi|hp|watts?)\b)",
    re.IGNORECASE,
)

MAKE_RULES: list[Rule] = [
    rule(r"\bchev(?:y|rolet)?\b", "Chevrolet"),
    rule(r"\bford\b", "Ford"),
    rule(r"\bgmc\b", "GMC"),
    rule(r"\bram\b", "Ram"),
    rule(r"\bdodge\b", "Dodge"),
    rule(r"\btoyota\b", "Toyota"),
    rule(r"\bnissan\b", "Nissan"),
    rule(r"\bjeep\b", "Jeep"),
    rule(r"\bhonda\b", "Honda"),
    rule(r"\brivian\b", "Rivian"),
]

MODEL_RULES: list[Rule] = [
    rule(r"\bf[\s\-]?150\b", "F-150"),
    rule(r"\bf[\s\-]?250\b", "F-250"),
    rule(r"\bf[\s\-]?350\b", "F-350"),
    rule(r"\bsuper[\s\-]?duty\b", "Super Duty"),
    rule(r"\bmaverick\b", "Maverick"),
    rule(r"\branger\b", "Ranger"),
    rule(r"\bsilverado(?:[\s\-]?(1500|2500|3500)(?:\s?hd)?)?\b", lambda m: _numbered("Silverado", m)),
    rule(r"\bsierra(?:[\s\-]?(1500|2500|3500)(?:\s?hd)?)?\b", lambda m: _numbered("Sierra", m)),
    rule(r"\bcolorado\b", "Colorado"),
    rule(r"\bcanyon\b", "Canyon"),
    rule(r"\bram[\s\-]?(1500|2500|3500)\b", lambda m: m.group(1)),
    rule(r"\btacoma\b", "Tacoma"),
    rule(r"\btundra\b", "Tundra"),
    rule(r"\bgladiator\b", "Gladiator"),
    rule(r"\btitan\b", "Titan"),
    rule(r"\bfrontier\b", "Frontier"),
    rule(r"\bridgeline\b", "Ridgeline"),
    rule(r"\bsanta\s+cruz\b", "Santa Cruz"),
    rule(r"\br1t\b", "R1T"),
]

# Ordered longest first so "XLT" is never read as "XL".
# Trims that double as everyday words only match when capitalized.
_WORDLIKE_TRIMS = {"Limited", "Platinum", "Rebel", "Elevation", "Tradesman", "Raptor", "Tremor", "Longhorn"}

TRIM_RULES: list[Rule] = [
    rule(phrase_pattern(name), name, case_sensitive=name in _WORDLIKE_TRIMS)
    for name in [
        "King Ranch",
        "TRD Off-Road",
        "TRD Sport",
        "TRD Pro",
        "High Country",
        "Trail Boss",
        "Big Horn",
        "Limited",
        "Platinum",
        "Lariat",
        "Raptor",
        "Tremor",
        "Laramie",
        "Longhorn",
        "Tradesman",
        "Rebel",
        "Rubicon",
        "Mojave",
        "Denali",
        "Elevation",
        "PRO-4X",
        "XLT",
        "XL",
        "SR5",
        "SR",
        "TRX",
        "LTZ",
        "RST",
        "LT",
        "ZR2",
        "AT4",
        "SLT",
    ]
]

_ENGINE_NAMES = r"(ecoboost|power\s?stroke|coyote|hemi|duramax|cummins|ecodiesel|i-?force(?:\s?max)?)"

ENGINE_RULES: list[Rule] = [
    rule(rf"(?<![\d.])(\d\.\d)\s?l(?:iter|itre)?\b(?:\s+{_ENGINE_NAMES})?", lambda m: _engine(m)),
    rule(rf"\b{_ENGINE_NAMES}\b", lambda m: _engine_name(m.group(1))),
]

BED_RULES: list[Rule] = [
    rule(r"(?<![\d.])(\d{1,2})\s?'\s?(\d{1,2})\s?(?:\"|''|in\b)", lambda m: _feet_inches(m.group(1), m.group(2))),
    rule(r"(?<![\d.])(\d(?:\.\d{1,2})?)\s?(?:ft\b|foot\b|feet\b|')", lambda m: _feet(m.group(1))),
    rule(r"\bshort[\s\-]?bed\b", "5.5 ft"),
    rule(r"\b(?:standard|regular)[\s\-]?bed\b", "6.5 ft"),
    rule(r"\blong[\s\-]?bed\b", "8 ft"),
]


def _numbered(name: str, match: re.Match[str]) -> str:
    number = match.group(1)
    return f"{name} {number}" if number else name


def _engine_name(raw: str) -> str:
    key = re.sub(r"[\s\-]", "", raw.lower())
    names = {
        "ecoboost": "EcoBoost",
        "powerstroke": "Power Stroke",
        "coyote": "Coyote",
        "hemi": "HEMI",
        "duramax": "Duramax",
        "cummins": "Cummins",
        "ecodiesel": "EcoDiesel",
        "iforce": "i-FORCE",
        "iforcemax": "i-FORCE MAX",
    }
    return names.get(key, raw.strip())


def _engine(match: re.Match[str]) -> str:
    displacement = f"{match.group(1)}L"
    if match.group(2):
        return f"{displacement} {_engine_name(match.group(2))}"
    return displacement


def _format_feet(value: float) -> str | None:
    if not 4.0 <= value <= 9.0:
        return None
    rounded = round(value, 1)
    if rounded == int(rounded):
        return f"{int(rounded)} ft"
    return f"{rounded} ft"


def _feet(raw: str) -> str | None:
    return _format_feet(float(raw))


def _feet_inches(feet: str, inches: str) -> str | None:
    inch_value = int(inches)
    if inch_value >= 12:
        return None
    return _format_feet(int(feet) + inch_value / 12)


def extract_year(text: str) -> str | None:
    for match in _YEAR_RE.finditer(text):
        value = int(match.group(1))
        if YEAR_MIN <= value <= YEAR_MAX:
            return match.group(1)
    return None


def extract_make(text: str) -> str | None:
    return first_match(MAKE_RULES, text)


def extract_model(text: str) -> str | None:
    return first_match(MODEL_RULES, text)


def extract_profile(text: str) -> VehicleProfile:
    """Read the vehicle attributes a message states explicitly.

    Fields the text does not mention stay None. The only inference is the
    F-150 -> Ford default, since the model name is unambiguous.
    """
    if not text or not text.strip():
        return VehicleProfile()

    model = extract_model(text)
    make = extract_make(text)
    if model == "F-150" and make is None:
        make = "Ford"

    return VehicleProfile(
        year=extract_year(text),
        make=make,
        model=model,
        bed=first_match(BED_RULES, text),
        trim=first_match(TRIM_RULES, text),
        engine=first_match(ENGINE_RULES, text),
    )
