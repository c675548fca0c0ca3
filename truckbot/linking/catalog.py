from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from truckbot.models import LinkItem, VehicleProfile

LOGGER = logging.getLogger("truckbot.catalog")

FUZZY_THRESHOLD = 0.12

VEHICLE_SLUGS = [
    "f150", "super-duty", "maverick",
    "ram-1500", "ram-2500", "ram-3500",
    "silverado-1500", "sierra-1500",
    "tacoma", "tundra", "gladiator",
    "colorado", "ranger",
]

PRODUCT_TYPES = [
    "tonneau cover", "wheels", "tires", "lift kit", "shocks/struts",
    "cold air intake", "exhaust", "tuner/programmer", "brakes",
    "lighting", "floor mats", "running boards/steps", "bed accessories",
]

KNOWN_TONNEAU_BRANDS = [
    "BAK", "UnderCover", "Retrax", "TruXedo", "Extang",
    "GatorTrax", "TonnoPro", "Bestop", "Leer",
]

KNOWN_BRANDS = KNOWN_TONNEAU_BRANDS + [
    "Tyger", "Rough Country", "Bilstein", "FOX", "ICON",
    "Method", "Fuel", "Go Rhino", "AMP Research",
    "WeatherTech", "Husky", "Airaid", "K&N",
    "MBRP", "Borla", "MagnaFlow", "PowerStop",
]

STOPWORDS = {
    "the", "a", "an", "for", "to", "of", "on", "with", "and", "or", "best", "good", "great",
    "cover", "covers", "tonneau", "truck", "bed", "ford", "ram", "chevy", "gmc", "toyota",
}


@dataclass(frozen=True)
class CatalogEntry:
    sku: str
    name: str
    brand: str = ""
    type: str = ""
    asin: str = ""
    url: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)

    @property
    def title(self) -> str:
        return self.name or f"{self.brand} {self.type}".strip() or "Product"


@dataclass(frozen=True)
class CatalogIntent:
    vehicle: str | None = None
    type: str | None = None
    brand: str | None = None


def _entry_from_row(row: dict[str, Any]) -> CatalogEntry | None:
    url = str(row.get("url") or "").strip()
    name = str(row.get("name") or "").strip()
    if not url or not (name or row.get("brand")):
        return None
    tags = row.get("tags") if isinstance(row.get("tags"), list) else []
    return CatalogEntry(
        sku=str(row.get("sku") or ""),
        name=name,
        brand=str(row.get("brand") or "").strip(),
        type=str(row.get("type") or "").strip(),
        asin=str(row.get("asin") or "").strip(),
        url=url,
        tags=frozenset(str(tag).lower() for tag in tags),
    )


def load_affiliate_catalog(path: Path | None) -> list[CatalogEntry]:
    """Load catalog entries; a missing or malformed file yields an empty catalog."""
    if path is None or not path.exists():
        return []
    try:
        rows = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.warning("could not load affiliate catalog %s: %s", path, exc)
        return []
    if not isinstance(rows, list):
        LOGGER.warning("affiliate catalog %s is not a list", path)
        return []
    entries = [entry for entry in (_entry_from_row(row) for row in rows if isinstance(row, dict)) if entry]
    LOGGER.info("loaded %d affiliate entries from %s", len(entries), path)
    return entries


def _norm(text: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9\s]", " ", (text or "").lower())).strip()


def tokens(text: str) -> list[str]:
    return [token for token in _norm(text).split(" ") if token and token not in STOPWORDS]


def jaccard(left: list[str], right: list[str]) -> float:
    a, b = set(left), set(right)
    union = len(a | b) or 1
    return len(a & b) / union


def fuzzy_find_products(
    catalog: list[CatalogEntry],
    text: str,
    limit: int = 3,
    threshold: float = FUZZY_THRESHOLD,
) -> list[CatalogEntry]:
    text_tokens = tokens(text)
    if not text_tokens:
        return []
    scored = [(jaccard(text_tokens, tokens(f"{entry.brand} {entry.name}")), entry) for entry in catalog]
    scored = [item for item in scored if item[0] > threshold]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [entry for _, entry in scored[:limit]]


def vehicle_slug(profile: VehicleProfile | None) -> str | None:
    if profile is None or not profile.model:
        return None
    model = profile.model.lower()
    if profile.make == "Ram" and model.isdigit():
        model = f"ram-{model}"
    slug = model.replace(" ", "-")
    if slug == "f-150":
        slug = "f150"
    return slug if slug in VEHICLE_SLUGS else None


def extract_intent(text: str, profile: VehicleProfile | None = None) -> CatalogIntent:
    """Coarse (vehicle, type, brand) intent used to rank catalog entries."""
    query = (text or "").lower()
    vehicle = next((slug for slug in VEHICLE_SLUGS if slug.replace("-", " ") in query), None)
    vehicle = vehicle or next((slug for slug in VEHICLE_SLUGS if slug in query), None)
    vehicle = vehicle or vehicle_slug(profile)

    product_type = next((item for item in PRODUCT_TYPES if item in query), None)
    if product_type is None and ("bed cover" in query or "tonneau" in query):
        product_type = "tonneau cover"

    brand = next((name for name in KNOWN_BRANDS if name.lower() in query), None)
    return CatalogIntent(vehicle=vehicle, type=product_type, brand=brand)


def score_entry(entry: CatalogEntry, intent: CatalogIntent) -> float:
    score = 0.0
    if intent.vehicle and intent.vehicle in entry.tags:
        score += 5
    if intent.type and entry.type == intent.type:
        score += 5
    if intent.brand and entry.brand.lower() == intent.brand.lower():
        score += 2
    if "amazon" in entry.tags:
        score += 1
    if len(entry.asin) == 10:
        score += 1
    if intent.type == "tonneau cover" and entry.brand in KNOWN_TONNEAU_BRANDS:
        score += 1
    return score


def best_catalog_picks(catalog: list[CatalogEntry], intent: CatalogIntent, limit: int = 3) -> list[CatalogEntry]:
    if not catalog or not (intent.vehicle or intent.type or intent.brand):
        return []
    ranked = sorted(catalog, key=lambda entry: score_entry(entry, intent), reverse=True)
    return [entry for entry in ranked[:limit] if score_entry(entry, intent) >= 5]


def apply_affiliate_tag(url: str, tag: str | None) -> str:
    if not tag or "amazon." not in url:
        return url
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    query["tag"] = [tag]
    return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))


def match_link_items(
    catalog: list[CatalogEntry],
    names: list[str],
    tag: str | None = None,
) -> dict[str, LinkItem]:
    """Direct catalog links for the names that fuzzily match a catalog entry."""
    matched: dict[str, LinkItem] = {}
    for name in names:
        hits = fuzzy_find_products(catalog, name, limit=1)
        if hits:
            matched[name.lower()] = LinkItem(name=name, url=apply_affiliate_tag(hits[0].url, tag))
    return matched
