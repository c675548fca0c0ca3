from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CATALOG_PATH = PROJECT_ROOT / "data" / "affiliateMap_enriched.json"


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(os.getenv(name, str(default))))
    except ValueError:
        return default


def _float_env(name: str, default: float, minimum: float = 0.0) -> float:
    try:
        return max(minimum, float(os.getenv(name, str(default))))
    except ValueError:
        return default


def _parse_affiliate_tags(raw: str) -> dict[str, str]:
    """Parse "US:tag-20,UK:tag-21" into {"US": "tag-20", "UK": "tag-21"}."""
    tags: dict[str, str] = {}
    for chunk in raw.split(","):
        country, sep, tag = chunk.partition(":")
        if not sep:
            continue
        country = country.strip().upper()
        tag = tag.strip()
        if country and tag:
            tags[country] = tag
    return tags


@dataclass(frozen=True)
class Settings:
    """Runtime limits, marketplace and affiliate configuration."""

    max_history_turns: int = 14
    session_ttl_seconds: float = 3600.0
    max_sessions: int = 1000
    fitment_ask_cooldown_seconds: float = 150.0
    pending_offer_ttl_seconds: float = 600.0
    max_links: int = 6
    default_marketplace: str = "com"
    affiliate_tag: str = ""
    affiliate_tags: dict[str, str] = field(default_factory=dict)
    catalog_path: Path = DEFAULT_CATALOG_PATH
    show_affiliate_disclosure: bool = True

    def tag_for(self, country: str | None) -> str:
        if country:
            code = country.upper()
            if code == "GB":
                code = "UK"
            if code in self.affiliate_tags:
                return self.affiliate_tags[code]
        return self.affiliate_tag


def load_settings() -> Settings:
    catalog_path = os.getenv("AFFILIATE_CATALOG_PATH")
    return Settings(
        max_history_turns=_int_env("MAX_HISTORY_TURNS", 14, minimum=2),
        session_ttl_seconds=_float_env("SESSION_TTL_SECONDS", 3600.0, minimum=1.0),
        max_sessions=_int_env("MAX_SESSIONS", 1000, minimum=1),
        fitment_ask_cooldown_seconds=_float_env("FITMENT_ASK_COOLDOWN_SECONDS", 150.0),
        pending_offer_ttl_seconds=_float_env("PENDING_OFFER_TTL_SECONDS", 600.0),
        max_links=_int_env("MAX_LINKS", 6, minimum=1),
        default_marketplace=os.getenv("DEFAULT_MARKETPLACE", "com").strip().lower() or "com",
        affiliate_tag=os.getenv("AFFILIATE_TAG", "").strip(),
        affiliate_tags=_parse_affiliate_tags(os.getenv("AFFILIATE_TAGS", "")),
        catalog_path=Path(catalog_path) if catalog_path else DEFAULT_CATALOG_PATH,
        show_affiliate_disclosure=os.getenv("SHOW_AFFILIATE_DISCLOSURE", "true").strip().lower() == "true",
    )
