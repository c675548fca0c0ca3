from __future__ import annotations

import re
from typing import Mapping
from urllib.parse import urlencode

DEFAULT_MARKETPLACE = "com"

MARKETPLACE_TLDS = {
    "US": "com",
    "UK": "co.uk",
    "GB": "co.uk",
    "CA": "ca",
}

GEO_HEADERS = ("cf-ipcountry", "x-vercel-ip-country", "x-country-code")

_COUNTRY_RE = re.compile(r"^[A-Za-z]{2}$")


def _normalize_country(raw: str | None) -> str | None:
    if not isinstance(raw, str):
        return None
    code = raw.strip().upper()
    if not _COUNTRY_RE.match(code) or code in {"XX", "T1"}:
        return None
    return code


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def country_from_accept_language(value: str | None) -> str | None:
    """Region of the primary Accept-Language tag ("en-GB,en;q=0.9" -> "GB")."""
    if not value:
        return None
    primary = value.split(",")[0].split(";")[0].strip().replace("_", "-")
    parts = [part for part in primary.split("-") if part]
    for part in parts[1:]:
        code = _normalize_country(part)
        if code:
            return code
    return None


def resolve_country(explicit: str | None = None, headers: Mapping[str, str] | None = None) -> str | None:
    """Explicit code, then proxy/CDN geo headers, then Accept-Language."""
    code = _normalize_country(explicit)
    if code:
        return code
    headers = headers or {}
    for name in GEO_HEADERS:
        code = _normalize_country(_header(headers, name))
        if code:
            return code
    return country_from_accept_language(_header(headers, "accept-language"))


def resolve_marketplace(country: str | None, default: str = DEFAULT_MARKETPLACE) -> str:
    code = _normalize_country(country)
    if code is None:
        return default
    return MARKETPLACE_TLDS.get(code, default)


def build_search_url(query: str, tag: str | None = None, marketplace: str = DEFAULT_MARKETPLACE) -> str:
    params = {"k": " ".join(query.split())}
    if tag:
        params["tag"] = tag
    return f"https://www.amazon.{marketplace}/s?{urlencode(params)}"
