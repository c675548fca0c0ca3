from __future__ import annotations

from truckbot.linking.marketplace import build_search_url
from truckbot.linking.signals import detect
from truckbot.models import LinkItem, ProductSignal, QueryItem, VehicleProfile

DEFAULT_MAX_ITEMS = 6


def _collect_signals(user_text: str, model_text: str) -> list[ProductSignal]:
    signals: list[ProductSignal] = []
    seen: set[str] = set()
    for signal in detect(user_text) + detect(model_text):
        key = signal.display.lower()
        if key in seen:
            continue
        seen.add(key)
        signals.append(signal)

    phrases = [signal.display.lower() for signal in signals if signal.kind == "productPhrase"]
    # a brand or category already covered by a longer product phrase adds a duplicate link
    return [
        signal
        for signal in signals
        if signal.kind == "productPhrase" or not any(signal.display.lower() in phrase for phrase in phrases)
    ]


def _qualify(display: str, vehicle: str) -> str:
    if not vehicle:
        return display
    if display.lower().startswith(vehicle.lower()):
        return display
    return f"{vehicle} {display}"


def build_query_items(
    user_text: str,
    model_text: str,
    profile: VehicleProfile | None = None,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> list[QueryItem]:
    """Vehicle-qualified search queries for the signals in a turn, user text first."""
    vehicle = profile.vehicle_string() if profile else ""
    items = [
        QueryItem(display=signal.display, query=_qualify(signal.display, vehicle))
        for signal in _collect_signals(user_text or "", model_text or "")
    ]
    return items[: max(0, max_items)]


def search_link_items(query_items: list[QueryItem], tag: str | None, marketplace: str) -> list[LinkItem]:
    return [
        LinkItem(name=item.display, url=build_search_url(item.query, tag=tag, marketplace=marketplace))
        for item in query_items
    ]
