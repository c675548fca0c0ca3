from __future__ import annotations

import logging
import re
import time

from truckbot.fitment.extractor import extract_make, extract_year
from truckbot.models import CORE_FIELDS, PROFILE_FIELDS, Session, Turn, VehicleProfile
from truckbot.persistence.kv_store import Clock, InMemoryKeyValueStore, KeyValueStore

LOGGER = logging.getLogger("truckbot.sessions")

DEFAULT_MAX_TURNS = 14

_CHANGE_FRAMING_RE = re.compile(
    r"\b(?:my|new|another|different|other|second|got\s+a|bought\s+a|traded\s+for\s+a)\b"
    r"(?:\s+[\w\-]+){0,3}?\s+(?:truck|pickup|rig|ride|vehicle)\b",
    re.IGNORECASE,
)
_NEW_VEHICLE_RE = re.compile(r"\b(?:my\s+new|another|different|new\s+one|switched\s+to|traded\s+(?:in|for))\b", re.IGNORECASE)


def detect_vehicle_change(text: str) -> bool:
    """True when the message introduces a (possibly different) vehicle."""
    if not text:
        return False
    has_year = extract_year(text) is not None
    has_make = extract_make(text) is not None
    if has_year and has_make:
        return True
    framed = bool(_CHANGE_FRAMING_RE.search(text) or _NEW_VEHICLE_RE.search(text))
    return framed and (has_year or has_make)


def merge_profiles(current: VehicleProfile, partial: VehicleProfile) -> VehicleProfile:
    """Fill only the empty fields of ``current``; the first non-null value wins."""
    updates = {
        name: getattr(partial, name)
        for name in PROFILE_FIELDS
        if getattr(current, name) is None and getattr(partial, name)
    }
    if not updates:
        return current
    return current.model_copy(update=updates)


def differs_materially(current: VehicleProfile, partial: VehicleProfile) -> bool:
    for name in CORE_FIELDS:
        old = getattr(current, name)
        new = getattr(partial, name)
        if old and new and old.lower() != new.lower():
            return True
    return False


class SessionStore:
    """Per-conversation state on top of an injected key-value store."""

    def __init__(
        self,
        store: KeyValueStore[Session] | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
        clock: Clock = time.time,
    ) -> None:
        self._store = store if store is not None else InMemoryKeyValueStore(clock=clock)
        self._max_turns = max(1, max_turns)
        self._clock = clock

    @property
    def max_turns(self) -> int:
        return self._max_turns

    def get(self, session_id: str) -> Session | None:
        return self._store.get(session_id)

    def get_or_create(self, session_id: str) -> Session:
        session = self._store.get(session_id)
        if session is not None:
            return session
        now = self._clock()
        session = Session(session_id=session_id, created_at=now, updated_at=now)
        self._store.set(session_id, session)
        LOGGER.debug("created session %s", session_id)
        return session

    def save(self, session: Session) -> None:
        session.updated_at = self._clock()
        self._store.set(session.session_id, session)

    def evict(self, session_id: str) -> None:
        self._store.evict(session_id)

    def merge(self, session: Session, partial: VehicleProfile, reset: bool = False) -> VehicleProfile:
        base = VehicleProfile() if reset else session.vehicle
        session.vehicle = merge_profiles(base, partial)
        return session.vehicle

    def reset_vehicle(self, session: Session) -> None:
        session.vehicle = VehicleProfile()
        session.asked_fitment_once = False
        session.last_fitment_ask_at = None

    def detect_vehicle_change(self, text: str) -> bool:
        return detect_vehicle_change(text)

    def apply_message(self, session: Session, text: str, partial: VehicleProfile) -> tuple[VehicleProfile, bool]:
        """Merge what a user message says about their truck; returns (profile, was_reset)."""
        reset = self.detect_vehicle_change(text) and differs_materially(session.vehicle, partial)
        if reset:
            LOGGER.info(
                "vehicle change in session %s: %s -> %s",
                session.session_id,
                session.vehicle.vehicle_string() or "-",
                partial.vehicle_string() or "-",
            )
            self.reset_vehicle(session)
        return self.merge(session, partial), reset

    def append_turn(self, session: Session, role: str, content: str) -> None:
        if role not in {"user", "assistant"}:
            raise ValueError("role must be either 'user' or 'assistant'")
        session.turns.append(Turn(role=role, content=content))
        overflow = len(session.turns) - self._max_turns
        if overflow > 0:
            del session.turns[:overflow]
