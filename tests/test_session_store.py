import pytest

from truckbot.fitment.extractor import extract_profile
from truckbot.models import VehicleProfile
from truckbot.persistence.kv_store import InMemoryKeyValueStore
from truckbot.persistence.session_store import (
    SessionStore,
    detect_vehicle_change,
    merge_profiles,
)


def _store(clock, max_turns: int = 14) -> SessionStore:
    return SessionStore(store=InMemoryKeyValueStore(ttl_seconds=3600, clock=clock), max_turns=max_turns, clock=clock)


def test_unknown_session_is_created_with_defaults(clock):
    store = _store(clock)

    session = store.get_or_create("abc")

    assert session.session_id == "abc"
    assert session.vehicle.is_empty()
    assert session.turns == []
    assert session.asked_fitment_once is False
    assert store.get_or_create("abc") is session


def test_merge_only_fills_empty_fields():
    current = VehicleProfile(year="2020", make="Ford")
    merged = merge_profiles(current, VehicleProfile(year="2021", model="F-150", bed="6.5 ft"))

    assert merged.year == "2020"
    assert merged.model == "F-150"
    assert merged.bed == "6.5 ft"
    assert merge_profiles(merged, VehicleProfile()) is merged


def test_vehicle_change_resets_profile_and_ask_flag(clock):
    store = _store(clock)
    session = store.get_or_create("s1")
    session.vehicle = VehicleProfile(year="2019", make="Toyota", model="Tacoma")
    session.asked_fitment_once = True
    session.last_fitment_ask_at = clock()

    text = "actually my new 2022 Ford F-150"
    profile, was_reset = store.apply_message(session, text, extract_profile(text))

    assert was_reset is True
    assert profile.known_fields() == {"year": "2022", "make": "Ford", "model": "F-150"}
    assert session.asked_fitment_once is False
    assert session.last_fitment_ask_at is None


def test_restating_the_same_vehicle_is_not_a_reset(clock):
    store = _store(clock)
    session = store.get_or_create("s1")
    session.vehicle = VehicleProfile(year="2020", make="Ford", model="F-150")
    session.asked_fitment_once = True

    text = "it's a 2020 Ford with the 6.5 ft bed"
    profile, was_reset = store.apply_message(session, text, extract_profile(text))

    assert was_reset is False
    assert profile.bed == "6.5 ft"
    assert session.asked_fitment_once is True


def test_detect_vehicle_change_signals():
    assert detect_vehicle_change("2018 chevy colorado")
    assert detect_vehicle_change("what about my other truck, a ram")
    assert not detect_vehicle_change("my truck squeaks")
    assert not detect_vehicle_change("best tonneau cover")


def test_append_turn_keeps_latest_window_in_order(clock):
    store = _store(clock, max_turns=3)
    session = store.get_or_create("s1")

    for index in range(5):
        store.append_turn(session, "user" if index % 2 == 0 else "assistant", f"turn {index}")

    assert [turn.content for turn in session.turns] == ["turn 2", "turn 3", "turn 4"]


def test_append_turn_rejects_unknown_role(clock):
    store = _store(clock)
    session = store.get_or_create("s1")

    with pytest.raises(ValueError):
        store.append_turn(session, "system", "nope")


def test_sessions_expire_with_the_backing_store(clock):
    store = _store(clock)
    session = store.get_or_create("s1")
    session.vehicle = VehicleProfile(make="Ford")
    store.save(session)

    clock.advance(3601)

    assert store.get("s1") is None
    assert store.get_or_create("s1").vehicle.is_empty()


def test_evict_forgets_the_session(clock):
    store = _store(clock)
    store.get_or_create("s1")

    store.evict("s1")

    assert store.get("s1") is None
