from truckbot.fitment.gate import (
    OPEN_QUESTION,
    FitmentGate,
    GateAction,
    has_buying_intent,
    is_affirmation,
    is_informational,
)
from truckbot.models import PendingOffer, Session, VehicleProfile


def _gate(clock) -> FitmentGate:
    return FitmentGate(clock=clock, cooldown_seconds=150, pending_offer_ttl_seconds=600)


def test_buying_intent_without_vehicle_asks_for_year_make_model(clock):
    session = Session(session_id="s1")

    decision = _gate(clock).decide(session, "best brake pads for my truck")

    assert decision.action is GateAction.ASK
    assert decision.missing_fields == ["year", "make", "model"]
    assert decision.question == "To make sure the parts fit, what's the year, make, and model of your truck?"
    assert session.asked_fitment_once is True


def test_buying_intent_asks_only_once_per_session(clock):
    gate = _gate(clock)
    session = Session(session_id="s1")

    first = gate.decide(session, "best brake pads for my truck")
    clock.advance(1000)
    second = gate.decide(session, "which lift kit should I buy?")

    assert first.should_ask
    assert second.action is GateAction.PROCEED


def test_informational_questions_bypass_the_gate(clock):
    session = Session(session_id="s1")

    decision = _gate(clock).decide(session, "why do brake rotors warp?")

    assert decision.action is GateAction.PROCEED
    assert session.asked_fitment_once is False


def test_affirmation_without_fitment_asks_open_question_with_cooldown(clock):
    gate = _gate(clock)
    session = Session(session_id="s1")

    assert gate.decide(session, "yes").question == OPEN_QUESTION
    clock.advance(30)
    assert gate.decide(session, "sure").action is GateAction.PROCEED
    clock.advance(200)
    assert gate.decide(session, "yep").action is GateAction.ASK


def test_single_missing_field_gets_soft_followup(clock):
    gate = _gate(clock)
    session = Session(session_id="s1", vehicle=VehicleProfile(year="2021", make="Ford"))

    decision = gate.decide(session, "need a tonneau cover")

    assert decision.action is GateAction.SOFT_ASK
    assert decision.missing_fields == ["model"]
    assert decision.question == "If you share your truck's model, I can double-check fitment."
    assert gate.decide(session, "need a tonneau cover").action is GateAction.PROCEED


def test_full_profile_proceeds(clock):
    session = Session(session_id="s1", vehicle=VehicleProfile(year="2021", make="Ford", model="F-150"))

    assert _gate(clock).decide(session, "best brake pads?").action is GateAction.PROCEED


def test_pending_offer_is_accepted_within_ttl(clock):
    gate = _gate(clock)
    session = Session(
        session_id="s1",
        vehicle=VehicleProfile(year="2021", make="Ford", model="F-150"),
        pending_offer=PendingOffer(type="parts_picks", at=clock()),
    )
    clock.advance(60)

    decision = gate.decide(session, "yes please")

    assert decision.action is GateAction.PROCEED
    assert decision.offer_accepted is True
    assert session.pending_offer is None


def test_expired_pending_offer_is_dropped(clock):
    gate = _gate(clock)
    session = Session(
        session_id="s1",
        vehicle=VehicleProfile(year="2021", make="Ford", model="F-150"),
        pending_offer=PendingOffer(type="parts_picks", at=clock()),
    )
    clock.advance(601)

    decision = gate.decide(session, "yes")

    assert decision.offer_accepted is False
    assert session.pending_offer is None


def test_accepted_offer_survives_fitment_question(clock):
    gate = _gate(clock)
    session = Session(session_id="s1", pending_offer=PendingOffer(type="parts_picks", at=clock()))

    asked = gate.decide(session, "yes")
    session.vehicle = VehicleProfile(year="2021", make="Ram", model="1500")
    answered = gate.decide(session, "2021 Ram 1500")

    assert asked.action is GateAction.ASK
    assert answered.action is GateAction.PROCEED
    assert answered.offer_accepted is True


def test_intent_classifiers():
    assert is_affirmation("Yeah sure!")
    assert not is_affirmation("yes but which tonneau cover fits a short bed?")
    assert is_informational("How do I install running boards?")
    assert has_buying_intent("looking for floor mats")
    assert has_buying_intent("BAKFlip or Retrax?")
    assert not has_buying_intent("why does my truck shake at 60 mph?")


def test_acknowledgement_followed_by_question_is_not_an_affirmation(clock):
    session = Session(session_id="s1")

    decision = _gate(clock).decide(session, "ok why do rotors warp")

    assert not is_affirmation("ok why do rotors warp")
    assert is_affirmation("yes why not")
    assert decision.action is GateAction.PROCEED
    assert decision.reason == "informational"
    assert session.last_fitment_ask_at is None
