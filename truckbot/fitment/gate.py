from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum

from truckbot.linking.signals import has_product_signal
from truckbot.models import Session, VehicleProfile
from truckbot.persistence.kv_store import Clock

DEFAULT_ASK_COOLDOWN_SECONDS = 150.0
DEFAULT_PENDING_OFFER_TTL_SECONDS = 600.0

_AFFIRMATION_RE = re.compile(
    r"^\s*(?:yes|yeah|yea|yep|yup|sure|ok(?:ay)?|definitely|absolutely|of course|sounds good|"
    r"go ahead|do it|why not|y)\b[\s\w,!.]{0,20}$",
    re.IGNORECASE,
)
_PURCHASE_RE = re.compile(
    r"\b(?:best|recommend\w*|suggest\w*|buy|buying|purchase|shop\w*|looking\s+for|need\s+(?:a|an|new|some)|"
    r"which\s+(?:one|brand|kit|cover|set)|worth\s+it|upgrade|fits?|fitment|compatible|price|cheap\w*|budget|"
    r"options?\s+for|picks?)\b",
    re.IGNORECASE,
)
_LEAD_IN = r"(?:(?:ok(?:ay)?|so|hey|hmm|well|yes|yeah|sure)[\s,!.]+)*"
_INFORMATIONAL_RE = re.compile(
    rf"^\s*{_LEAD_IN}(?:why\b(?!\s+not\b)|how\s+(?:do|does|can|to|often|long|much\s+does\s+it\s+cost\s+to)\b|what\s+(?:causes|is|are|does|happens)\b|"
    r"is\s+it\s+(?:normal|safe|bad)\b|when\s+should\b|can\s+i\b|should\s+i\s+(?:worry|replace)\b)",
    re.IGNORECASE,
)


class GateAction(str, Enum):
    ASK = "ask"
    SOFT_ASK = "soft_ask"
    PROCEED = "proceed"


@dataclass(frozen=True)
class GateDecision:
    action: GateAction
    question: str | None = None
    missing_fields: list[str] = field(default_factory=list)
    reason: str = ""
    offer_accepted: bool = False

    @property
    def should_ask(self) -> bool:
        return self.action is GateAction.ASK


def is_affirmation(message: str) -> bool:
    text = message or ""
    return bool(_AFFIRMATION_RE.match(text)) and not is_informational(text)


def is_informational(message: str) -> bool:
    return bool(_INFORMATIONAL_RE.match(message or ""))


def has_buying_intent(message: str) -> bool:
    text = message or ""
    purchase = bool(_PURCHASE_RE.search(text))
    if is_informational(text) and not purchase:
        return False
    return purchase or has_product_signal(text)


def _join_fields(labels: list[str]) -> str:
    if len(labels) <= 1:
        return "".join(labels)
    if len(labels) == 2:
        return f"{labels[0]} and {labels[1]}"
    return ", ".join(labels[:-1]) + f", and {labels[-1]}"


def targeted_question(missing: list[str]) -> str:
    return f"To make sure the parts fit, what's the {_join_fields(missing)} of your truck?"


def soft_followup(missing: list[str]) -> str:
    return f"If you share your truck's {_join_fields(missing)}, I can double-check fitment."


OPEN_QUESTION = "Great! What's the year, make, and model of your truck?"


class FitmentGate:
    """Decides, once per turn, whether to ask for fitment before answering."""

    def __init__(
        self,
        clock: Clock = time.time,
        cooldown_seconds: float = DEFAULT_ASK_COOLDOWN_SECONDS,
        pending_offer_ttl_seconds: float = DEFAULT_PENDING_OFFER_TTL_SECONDS,
    ) -> None:
        self._clock = clock
        self._cooldown_seconds = cooldown_seconds
        self._pending_offer_ttl_seconds = pending_offer_ttl_seconds

    def in_cooldown(self, session: Session) -> bool:
        if session.last_fitment_ask_at is None:
            return False
        return self._clock() - session.last_fitment_ask_at < self._cooldown_seconds

    def _mark_asked(self, session: Session) -> None:
        session.asked_fitment_once = True
        session.last_fitment_ask_at = self._clock()

    def _take_pending_offer(self, session: Session, *, accepted_only: bool = False) -> bool:
        offer = session.pending_offer
        if offer is None or (accepted_only and not offer.accepted):
            return False
        session.pending_offer = None
        return self._clock() - offer.at <= self._pending_offer_ttl_seconds

    def decide(self, session: Session, message: str, profile: VehicleProfile | None = None) -> GateDecision:
        """Return ASK, SOFT_ASK or PROCEED and update the session's ask bookkeeping.

        An accepted parts-picks offer survives a fitment question and is
        honoured on the next turn that proceeds to the model.
        """
        profile = profile if profile is not None else session.vehicle
        missing = profile.missing_core_fields()

        if is_affirmation(message):
            if missing and not self.in_cooldown(session):
                if session.pending_offer is not None:
                    session.pending_offer.accepted = True
                self._mark_asked(session)
                return GateDecision(
                    GateAction.ASK,
                    question=OPEN_QUESTION,
                    missing_fields=missing,
                    reason="affirmation_without_fitment",
                )
            return GateDecision(
                GateAction.PROCEED,
                reason="affirmation",
                offer_accepted=self._take_pending_offer(session),
            )

        if not has_buying_intent(message):
            return GateDecision(
                GateAction.PROCEED,
                reason="informational",
                offer_accepted=self._take_pending_offer(session, accepted_only=True),
            )

        if len(missing) >= 2 and not session.asked_fitment_once:
            self._mark_asked(session)
            return GateDecision(
                GateAction.ASK,
                question=targeted_question(missing),
                missing_fields=missing,
                reason="buying_intent_without_fitment",
            )

        if len(missing) == 1 and not self.in_cooldown(session):
            session.last_fitment_ask_at = self._clock()
            return GateDecision(
                GateAction.SOFT_ASK,
                question=soft_followup(missing),
                missing_fields=missing,
                reason="buying_intent_one_field_missing",
            )

        return GateDecision(
            GateAction.PROCEED,
            reason="buying_intent",
            offer_accepted=self._take_pending_offer(session, accepted_only=True),
        )
