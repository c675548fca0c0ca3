import asyncio
from typing import Any

import truckbot.truck_chat_graph as truck_chat_graph_module
from langchain_core.messages import AIMessage, BaseMessage

from truckbot.config import Settings
from truckbot.fitment.gate import OPEN_QUESTION
from truckbot.linking.catalog import CatalogEntry
from truckbot.prompts.truck_prompts import (
    AFFILIATE_DISCLOSURE,
    EMPTY_MESSAGE_REPLY,
    FALLBACK_REPLY,
    OFFER_ACCEPTED_PROMPT,
    UPSELL_OFFER,
)
from truckbot.service import KeyedLocks, TruckChatService

ASK_QUESTION = "To make sure the parts fit, what's the year, make, and model of your truck?"


def _latest_human(messages: list[BaseMessage]) -> str:
    for message in reversed(messages):
        if getattr(message, "type", None) == "human":
            return str(message.content)
    return ""


class _FakeLLM:
    def __init__(self, replies: dict[str, str] | None = None, fail: bool = False) -> None:
        self.replies = replies or {}
        self.fail = fail
        self.calls: list[list[BaseMessage]] = []

    async def ainvoke(self, messages: list[BaseMessage]) -> AIMessage:
        self.calls.append(list(messages))
        if self.fail:
            raise RuntimeError("upstream unavailable")
        latest = _latest_human(messages).lower()
        for needle, reply in self.replies.items():
            if needle in latest:
                return AIMessage(content=reply)
        return AIMessage(content="Happy to help with your truck.")

    def system_text(self, call_index: int = -1) -> str:
        return "\n".join(str(m.content) for m in self.calls[call_index] if getattr(m, "type", None) == "system")


def _service(clock, catalog: list[CatalogEntry] | None = None, **settings: Any) -> TruckChatService:
    return TruckChatService(
        settings=Settings(affiliate_tag="trucks-20", **settings),
        catalog=catalog or [],
        clock=clock,
    )


def _patch_llm(monkeypatch, fake: _FakeLLM) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setattr(truck_chat_graph_module, "_llm", lambda: fake)


def test_buying_intent_asks_then_links_parts_for_known_truck(clock, monkeypatch):
    fake = _FakeLLM(
        {
            "2020 ford f150": (
                "Great, noted your 2020 Ford F-150. For brake pads, the Power Stop Z36 Truck & Tow Kit "
                "is a solid pick."
            ),
        }
    )
    _patch_llm(monkeypatch, fake)
    service = _service(clock)

    first = asyncio.run(service.handle_turn("s1", "best brake pads for my truck"))
    assert first == {"reply": ASK_QUESTION}
    assert fake.calls == []

    second = asyncio.run(service.handle_turn("s1", "2020 Ford F150"))
    reply = second["reply"]
    lines = reply.splitlines()

    assert lines[0] == "• Great, noted your 2020 Ford F-150."
    assert ">brake pads</a>" in reply
    assert ">Power Stop Z36 Truck & Tow Kit</a> is a solid pick." in reply
    assert "https://www.amazon.com/s?k=2020+Ford+F-150+brake+pads&amp;tag=trucks-20" in reply
    assert lines[-1] == AFFILIATE_DISCLOSURE
    assert '"model": "F-150"' in fake.system_text()

    session = service.session_store.get("s1")
    assert session.vehicle.known_fields() == {"year": "2020", "make": "Ford", "model": "F-150"}
    assert [turn.role for turn in session.turns] == ["user", "assistant", "user", "assistant"]
    assert session.turns[1].content == ASK_QUESTION


def test_fitment_question_is_asked_once_per_session(clock, monkeypatch):
    fake = _FakeLLM()
    _patch_llm(monkeypatch, fake)
    service = _service(clock)

    asyncio.run(service.handle_turn("s1", "best brake pads for my truck"))
    again = asyncio.run(service.handle_turn("s1", "ok which tonneau cover should I buy then?"))

    assert again["reply"] != ASK_QUESTION
    assert len(fake.calls) == 1


def test_informational_question_is_answered_and_offers_picks(clock, monkeypatch):
    fake = _FakeLLM(
        {
            "how do i replace": "Loosen the caliper bolts and slide the old set out. Clip the new set in place.",
            "2021 ram 1500": "For your 2021 Ram 1500, grab the Bosch QuietCast Brake Pads Kit.",
        }
    )
    _patch_llm(monkeypatch, fake)
    service = _service(clock)

    howto = asyncio.run(service.handle_turn("s1", "How do I replace brake pads?"))
    assert howto["reply"].splitlines() == [
        "• Loosen the caliper bolts and slide the old set out.",
        "• Clip the new set in place.",
        f"• {UPSELL_OFFER}",
    ]
    session = service.session_store.get("s1")
    assert session.offered_upsell_after_howto is True
    assert session.pending_offer is not None

    accepted = asyncio.run(service.handle_turn("s1", "yes"))
    assert accepted["reply"] == OPEN_QUESTION

    picks = asyncio.run(service.handle_turn("s1", "2021 Ram 1500"))
    assert "<a href=" in picks["reply"]
    assert OFFER_ACCEPTED_PROMPT in fake.system_text()
    assert service.session_store.get("s1").pending_offer is None


def test_soft_followup_when_one_field_is_missing(clock, monkeypatch):
    fake = _FakeLLM({"tonneau": "A hard folding tonneau cover balances security and bed access."})
    _patch_llm(monkeypatch, fake)
    service = _service(clock)

    result = asyncio.run(service.handle_turn("s1", "need a tonneau cover for my 2021 Ford"))

    assert result["reply"].splitlines()[1] == "• If you share your truck's model, I can double-check fitment."
    assert "k=2021+Ford+tonneau+cover" in result["reply"]


def test_country_hint_selects_marketplace_and_tag(clock, monkeypatch):
    fake = _FakeLLM({"floor mats": "WeatherTech floor mats are a great fit."})
    _patch_llm(monkeypatch, fake)
    service = TruckChatService(
        settings=Settings(affiliate_tag="trucks-20", affiliate_tags={"UK": "trucks-21"}),
        catalog=[],
        clock=clock,
    )
    asyncio.run(service.handle_turn("s1", "2019 Toyota Tacoma"))

    result = asyncio.run(service.handle_turn("s1", "floor mats?", country_hint="GB"))

    assert "https://www.amazon.co.uk/s?k=2019+Toyota+Tacoma+floor+mats&amp;tag=trucks-21" in result["reply"]


def test_catalog_match_replaces_search_link(clock, monkeypatch):
    catalog = [
        CatalogEntry(
            sku="bak",
            name="BAKFlip MX4 Hard Folding Tonneau Cover",
            brand="BAK",
            type="tonneau cover",
            url="https://www.amazon.com/dp/B000000001",
            tags=frozenset({"f150", "amazon"}),
        )
    ]
    fake = _FakeLLM({"cover": "Try the BAKFlip MX4 for weather sealing."})
    _patch_llm(monkeypatch, fake)
    service = _service(clock, catalog=catalog)

    result = asyncio.run(service.handle_turn("s1", "2021 Ford F-150, which tonneau cover?"))

    assert 'href="https://www.amazon.com/dp/B000000001?tag=trucks-20"' in result["reply"]
    assert ">BAKFlip MX4</a>" in result["reply"]


def test_model_failure_returns_fallback_without_links(clock, monkeypatch):
    fake = _FakeLLM(fail=True)
    _patch_llm(monkeypatch, fake)
    service = _service(clock)

    result = asyncio.run(service.handle_turn("s1", "why do brake rotors warp?"))

    assert "trouble reaching the AI" in result["reply"]
    assert "<a " not in result["reply"]
    assert service.session_store.get("s1").turns[-1].content == result["reply"]


def test_missing_api_key_uses_fallback(clock, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    service = _service(clock)

    result = asyncio.run(service.handle_turn("s1", "why do brake rotors warp?"))

    assert result["reply"].replace("• ", "").replace("\n", " ") == FALLBACK_REPLY


def test_empty_message_does_not_touch_the_session(clock):
    service = _service(clock)

    assert asyncio.run(service.handle_turn("s1", "   ")) == {"reply": EMPTY_MESSAGE_REPLY}
    assert service.session_store.get("s1") is None


def test_vehicle_change_rearms_fitment_question(clock, monkeypatch):
    fake = _FakeLLM()
    _patch_llm(monkeypatch, fake)
    service = _service(clock)

    asyncio.run(service.handle_turn("s1", "best brake pads for my truck"))
    asyncio.run(service.handle_turn("s1", "2019 Toyota Tacoma"))
    assert service.session_store.get("s1").asked_fitment_once is True

    asyncio.run(service.handle_turn("s1", "actually my new 2022 Ford F-150"))

    session = service.session_store.get("s1")
    assert session.vehicle.known_fields() == {"year": "2022", "make": "Ford", "model": "F-150"}
    assert session.asked_fitment_once is False


def test_turns_for_the_same_session_are_serialized(clock, monkeypatch):
    fake = _FakeLLM()
    _patch_llm(monkeypatch, fake)
    service = _service(clock)

    async def _run_both() -> list[dict[str, str]]:
        return await asyncio.gather(
            service.handle_turn("s1", "best brake pads for my truck"),
            service.handle_turn("s1", "best lift kit for my truck"),
        )

    replies = [result["reply"] for result in asyncio.run(_run_both())]

    assert replies.count(ASK_QUESTION) == 1
    assert len(service.session_store.get("s1").turns) == 4
    assert len(service._locks) == 0


def test_keyed_locks_release_unused_keys():
    locks = KeyedLocks()

    async def _hold() -> int:
        async with locks.hold("a"):
            async with locks.hold("b"):
                return len(locks)

    assert asyncio.run(_hold()) == 2
    assert len(locks) == 0
