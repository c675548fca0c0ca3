from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Callable

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, trim_messages
from langchain_core.runnables import RunnableConfig
from langchain_openai import ChatOpenAI
from langgraph.graph import END, START, StateGraph

from truckbot.config import Settings, load_settings
from truckbot.fitment.extractor import extract_profile
from truckbot.fitment.gate import FitmentGate, GateAction, is_informational
from truckbot.formatting import BULLET, to_lines
from truckbot.linking.catalog import (
    CatalogEntry,
    best_catalog_picks,
    extract_intent,
    match_link_items,
)
from truckbot.linking.injector import count_links, inject, render_anchor, strip_markup
from truckbot.linking.marketplace import resolve_marketplace
from truckbot.linking.queries import build_query_items, search_link_items
from truckbot.models import PendingOffer, Session, VehicleProfile
from truckbot.persistence.session_store import SessionStore
from truckbot.prompts.truck_prompts import (
    AFFILIATE_DISCLOSURE,
    ASSISTANT_SYSTEM_PROMPT,
    CATALOG_PICKS_INTRO,
    FALLBACK_REPLY,
    OFFER_ACCEPTED_PROMPT,
    UPSELL_OFFER,
)
from truckbot.state import TruckChatState

LOGGER = logging.getLogger("truckbot.graph")

PARTS_PICKS_OFFER = "parts_picks"


def _llm() -> ChatOpenAI:
    timeout_seconds = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "45"))
    return ChatOpenAI(
        model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        temperature=float(os.getenv("OPENAI_TEMPERATURE", "0.6")),
        timeout=timeout_seconds,
    )


def _trim_history(messages: list[BaseMessage]) -> list[BaseMessage]:
    max_messages = max(2, int(os.getenv("MAX_CONTEXT_MESSAGES", "14")))
    trimmer = trim_messages(
        strategy="last",
        max_tokens=max_messages,
        token_counter=len,
        start_on="human",
        include_system=False,
    )
    return trimmer.invoke(messages)


def _latest_human_text(messages: list[BaseMessage]) -> str:
    for message in reversed(messages):
        if getattr(message, "type", None) == "human":
            return str(message.content)
    return ""


def _message_content_as_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
                continue
            if isinstance(item, dict):
                text_value = item.get("text")
                if isinstance(text_value, str):
                    parts.append(text_value)
        return "\n".join(part for part in parts if part)
    return str(content)


def _log_stage_event(
    stage: str,
    session_id: str | None,
    duration_ms: int | None = None,
    status: str | None = None,
    artifacts: dict[str, Any] | None = None,
) -> None:
    if not LOGGER.handlers:
        logging.basicConfig(level=logging.INFO)

    payload: dict[str, Any] = {
        "stage": stage,
        "session_id": session_id,
    }
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    if status is not None:
        payload["status"] = status
    if artifacts is not None:
        payload["artifacts"] = artifacts

    LOGGER.info(json.dumps(payload, ensure_ascii=False))


def _elapsed_ms(started_at: float) -> int:
    return int((time.perf_counter() - started_at) * 1000)


def _configurable(config: RunnableConfig | None) -> dict[str, Any]:
    return dict((config or {}).get("configurable") or {})


def _session_store(config: RunnableConfig | None) -> SessionStore:
    store = _configurable(config).get("session_store")
    return store if isinstance(store, SessionStore) else SessionStore()


def _fitment_gate(config: RunnableConfig | None) -> FitmentGate:
    gate = _configurable(config).get("fitment_gate")
    return gate if isinstance(gate, FitmentGate) else FitmentGate()


def _settings(config: RunnableConfig | None) -> Settings:
    settings = _configurable(config).get("settings")
    return settings if isinstance(settings, Settings) else load_settings()


def _catalog(config: RunnableConfig | None) -> list[CatalogEntry]:
    return list(_configurable(config).get("catalog") or [])


def _clock(config: RunnableConfig | None) -> Callable[[], float]:
    clock = _configurable(config).get("clock")
    return clock if callable(clock) else time.time


def _render_vehicle_context(profile: VehicleProfile) -> str:
    known = profile.known_fields()
    if not known:
        return "Known vehicle profile: none yet."
    missing = profile.missing_core_fields()
    lines = ["Known vehicle profile:", json.dumps(known, ensure_ascii=False)]
    if missing:
        lines.append("Still unknown: " + ", ".join(missing) + ".")
    return "\n".join(lines)


def profile_node(state: TruckChatState, config: RunnableConfig) -> dict[str, Any]:
    started_at = time.perf_counter()
    session: Session = state["session"]
    user_text = _latest_human_text(state["messages"])
    store = _session_store(config)

    try:
        partial = extract_profile(user_text)
        profile, reset = store.apply_message(session, user_text, partial)
    except Exception as exc:
        _log_stage_event(
            "profile",
            session.session_id,
            duration_ms=_elapsed_ms(started_at),
            status="error",
            artifacts={"error": str(exc)},
        )
        return {"session": session, "user_text": user_text, "profile_reset": False}

    _log_stage_event(
        "profile",
        session.session_id,
        duration_ms=_elapsed_ms(started_at),
        status="ok",
        artifacts={"vehicle": profile.known_fields(), "reset": reset},
    )
    return {
        "session": session,
        "user_text": user_text,
        "profile_reset": reset,
        "state_logs": [f"[profile] vehicle={profile.vehicle_string() or '-'} reset={reset}"],
    }


def fitment_gate_node(state: TruckChatState, config: RunnableConfig) -> dict[str, Any]:
    session: Session = state["session"]
    user_text = state.get("user_text", "")
    gate = _fitment_gate(config)

    try:
        decision = gate.decide(session, user_text, session.vehicle)
    except Exception as exc:
        LOGGER.warning("fitment gate failed for session %s: %s", session.session_id, exc)
        return {"gate_action": GateAction.PROCEED.value, "gate_reason": "gate_error", "gate_question": None}

    update: dict[str, Any] = {
        "session": session,
        "gate_action": decision.action.value,
        "gate_reason": decision.reason,
        "gate_question": decision.question,
        "offer_accepted": decision.offer_accepted,
        "state_logs": [
            f"[fitment_gate] action={decision.action.value} reason={decision.reason} "
            f"missing={','.join(decision.missing_fields) or '-'}"
        ],
    }
    if decision.action is GateAction.ASK:
        update["reply"] = decision.question or ""
    return update


def route_after_gate(state: TruckChatState) -> str:
    if state.get("gate_action") == GateAction.ASK.value:
        return "finalize"
    return "assistant"


async def assistant_node(state: TruckChatState) -> dict[str, Any]:
    started_at = time.perf_counter()
    session: Session = state["session"]

    if not os.getenv("OPENAI_API_KEY"):
        return {"draft_reply": FALLBACK_REPLY, "model_failed": True}

    prompt_messages: list[BaseMessage] = [
        SystemMessage(content=ASSISTANT_SYSTEM_PROMPT),
        SystemMessage(content=_render_vehicle_context(session.vehicle)),
    ]
    if state.get("offer_accepted"):
        prompt_messages.append(SystemMessage(content=OFFER_ACCEPTED_PROMPT))

    try:
        response = await _llm().ainvoke(prompt_messages + _trim_history(state["messages"]))
        draft = _message_content_as_text(response.content).strip()
    except Exception as exc:
        _log_stage_event(
            "assistant",
            session.session_id,
            duration_ms=_elapsed_ms(started_at),
            status="error",
            artifacts={"error": str(exc)},
        )
        return {"draft_reply": FALLBACK_REPLY, "model_failed": True}

    if not draft:
        _log_stage_event("assistant", session.session_id, duration_ms=_elapsed_ms(started_at), status="empty")
        return {"draft_reply": FALLBACK_REPLY, "model_failed": True}

    _log_stage_event(
        "assistant",
        session.session_id,
        duration_ms=_elapsed_ms(started_at),
        status="ok",
        artifacts={"chars": len(draft)},
    )
    return {"draft_reply": draft, "model_failed": False}


def linker_node(state: TruckChatState, config: RunnableConfig) -> dict[str, Any]:
    started_at = time.perf_counter()
    session: Session = state["session"]
    draft = state.get("draft_reply", "")
    if state.get("model_failed"):
        return {"linked_reply": draft, "link_count": 0, "query_items": []}

    settings = _settings(config)
    catalog = _catalog(config)
    country = state.get("country")
    user_text = state.get("user_text", "")
    tag = settings.tag_for(country)
    marketplace = resolve_marketplace(country, settings.default_marketplace)

    try:
        query_items = build_query_items(user_text, draft, session.vehicle, settings.max_links)
        direct = match_link_items(catalog, [item.display for item in query_items], tag)
        items = [
            direct.get(item.name.lower(), item)
            for item in search_link_items(query_items, tag, marketplace)
        ]
        cleaned = strip_markup(draft)
        linked = inject(cleaned, items)
    except Exception as exc:
        _log_stage_event(
            "linker",
            session.session_id,
            duration_ms=_elapsed_ms(started_at),
            status="error",
            artifacts={"error": str(exc)},
        )
        return {"linked_reply": draft, "link_count": 0, "query_items": []}

    link_count = count_links(linked) - count_links(cleaned)
    if link_count == 0 and catalog:
        picks = best_catalog_picks(catalog, extract_intent(user_text, session.vehicle))
        if picks:
            rendered = ", ".join(render_anchor(entry.url, entry.title) for entry in picks)
            linked = f"{linked}\n{CATALOG_PICKS_INTRO} {rendered}"
            link_count = len(picks)

    _log_stage_event(
        "linker",
        session.session_id,
        duration_ms=_elapsed_ms(started_at),
        status="ok",
        artifacts={
            "marketplace": marketplace,
            "queries": [item.query for item in query_items],
            "catalog_matches": len(direct),
            "links": link_count,
        },
    )
    return {"linked_reply": linked, "link_count": link_count, "query_items": query_items}


def formatter_node(state: TruckChatState, config: RunnableConfig) -> dict[str, Any]:
    session: Session = state["session"]
    settings = _settings(config)
    body = to_lines(state.get("linked_reply") or state.get("draft_reply") or FALLBACK_REPLY)
    if state.get("model_failed"):
        return {"reply": body}

    lines = [body] if body else []
    link_count = state.get("link_count", 0)

    if state.get("gate_action") == GateAction.SOFT_ASK.value and state.get("gate_question"):
        lines.append(f"{BULLET}{state['gate_question']}")

    user_text = state.get("user_text", "")
    if link_count == 0 and is_informational(user_text) and not session.offered_upsell_after_howto:
        lines.append(f"{BULLET}{UPSELL_OFFER}")
        session.offered_upsell_after_howto = True
        session.pending_offer = PendingOffer(type=PARTS_PICKS_OFFER, at=_clock(config)())

    if link_count > 0 and settings.show_affiliate_disclosure:
        lines.append(AFFILIATE_DISCLOSURE)

    return {"session": session, "reply": "\n".join(lines)}


def finalize_node(state: TruckChatState, config: RunnableConfig) -> dict[str, Any]:
    session: Session = state["session"]
    store = _session_store(config)
    reply = state.get("reply") or FALLBACK_REPLY

    store.append_turn(session, "user", state.get("user_text", ""))
    store.append_turn(session, "assistant", reply)
    return {
        "session": session,
        "reply": reply,
        "messages": [AIMessage(content=reply)],
        "state_logs": [f"[finalize] turns={len(session.turns)}"],
    }


def build_graph() -> Any:
    builder = StateGraph(TruckChatState)

    builder.add_node("profile", profile_node)
    builder.add_node("fitment_gate", fitment_gate_node)
    builder.add_node("assistant", assistant_node)
    builder.add_node("linker", linker_node)
    builder.add_node("formatter", formatter_node)
    builder.add_node("finalize", finalize_node)

    builder.add_edge(START, "profile")
    builder.add_edge("profile", "fitment_gate")
    builder.add_conditional_edges(
        "fitment_gate",
        route_after_gate,
        {
            "assistant": "assistant",
            "finalize": "finalize",
        },
    )
    builder.add_edge("assistant", "linker")
    builder.add_edge("linker", "formatter")
    builder.add_edge("formatter", "finalize")
    builder.add_edge("finalize", END)

    return builder.compile()


graph = build_graph()
