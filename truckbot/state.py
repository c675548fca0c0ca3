from __future__ import annotations

from typing import Annotated, Any, Literal

from langgraph.graph import MessagesState
from typing_extensions import NotRequired

from truckbot.models import QueryItem, Session


def _append_with_cap(current: list[Any] | None, new: list[Any] | None, cap: int) -> list[Any]:
    merged = list(current or [])
    merged.extend(list(new or []))
    if len(merged) > cap:
        return merged[-cap:]
    return merged


def _append_state_logs(current: list[str] | None, new: list[str] | None) -> list[str]:
    return [str(item) for item in _append_with_cap(current, new, cap=100)]


class TruckChatState(MessagesState):
    """Per-turn state shared by the pipeline nodes."""

    session_id: NotRequired[str]
    session: NotRequired[Session]
    country: NotRequired[str | None]
    user_text: NotRequired[str]
    profile_reset: NotRequired[bool]
    gate_action: NotRequired[Literal["ask", "soft_ask", "proceed"]]
    gate_reason: NotRequired[str]
    gate_question: NotRequired[str | None]
    offer_accepted: NotRequired[bool]
    draft_reply: NotRequired[str]
    model_failed: NotRequired[bool]
    query_items: NotRequired[list[QueryItem]]
    linked_reply: NotRequired[str]
    link_count: NotRequired[int]
    reply: NotRequired[str]
    state_logs: NotRequired[Annotated[list[str], _append_state_logs]]
