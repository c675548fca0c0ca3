from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Mapping

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from truckbot.config import Settings, load_settings
from truckbot.fitment.gate import FitmentGate
from truckbot.linking.catalog import CatalogEntry, load_affiliate_catalog
from truckbot.linking.marketplace import resolve_country
from truckbot.models import Session
from truckbot.persistence.kv_store import InMemoryKeyValueStore
from truckbot.persistence.session_store import SessionStore
from truckbot.prompts.truck_prompts import EMPTY_MESSAGE_REPLY, FALLBACK_REPLY
from truckbot.truck_chat_graph import graph as default_graph

LOGGER = logging.getLogger("truckbot.service")

DEFAULT_SESSION_ID = "default"


class KeyedLocks:
    """One asyncio lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


def session_messages(session: Session) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for turn in session.turns:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    return messages


class TruckChatService:
    """Entry point for a chat turn: ``handle_turn(session_id, message) -> {"reply": ...}``."""

    def __init__(
        self,
        settings: Settings | None = None,
        session_store: SessionStore | None = None,
        fitment_gate: FitmentGate | None = None,
        catalog: list[CatalogEntry] | None = None,
        clock: Callable[[], float] = time.time,
        graph: Any = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.clock = clock
        self.session_store = session_store or SessionStore(
            store=InMemoryKeyValueStore(
                ttl_seconds=self.settings.session_ttl_seconds,
                max_entries=self.settings.max_sessions,
                clock=clock,
            ),
            max_turns=self.settings.max_history_turns,
            clock=clock,
        )
        self.fitment_gate = fitment_gate or FitmentGate(
            clock=clock,
            cooldown_seconds=self.settings.fitment_ask_cooldown_seconds,
            pending_offer_ttl_seconds=self.settings.pending_offer_ttl_seconds,
        )
        self.catalog = catalog if catalog is not None else load_affiliate_catalog(self.settings.catalog_path)
        self._graph = graph if graph is not None else default_graph
        self._locks = KeyedLocks()

    def _run_config(self) -> dict[str, Any]:
        return {
            "configurable": {
                "session_store": self.session_store,
                "fitment_gate": self.fitment_gate,
                "settings": self.settings,
                "catalog": self.catalog,
                "clock": self.clock,
            }
        }

    async def handle_turn(
        self,
        session_id: str,
        message: str,
        country_hint: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        if not isinstance(message, str) or not message.strip():
            return {"reply": EMPTY_MESSAGE_REPLY}
        session_id = (session_id or "").strip() or DEFAULT_SESSION_ID
        text = message.strip()

        async with self._locks.hold(session_id):
            session = self.session_store.get_or_create(session_id)
            payload = {
                "messages": session_messages(session) + [HumanMessage(content=text)],
                "session_id": session_id,
                "session": session,
                "country": resolve_country(country_hint, headers),
            }
            try:
                output = await self._graph.ainvoke(payload, config=self._run_config())
                reply = str(output.get("reply") or FALLBACK_REPLY)
                session = output.get("session") or session
            except Exception:
                LOGGER.exception("turn failed for session %s", session_id)
                reply = FALLBACK_REPLY
                self.session_store.append_turn(session, "user", text)
                self.session_store.append_turn(session, "assistant", reply)
            self.session_store.save(session)

        return {"reply": reply}
