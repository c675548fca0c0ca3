from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field

CORE_FIELDS = ("year", "make", "model")
PROFILE_FIELDS = ("year", "make", "model", "bed", "trim", "engine")


class VehicleProfile(BaseModel):
    """Partial vehicle fitment record; every field is optional."""

    year: str | None = None
    make: str | None = None
    model: str | None = None
    bed: str | None = None
    trim: str | None = None
    engine: str | None = None

    def missing_core_fields(self) -> list[str]:
        return [name for name in CORE_FIELDS if not getattr(self, name)]

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in PROFILE_FIELDS)

    def known_fields(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in PROFILE_FIELDS if getattr(self, name)}

    def vehicle_string(self) -> str:
        return " ".join(getattr(self, name) for name in CORE_FIELDS if getattr(self, name))


class Turn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class PendingOffer(BaseModel):
    type: str
    at: float
    accepted: bool = False


class Session(BaseModel):
    """Per-conversation state kept by the session store."""

    session_id: str
    turns: list[Turn] = Field(default_factory=list)
    vehicle: VehicleProfile = Field(default_factory=VehicleProfile)
    asked_fitment_once: bool = False
    last_fitment_ask_at: float | None = None
    offered_upsell_after_howto: bool = False
    pending_offer: PendingOffer | None = None
    created_at: float = 0.0
    updated_at: float = 0.0


@dataclass(frozen=True)
class ProductSignal:
    kind: Literal["category", "brand", "productPhrase"]
    display: str


@dataclass(frozen=True)
class QueryItem:
    display: str
    query: str


@dataclass(frozen=True)
class LinkItem:
    name: str
    url: str
