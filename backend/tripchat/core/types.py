from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, model_validator
from pydantic.alias_generators import to_camel

from tripchat.core.errors import StateValidationError
from tripchat.core.normalize import ENTITY_FIELDS, normalize_entities


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntentName(str, Enum):
    destination_recommendations = "destination_recommendations"
    packing_suggestions = "packing_suggestions"
    local_attractions = "local_attractions"
    follow_up = "follow_up"
    refinement = "refinement"


# Declared order matters: completeness checking asks for the first missing field
INTENT_TO_REQUIRED_SLOTS: Dict[IntentName, List[str]] = {
    IntentName.destination_recommendations: ["month_or_season", "budget", "interests"],
    IntentName.packing_suggestions: ["destination", "trip_length_days", "month_or_season"],
    IntentName.local_attractions: ["destination", "trip_length_days", "interests"],
}

ACTIONABLE_INTENTS = frozenset(INTENT_TO_REQUIRED_SLOTS)
FOLLOW_UP_INTENTS = frozenset({IntentName.follow_up, IntentName.refinement})


class DialogueState(str, Enum):
    routing = "routing"
    follow_up = "follow_up"
    checking_completeness = "checking_completeness"
    asking = "asking"
    planning = "planning"
    idle = "idle"


class Entities(BaseModel):
    """Trip slots. Always stored in normalized form."""

    model_config = ConfigDict(frozen=True)

    destination: Optional[str] = None
    trip_length_days: Optional[int] = None
    month_or_season: Optional[str] = None
    budget: Optional[Literal["low", "medium", "high"]] = None
    interests: Optional[List[str]] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return normalize_entities(data)
        return data

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def merged(self, other: "Entities") -> "Entities":
        """Return a copy where fields present in `other` win."""
        return Entities.model_validate({**self.as_dict(), **other.as_dict()})

    def is_empty(self) -> bool:
        return not self.as_dict()

    def get(self, field: str) -> Any:
        return getattr(self, field) if field in ENTITY_FIELDS else None


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    intent: Optional[str] = None
    entities: Optional[Entities] = None


class PlanRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: IntentName
    entities: Entities
    result: str
    timestamp: datetime = Field(default_factory=utcnow)


class Session(BaseModel):
    session_id: str
    last_access: float = 0.0
    context: Entities = Field(default_factory=Entities)
    history: List[Turn] = Field(default_factory=list)
    plans: List[PlanRecord] = Field(default_factory=list)
    pending_field: Optional[str] = None
    intent: Optional[IntentName] = None
    turn: int = 0
    profile: Dict[str, Any] = Field(default_factory=dict)

    def add_turn(self, role: str, text: str, intent: Optional[str] = None, entities: Optional[Entities] = None) -> None:
        self.history.append(Turn(role=role, text=text, intent=intent, entities=entities))

    def last_plan(self) -> Optional[PlanRecord]:
        return self.plans[-1] if self.plans else None

    def check_invariants(self) -> None:
        if not self.session_id:
            raise StateValidationError("session_id is empty")
        if self.turn < 0:
            raise StateValidationError(f"negative turn counter: {self.turn}")
        if self.pending_field is not None:
            if self.pending_field not in ENTITY_FIELDS:
                raise StateValidationError(f"unknown pending field: {self.pending_field}")
            if self.intent not in ACTIONABLE_INTENTS:
                raise StateValidationError("pending field set without an actionable intent")
        if self.context.as_dict() != normalize_entities(self.context.as_dict()):
            raise StateValidationError("context is not normalized")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(_CamelModel):
    message: StrictStr
    session_id: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None


class ChatResponse(_CamelModel):
    session_id: str
    reply: str
    done: bool
    intent: Optional[str] = None
    conversation_turn: int = 0
    has_context: bool = False


class HistoryResponse(_CamelModel):
    session_id: str
    history: List[Turn]
    length: int


class SessionInfo(_CamelModel):
    session_id: str
    conversation_turn: int
    conversation_context: Dict[str, Any]
    history_length: int
    last_intent: Optional[str] = None
    previous_plans: int = 0
    pending_field: Optional[str] = None


class StoreStats(_CamelModel):
    active_sessions: int
    max_age_minutes: float
    uptime_seconds: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)
