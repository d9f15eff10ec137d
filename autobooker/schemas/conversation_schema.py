"""Conversation data models: intents, slots, stages and per-session context."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntentType(str, Enum):
    BOOK = "book"
    MODIFY = "modify"
    CANCEL = "cancel"
    SERVICE_INFO = "service_info"
    HOURS_INFO = "hours_info"
    GREETING = "greeting"
    OTHER = "other"


class Entity(BaseModel):
    type: str
    value: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class Intent(BaseModel):
    """Classified purpose of one user message. Produced fresh each turn."""

    type: IntentType
    confidence: float = Field(ge=0.0, le=1.0)
    entities: list[Entity] = Field(default_factory=list)

    @classmethod
    def fallback(cls, confidence: float = 0.1) -> "Intent":
        return cls(type=IntentType.OTHER, confidence=confidence)


class Slots(BaseModel):
    """Booking fields accumulated across turns."""

    date: Optional[str] = None
    time: Optional[str] = None
    duration_minutes: Optional[int] = None
    service_type: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None

    def merged(self, update: "Slots") -> "Slots":
        """New non-empty fields overwrite, everything else is kept."""
        changes = {k: v for k, v in update.model_dump().items() if v not in (None, "")}
        return self.model_copy(update=changes)


class ConversationStage(str, Enum):
    GREETING = "greeting"
    INTENT_DETECTION = "intent_detection"
    SLOT_GATHERING = "slot_gathering"
    SLOT_CONFIRMATION = "slot_confirmation"
    PROPOSAL_GENERATION = "proposal_generation"
    BOOKING_CONFIRMATION = "booking_confirmation"
    COMPLETION = "completion"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class UserPreferences(BaseModel):
    preferred_time_slots: list[str] = Field(default_factory=list)
    preferred_services: list[str] = Field(default_factory=list)
    communication_channel: str = "email"
    language: str = "fr"


class ProposedSlot(BaseModel):
    date: str
    time: str


class ConversationContext(BaseModel):
    """Everything remembered about one session between turns."""

    session_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    current_intent: Optional[Intent] = None
    extracted_slots: Slots = Field(default_factory=Slots)
    conversation_stage: ConversationStage = ConversationStage.GREETING
    user_preferences: Optional[UserPreferences] = None
    proposed_slots: list[ProposedSlot] = Field(default_factory=list)
    awaiting_confirmation: bool = False
    booking_requested: bool = False
    booking_event_id: Optional[str] = None
    booking_provider: Optional[str] = None
    reschedule_event_id: Optional[str] = None
    stage_trace: list[ConversationStage] = Field(default_factory=list)

    @property
    def language(self) -> Optional[str]:
        return self.user_preferences.language if self.user_preferences else None

    def history(self) -> list[ChatMessage]:
        return list(self.messages)


class ActionType(str, Enum):
    CREATE_BOOKING = "create_booking"
    SEND_CONFIRMATION = "send_confirmation"
    CANCEL_BOOKING = "cancel_booking"


class Action(BaseModel):
    """Declarative side effect for the host to execute."""

    type: ActionType
    data: dict[str, Any] = Field(default_factory=dict)


class TurnResult(BaseModel):
    reply: str
    context: ConversationContext
    actions: list[Action] = Field(default_factory=list)
