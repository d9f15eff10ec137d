"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from autobooker.assistant import BookingAssistant
from autobooker.availability.availability_service import AvailabilityService
from autobooker.availability.providers import InMemoryEventSource
from autobooker.conversation.engine import ConversationEngine
from autobooker.conversation.intent_classifier import RuleBasedIntentClassifier
from autobooker.conversation.session_store import InMemorySessionStore
from autobooker.conversation.slot_manager import SlotManager
from autobooker.conversation.guardrails import MessageGuardrailPipeline
from autobooker.schemas.calendar_schema import CalendarConfig, CalendarEvent, EventStatus
from autobooker.schemas.conversation_schema import ConversationContext
from autobooker.tools.notifications import RecordingNotifier

PARIS = ZoneInfo("Europe/Paris")

# Thursday 15 October 2026, 09:00 in Paris
NOW = datetime(2026, 10, 15, 9, 0, tzinfo=PARIS)
TOMORROW = "2026-10-16"       # Friday, open 09:00-17:00
SATURDAY = "2026-10-17"       # open 09:00-13:00
SUNDAY = "2026-10-18"         # closed
MONDAY = "2026-10-19"


class FakeClock:
    """Settable clock shared by the service and the session store."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def at(day: str, hhmm: str) -> datetime:
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime.combine(date.fromisoformat(day), datetime.min.time(), tzinfo=PARIS).replace(
        hour=hour, minute=minute
    )


def make_event(
    event_id: str,
    day: str,
    start: str,
    end: str,
    status: EventStatus = EventStatus.CONFIRMED,
    source: str = "memory",
) -> CalendarEvent:
    """Helper to create a CalendarEvent on a Paris wall-clock interval."""
    return CalendarEvent(
        id=event_id,
        title="Existing appointment",
        start=at(day, start),
        end=at(day, end),
        status=status,
        source=source,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def calendar_config():
    return CalendarConfig(buffer_minutes=0)


@pytest.fixture
def provider():
    return InMemoryEventSource()


@pytest.fixture
def availability(calendar_config, provider, clock):
    return AvailabilityService(config=calendar_config, providers=[provider], clock=clock)


@pytest.fixture
def slot_manager():
    return SlotManager()


@pytest.fixture
def guardrail_pipeline():
    return MessageGuardrailPipeline(max_length=2000)


@pytest.fixture
def classifier():
    return RuleBasedIntentClassifier()


@pytest.fixture
def engine(classifier, availability):
    return ConversationEngine(classifier, availability)


@pytest.fixture
def context():
    return ConversationContext(session_id="test-session")


@pytest.fixture
def store(clock):
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def assistant(availability, engine, store, notifier):
    return BookingAssistant(availability, engine, store, notifier)


def make_context(session_id: str = "test-session", **kwargs) -> ConversationContext:
    return ConversationContext(session_id=session_id, **kwargs)


def slot_times(slots, available: Optional[bool] = None) -> list[str]:
    return [s.time for s in slots if available is None or s.available == available]
