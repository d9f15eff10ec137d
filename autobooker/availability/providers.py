"""
Event sources: the calendar backends the availability service reads and writes.

Real calendar integrations (Google, Outlook, a CRM) implement the same
``EventSource`` protocol. The in-memory source backs tests and the console
demo; the seeded demo source adds a deterministic busy schedule on top.
"""

import asyncio
import logging
import random
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Protocol, runtime_checkable
from zoneinfo import ZoneInfo

from autobooker.errors import ProviderError
from autobooker.schemas.calendar_schema import CalendarEvent, EventStatus

logger = logging.getLogger(__name__)

# Demo schedule generation parameters
DEMO_SEED = 42
BUSY_DAY_PROBABILITY = 0.7
DEMO_FIRST_HOUR = 9
DEMO_LAST_HOUR = 16
DEMO_DURATIONS = (30, 60, 90)


@runtime_checkable
class EventSource(Protocol):
    """Capability set every calendar backend must provide."""

    name: str

    async def fetch_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        """Return events overlapping ``[start, end)``."""
        ...

    async def create_event(self, event: CalendarEvent) -> str:
        """Persist ``event`` and return the id it is stored under."""
        ...

    async def cancel_event(self, event_id: str) -> bool:
        """Mark an event cancelled. Returns False when the id is unknown."""
        ...


class InMemoryEventSource:
    """Dict-backed event source with optional simulated latency and outage."""

    def __init__(
        self,
        name: str = "memory",
        events: Optional[Iterable[CalendarEvent]] = None,
        latency: float = 0.0,
        fail: bool = False,
    ) -> None:
        self.name = name
        self.latency = latency
        self.fail = fail
        self._events: dict[str, CalendarEvent] = {}
        for event in events or ():
            self.add_event(event)

    def add_event(self, event: CalendarEvent) -> None:
        """Seed an event directly, bypassing latency and failure simulation."""
        self._events[event.id] = event

    @property
    def events(self) -> list[CalendarEvent]:
        return sorted(self._events.values(), key=lambda e: e.start)

    async def _simulate(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail:
            raise ProviderError(self.name, f"{operation} unavailable")

    async def fetch_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        await self._simulate("fetch")
        return [e for e in self.events if e.start < end and e.end > start]

    async def create_event(self, event: CalendarEvent) -> str:
        await self._simulate("create")
        if event.id in self._events:
            raise ProviderError(self.name, f"event id {event.id} already exists")
        self._events[event.id] = event
        logger.info("Event stored in %s: %s (%s - %s)", self.name, event.id, event.start, event.end)
        return event.id

    async def cancel_event(self, event_id: str) -> bool:
        await self._simulate("cancel")
        existing = self._events.get(event_id)
        if existing is None:
            return False
        self._events[event_id] = existing.model_copy(update={"status": EventStatus.CANCELLED})
        logger.info("Event cancelled in %s: %s", self.name, event_id)
        return True


class SeededDemoEventSource(InMemoryEventSource):
    """In-memory source that also reports a reproducible pseudo-random workload.

    Each day gets its own RNG seeded from the day, so repeated queries for
    the same date always see the same busy appointments.
    """

    def __init__(
        self,
        name: str = "demo",
        timezone: str = "Europe/Paris",
        seed: int = DEMO_SEED,
        **kwargs,
    ) -> None:
        super().__init__(name=name, **kwargs)
        self._tz = ZoneInfo(timezone)
        self._seed = seed

    def _generated_for(self, day: date) -> list[CalendarEvent]:
        rng = random.Random(f"{self._seed}:{day.isoformat()}")
        if rng.random() >= BUSY_DAY_PROBABILITY:
            return []
        events = []
        for i in range(rng.randint(1, 3)):
            hour = rng.randint(DEMO_FIRST_HOUR, DEMO_LAST_HOUR)
            start = datetime.combine(day, time(hour, 0), tzinfo=self._tz)
            events.append(CalendarEvent(
                id=f"demo_{day:%Y%m%d}_{i}",
                title="Rendez-vous client",
                start=start,
                end=start + timedelta(minutes=rng.choice(DEMO_DURATIONS)),
                source=self.name,
            ))
        return events

    async def fetch_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        stored = await super().fetch_events(start, end)
        generated = []
        day = start.astimezone(self._tz).date()
        last = end.astimezone(self._tz).date()
        while day <= last:
            generated.extend(
                e for e in self._generated_for(day) if e.start < end and e.end > start
            )
            day += timedelta(days=1)
        return sorted(stored + generated, key=lambda e: e.start)
