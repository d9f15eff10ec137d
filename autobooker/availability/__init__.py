from autobooker.availability.availability_service import AvailabilityService
from autobooker.availability.providers import (
    EventSource,
    InMemoryEventSource,
    SeededDemoEventSource,
)
from autobooker.availability.slot_calculus import find_conflicts, generate_slots

__all__ = [
    "AvailabilityService",
    "EventSource",
    "InMemoryEventSource",
    "SeededDemoEventSource",
    "find_conflicts",
    "generate_slots",
]
