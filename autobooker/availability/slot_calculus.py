"""
Pure slot arithmetic: business-hour windows, overlap tests, slot generation.

Nothing here performs I/O or reads configuration globals. Every function
is deterministic for its inputs so it can be unit-tested directly.
"""

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Optional

from autobooker.schemas.calendar_schema import CalendarEvent, DayHours, TimeSlot


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Strict interval overlap. Touching boundaries do not overlap."""
    return a_start < b_end and a_end > b_start


def find_conflicts(
    start: datetime,
    end: datetime,
    events: Iterable[CalendarEvent],
    buffer_minutes: int = 0,
) -> list[str]:
    """Return ids of blocking events overlapping ``[start, end)``.

    Each event is widened by ``buffer_minutes`` on both sides, so a slot
    must leave that much room before and after an existing appointment.
    Cancelled events never conflict.
    """
    buffer = timedelta(minutes=buffer_minutes)
    return [
        event.id
        for event in events
        if event.blocks_time and overlaps(start, end, event.start - buffer, event.end + buffer)
    ]


def day_window(day: date, hours: DayHours, tz: tzinfo) -> Optional[tuple[datetime, datetime]]:
    """Aware open/close datetimes for ``day``, or None when closed."""
    if not hours.is_open:
        return None
    open_m, close_m = hours.open_minutes, hours.close_minutes
    opening = datetime.combine(day, time(open_m // 60, open_m % 60), tzinfo=tz)
    closing = datetime.combine(day, time(close_m // 60, close_m % 60), tzinfo=tz)
    return opening, closing


def generate_slots(
    day: date,
    duration_minutes: int,
    interval_minutes: int,
    hours: DayHours,
    events: Iterable[CalendarEvent],
    tz: tzinfo,
    buffer_minutes: int = 0,
) -> list[TimeSlot]:
    """
    Build every candidate slot for ``day`` inside business hours.

    Slots start at opening time and step by ``interval_minutes``. A slot is
    only generated when it ends at or before closing time. Each slot carries
    the ids of the events it collides with; ``available`` follows from that.

    Returns:
        Slots ordered by start time, empty when the day is closed.

    Raises:
        ValueError: If duration or interval is not positive.
    """
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be > 0, got {duration_minutes}")
    if interval_minutes <= 0:
        raise ValueError(f"interval_minutes must be > 0, got {interval_minutes}")

    window = day_window(day, hours, tz)
    if window is None:
        return []
    opening, closing = window

    existing = list(events)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=interval_minutes)

    slots: list[TimeSlot] = []
    current = opening
    while current + duration <= closing:
        slot_end = current + duration
        conflicts = find_conflicts(current, slot_end, existing, buffer_minutes)
        slots.append(TimeSlot(start=current, end=slot_end, conflict_ids=frozenset(conflicts)))
        current += step
    return slots


def fits_business_hours(start_minutes: int, duration_minutes: int, hours: DayHours) -> bool:
    """Check that ``[start, start + duration)`` lies inside the opening window."""
    if not hours.is_open:
        return False
    return hours.open_minutes <= start_minutes and start_minutes + duration_minutes <= hours.close_minutes
