"""Calendar, availability and booking data models."""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from autobooker.config import DEFAULT_BUSINESS_HOURS
from autobooker.utils import parse_hhmm

WEEKDAYS: tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


class DayHours(BaseModel):
    """Opening window for one weekday. Both bounds null means closed."""

    model_config = ConfigDict(frozen=True)

    open: Optional[str] = None
    close: Optional[str] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "DayHours":
        if (self.open is None) != (self.close is None):
            raise ValueError("open and close must both be set or both be null")
        if self.open is not None and self.close is not None:
            if parse_hhmm(self.open) >= parse_hhmm(self.close):
                raise ValueError(f"open ({self.open}) must be before close ({self.close})")
        return self

    @property
    def is_open(self) -> bool:
        return self.open is not None and self.close is not None

    @property
    def open_minutes(self) -> Optional[int]:
        return parse_hhmm(self.open) if self.open else None

    @property
    def close_minutes(self) -> Optional[int]:
        return parse_hhmm(self.close) if self.close else None


CLOSED = DayHours()


def _default_hours() -> dict[str, DayHours]:
    return {day: DayHours(**hours) for day, hours in DEFAULT_BUSINESS_HOURS.items()}


class CalendarConfig(BaseModel):
    """Booking policy. Replaced as a whole, never patched in place."""

    model_config = ConfigDict(frozen=True)

    business_hours: dict[str, DayHours] = Field(default_factory=_default_hours)
    timezone: str = "Europe/Paris"
    buffer_minutes: int = Field(default=15, ge=0)
    advance_booking_days: int = Field(default=1, ge=0)
    max_booking_days: int = Field(default=60, ge=0)

    @field_validator("business_hours", mode="before")
    @classmethod
    def _normalize_days(cls, value: dict) -> dict:
        normalized = {}
        for day, hours in value.items():
            key = str(day).lower().strip()
            if key not in WEEKDAYS:
                raise ValueError(f"Unknown weekday: {day!r}")
            normalized[key] = hours
        return normalized

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value!r}") from None
        return value

    @model_validator(mode="after")
    def _check_window(self) -> "CalendarConfig":
        if self.max_booking_days < self.advance_booking_days:
            raise ValueError(
                "max_booking_days must be >= advance_booking_days, "
                f"got {self.max_booking_days} < {self.advance_booking_days}"
            )
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def hours_for(self, day: date) -> DayHours:
        """Opening hours for a calendar date; unlisted weekdays are closed."""
        return self.business_hours.get(WEEKDAYS[day.weekday()], CLOSED)


class EventStatus(str, Enum):
    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


class CalendarEvent(BaseModel):
    """An existing appointment held by an event source."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    start: datetime
    end: datetime
    status: EventStatus = EventStatus.CONFIRMED
    source: str = "internal"
    description: Optional[str] = None
    attendees: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_interval(self) -> "CalendarEvent":
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("event datetimes must be timezone-aware")
        if self.start >= self.end:
            raise ValueError("event start must be before end")
        return self

    @property
    def blocks_time(self) -> bool:
        return self.status != EventStatus.CANCELLED


class TimeSlot(BaseModel):
    """A candidate appointment window. Derived, never persisted."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    conflict_ids: frozenset[str] = frozenset()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def available(self) -> bool:
        return not self.conflict_ids

    @property
    def time(self) -> str:
        return self.start.strftime("%H:%M")


class BookingRequest(BaseModel):
    """Booking data submitted to the availability service."""

    date: str
    time: str
    duration_minutes: int = 60
    title: str = "Consultation"
    service_type: str = "consultation"
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None

    def parsed_date(self) -> date:
        return date.fromisoformat(self.date)

    def start_at(self, tz: ZoneInfo) -> datetime:
        minutes = parse_hhmm(self.time)
        return datetime.combine(
            self.parsed_date(), time(minutes // 60, minutes % 60), tzinfo=tz
        )

    def end_at(self, tz: ZoneInfo) -> datetime:
        return self.start_at(tz) + timedelta(minutes=self.duration_minutes)


class BookingErrorKind(str, Enum):
    VALIDATION = "validation"
    INVALID_WINDOW = "invalid_window"
    OUT_OF_HOURS = "out_of_hours"
    CONFLICT = "conflict"
    PROVIDER_FAILURE = "provider_failure"


class BookingError(BaseModel):
    """Typed failure returned instead of raising."""

    kind: BookingErrorKind
    message: str
    conflict_ids: list[str] = Field(default_factory=list)


class BookingResult(BaseModel):
    """Outcome of a booking or cancellation attempt."""

    success: bool
    event_id: Optional[str] = None
    provider: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    error: Optional[BookingError] = None

    @classmethod
    def failed(
        cls, kind: BookingErrorKind, message: str, conflict_ids: Optional[list[str]] = None
    ) -> "BookingResult":
        return cls(
            success=False,
            error=BookingError(kind=kind, message=message, conflict_ids=conflict_ids or []),
        )


class AvailabilityResult(BaseModel):
    """Computed slots for one date, or the reason they could not be computed."""

    date: str
    duration_minutes: int
    slots: list[TimeSlot] = Field(default_factory=list)
    error: Optional[BookingError] = None

    @property
    def available_slots(self) -> list[TimeSlot]:
        return [slot for slot in self.slots if slot.available]
