"""
Availability service: slot listing, booking validation and booking creation.

Orchestrates the pure slot calculus against one or more configured event
sources. All expected failures come back as typed ``BookingError`` values;
nothing in the public API raises for a policy violation or a provider outage.
"""

import asyncio
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from autobooker.availability.providers import EventSource
from autobooker.availability.slot_calculus import (
    day_window,
    find_conflicts,
    fits_business_hours,
    generate_slots,
)
from autobooker.errors import ProviderError
from autobooker.schemas.calendar_schema import (
    AvailabilityResult,
    BookingError,
    BookingErrorKind,
    BookingRequest,
    BookingResult,
    CalendarConfig,
    CalendarEvent,
    EventStatus,
    TimeSlot,
)
from autobooker.utils import KeyedLocks, parse_hhmm

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60
DEFAULT_SLOT_INTERVAL = 30
DEFAULT_PROVIDER_TIMEOUT = 10.0
MAX_ALTERNATIVES = 5
ALTERNATIVE_HORIZON_DAYS = 7

# Failures of a single provider call that fall back to the next provider
_PROVIDER_FAILURES = (asyncio.TimeoutError, ProviderError, OSError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityService:
    """
    Computes bookable slots and creates bookings without double-booking.

    Events from every configured provider are merged for conflict checks.
    Bookings are written to the first provider, in configuration order,
    that accepts them; the winning provider is reported in the result.
    """

    def __init__(
        self,
        config: Optional[CalendarConfig] = None,
        providers: Iterable[EventSource] = (),
        clock: Optional[Callable[[], datetime]] = None,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        slot_interval: int = DEFAULT_SLOT_INTERVAL,
        default_duration: int = DEFAULT_DURATION_MINUTES,
    ) -> None:
        self._config = config or CalendarConfig()
        self._providers: list[EventSource] = []
        self._clock = clock or _utcnow
        self._timeout = provider_timeout
        self.slot_interval = slot_interval
        self.default_duration = default_duration
        self._booking_locks = KeyedLocks()
        for provider in providers:
            self.configure_provider(provider)

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    def configure_provider(self, provider: EventSource) -> None:
        """Add an event source, replacing any provider with the same name."""
        for i, existing in enumerate(self._providers):
            if existing.name == provider.name:
                self._providers[i] = provider
                logger.info("Calendar provider replaced: %s", provider.name)
                return
        self._providers.append(provider)
        logger.info("Calendar provider configured: %s", provider.name)

    @property
    def providers(self) -> list[EventSource]:
        return list(self._providers)

    def get_config(self) -> CalendarConfig:
        return self._config

    def replace_config(self, config: CalendarConfig) -> None:
        """Swap in a complete, already-validated configuration."""
        self._config = config
        logger.info("Calendar configuration replaced")

    def update_config(self, **changes) -> CalendarConfig:
        """Apply a partial update, validated as a whole before it takes effect.

        Raises:
            pydantic.ValidationError: If the merged configuration is invalid.
                The active configuration is left unchanged.
        """
        merged = self._config.model_dump()
        merged.update(changes)
        updated = CalendarConfig.model_validate(merged)
        self.replace_config(updated)
        return updated

    def now(self) -> datetime:
        """Current time in the business timezone."""
        return self._clock().astimezone(self._config.tzinfo)

    # ------------------------------------------------------------------ #
    # Event retrieval
    # ------------------------------------------------------------------ #

    async def get_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        """Merged events from every provider, ordered by start.

        Raises:
            ProviderError: If any provider fails or exceeds the timeout.
        """
        events: list[CalendarEvent] = []
        for provider in self._providers:
            try:
                fetched = await asyncio.wait_for(
                    provider.fetch_events(start, end), timeout=self._timeout
                )
            except asyncio.TimeoutError:
                raise ProviderError(provider.name, "fetch timed out") from None
            except OSError as exc:
                raise ProviderError(provider.name, f"fetch failed: {exc}") from exc
            events.extend(fetched)
        return sorted(events, key=lambda e: e.start)

    # ------------------------------------------------------------------ #
    # Slot listing
    # ------------------------------------------------------------------ #

    async def get_available_slots(
        self,
        day: str,
        duration: Optional[int] = None,
        interval: Optional[int] = None,
    ) -> AvailabilityResult:
        """
        Compute every slot for ``day`` (YYYY-MM-DD), available or not.

        Filtering to available slots is left to the caller. A closed day
        yields an empty slot list, not an error.
        """
        duration = duration or self.default_duration
        interval = interval or self.slot_interval
        try:
            target = date.fromisoformat(day)
        except ValueError:
            return AvailabilityResult(
                date=day,
                duration_minutes=duration,
                error=BookingError(
                    kind=BookingErrorKind.VALIDATION, message=f"Invalid date {day!r}"
                ),
            )
        if duration <= 0 or interval <= 0:
            return AvailabilityResult(
                date=day,
                duration_minutes=duration,
                error=BookingError(
                    kind=BookingErrorKind.VALIDATION,
                    message="Duration and interval must be positive",
                ),
            )

        config = self._config
        hours = config.hours_for(target)
        window = day_window(target, hours, config.tzinfo)
        if window is None:
            return AvailabilityResult(date=day, duration_minutes=duration)

        buffer = timedelta(minutes=config.buffer_minutes)
        try:
            events = await self.get_events(window[0] - buffer, window[1] + buffer)
        except ProviderError as exc:
            logger.warning("Slot query for %s failed: %s", day, exc)
            return AvailabilityResult(
                date=day,
                duration_minutes=duration,
                error=BookingError(kind=BookingErrorKind.PROVIDER_FAILURE, message=str(exc)),
            )

        slots = generate_slots(
            target, duration, interval, hours, events, config.tzinfo, config.buffer_minutes
        )
        logger.debug(
            "%d slots computed for %s (%d available)",
            len(slots), day, sum(1 for s in slots if s.available),
        )
        return AvailabilityResult(date=day, duration_minutes=duration, slots=slots)

    def is_bookable(self, start: datetime) -> bool:
        """Check the advance-notice and maximum-horizon window for a start time."""
        now = self.now()
        earliest = now + timedelta(days=self._config.advance_booking_days)
        latest = now + timedelta(days=self._config.max_booking_days)
        return earliest <= start <= latest

    def bookable_slots(self, result: AvailabilityResult) -> list[TimeSlot]:
        """Slots from ``result`` that are free and inside the booking window."""
        return [s for s in result.available_slots if self.is_bookable(s.start)]

    async def find_alternatives(
        self,
        day: str,
        duration: Optional[int] = None,
        limit: int = MAX_ALTERNATIVES,
        horizon_days: int = ALTERNATIVE_HORIZON_DAYS,
    ) -> AvailabilityResult:
        """Collect up to ``limit`` bookable slots starting from ``day``.

        Walks forward day by day, so the first slots are on the requested
        date when it has any room left.
        """
        duration = duration or self.default_duration
        try:
            current = date.fromisoformat(day)
        except ValueError:
            return AvailabilityResult(
                date=day,
                duration_minutes=duration,
                error=BookingError(
                    kind=BookingErrorKind.VALIDATION, message=f"Invalid date {day!r}"
                ),
            )

        found: list[TimeSlot] = []
        for _ in range(horizon_days):
            result = await self.get_available_slots(current.isoformat(), duration)
            if result.error is not None:
                return AvailabilityResult(
                    date=day, duration_minutes=duration, slots=found, error=result.error
                )
            found.extend(self.bookable_slots(result))
            if len(found) >= limit:
                break
            current += timedelta(days=1)
        return AvailabilityResult(date=day, duration_minutes=duration, slots=found[:limit])

    # ------------------------------------------------------------------ #
    # Booking
    # ------------------------------------------------------------------ #

    def validate_booking_request(self, request: BookingRequest) -> Optional[BookingError]:
        """
        Check a request against booking policy.

        Checks run in a fixed order and the first failure is reported:
        field format, minimum notice, maximum horizon, open day, opening hours.

        Returns:
            None when the request is acceptable, otherwise the first error.
        """
        try:
            day = request.parsed_date()
            start_minutes = parse_hhmm(request.time)
        except ValueError:
            return BookingError(
                kind=BookingErrorKind.VALIDATION,
                message=f"Invalid date or time: {request.date!r} {request.time!r}",
            )
        if request.duration_minutes <= 0:
            return BookingError(
                kind=BookingErrorKind.VALIDATION,
                message=f"Duration must be positive, got {request.duration_minutes}",
            )

        config = self._config
        start = request.start_at(config.tzinfo)
        now = self.now()

        earliest = now + timedelta(days=config.advance_booking_days)
        if start < earliest:
            return BookingError(
                kind=BookingErrorKind.INVALID_WINDOW,
                message=f"Bookings need at least {config.advance_booking_days} day(s) notice",
            )
        latest = now + timedelta(days=config.max_booking_days)
        if start > latest:
            return BookingError(
                kind=BookingErrorKind.INVALID_WINDOW,
                message=f"Bookings cannot be made more than {config.max_booking_days} days ahead",
            )

        hours = config.hours_for(day)
        if not hours.is_open:
            return BookingError(
                kind=BookingErrorKind.OUT_OF_HOURS, message=f"Closed on {day:%A}"
            )
        if not fits_business_hours(start_minutes, request.duration_minutes, hours):
            return BookingError(
                kind=BookingErrorKind.OUT_OF_HOURS,
                message=f"Opening hours on {day:%A} are {hours.open} to {hours.close}",
            )
        return None

    async def _conflicts_for(self, request: BookingRequest, config: CalendarConfig) -> list[str]:
        start = request.start_at(config.tzinfo)
        end = request.end_at(config.tzinfo)
        buffer = timedelta(minutes=config.buffer_minutes)
        events = await self.get_events(start - buffer, end + buffer)
        return find_conflicts(start, end, events, config.buffer_minutes)

    async def check_request(self, request: BookingRequest) -> Optional[BookingError]:
        """Validate a request and test it against current events without booking.

        The answer is advisory: ``create_booking`` repeats the conflict check
        under the booking lock.
        """
        error = self.validate_booking_request(request)
        if error is not None:
            return error
        try:
            conflicts = await self._conflicts_for(request, self._config)
        except ProviderError as exc:
            logger.warning("Availability check failed: %s", exc)
            return BookingError(kind=BookingErrorKind.PROVIDER_FAILURE, message=str(exc))
        if conflicts:
            return BookingError(
                kind=BookingErrorKind.CONFLICT,
                message=f"{request.date} {request.time} is not available",
                conflict_ids=conflicts,
            )
        return None

    async def create_booking(self, request: BookingRequest) -> BookingResult:
        """
        Validate, re-check conflicts and persist a booking.

        The conflict check and the write happen under one lock per booking
        date, so two overlapping requests can never both succeed.
        """
        error = self.validate_booking_request(request)
        if error is not None:
            logger.info("Booking rejected (%s): %s", error.kind.value, error.message)
            return BookingResult(success=False, error=error)
        if not self._providers:
            return BookingResult.failed(
                BookingErrorKind.PROVIDER_FAILURE, "No calendar provider configured"
            )

        config = self._config
        start = request.start_at(config.tzinfo)
        end = request.end_at(config.tzinfo)

        # keyed by the parsed day so every spelling of one date shares a lock
        async with self._booking_locks.hold(request.parsed_date()):
            try:
                conflicts = await self._conflicts_for(request, config)
            except ProviderError as exc:
                logger.warning("Conflict check failed: %s", exc)
                return BookingResult.failed(BookingErrorKind.PROVIDER_FAILURE, str(exc))

            if conflicts:
                logger.info("Booking %s %s conflicts with %s", request.date, request.time, conflicts)
                return BookingResult.failed(
                    BookingErrorKind.CONFLICT,
                    f"{request.date} {request.time} is no longer available",
                    conflict_ids=conflicts,
                )

            for provider in self._providers:
                event = CalendarEvent(
                    id=f"{provider.name}_{uuid.uuid4().hex[:12]}",
                    title=request.title,
                    start=start,
                    end=end,
                    status=EventStatus.CONFIRMED,
                    source=provider.name,
                    description=build_event_description(request),
                    attendees=[request.client_email] if request.client_email else [],
                )
                try:
                    stored_id = await asyncio.wait_for(
                        provider.create_event(event), timeout=self._timeout
                    )
                except _PROVIDER_FAILURES as exc:
                    logger.warning(
                        "Provider %s failed to store booking: %r", provider.name, exc
                    )
                    await self._roll_back(provider, event.id)
                    continue

                logger.info(
                    "Booking created: %s via %s on %s at %s",
                    stored_id, provider.name, request.date, request.time,
                )
                return BookingResult(
                    success=True, event_id=stored_id, provider=provider.name, start=start, end=end
                )

        return BookingResult.failed(
            BookingErrorKind.PROVIDER_FAILURE, "All calendar providers failed to store the booking"
        )

    async def _roll_back(self, provider: EventSource, event_id: str) -> None:
        """Cancel a possibly half-written event so no orphan survives a failure."""
        try:
            await asyncio.wait_for(
                asyncio.shield(provider.cancel_event(event_id)), timeout=self._timeout
            )
        except _PROVIDER_FAILURES as exc:
            logger.warning("Rollback of %s on %s did not complete: %r", event_id, provider.name, exc)

    async def cancel_booking(self, event_id: str) -> BookingResult:
        """Mark a booking cancelled on whichever provider holds it."""
        last_error: Optional[str] = None
        for provider in self._providers:
            try:
                cancelled = await asyncio.wait_for(
                    provider.cancel_event(event_id), timeout=self._timeout
                )
            except _PROVIDER_FAILURES as exc:
                last_error = f"{provider.name}: {exc!r}"
                continue
            if cancelled:
                logger.info("Booking cancelled: %s via %s", event_id, provider.name)
                return BookingResult(success=True, event_id=event_id, provider=provider.name)

        if last_error is not None:
            return BookingResult.failed(BookingErrorKind.PROVIDER_FAILURE, last_error)
        return BookingResult.failed(BookingErrorKind.VALIDATION, f"Unknown booking {event_id}")


def build_event_description(request: BookingRequest) -> str:
    """Human-readable event body stored alongside the booking."""
    lines = [f"Service: {request.service_type}", f"Durée: {request.duration_minutes} minutes"]
    if request.client_name:
        lines.append(f"Client: {request.client_name}")
    if request.notes:
        lines.append(f"\nNotes: {request.notes}")
    if request.client_phone:
        lines.append(f"\nTéléphone: {request.client_phone}")
    lines.append("\nRéservé via AutoBooker")
    return "\n".join(lines)
