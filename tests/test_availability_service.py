"""Tests for the availability service: slot listing, validation, booking."""

import asyncio

import pytest
from pydantic import ValidationError

from autobooker.availability.availability_service import (
    AvailabilityService,
    build_event_description,
)
from autobooker.availability.providers import InMemoryEventSource
from autobooker.errors import ProviderError
from autobooker.schemas.calendar_schema import (
    BookingErrorKind,
    BookingRequest,
    CalendarConfig,
    CalendarEvent,
    EventStatus,
)
from tests.conftest import SATURDAY, SUNDAY, TOMORROW, FakeClock, at, make_event, slot_times


class WriteRefusingSource(InMemoryEventSource):
    """Reads fine, refuses every write."""

    async def create_event(self, event: CalendarEvent) -> str:
        raise ProviderError(self.name, "write refused")


class HangingWriteSource(InMemoryEventSource):
    """Stores the event, then never acknowledges the write."""

    async def create_event(self, event: CalendarEvent) -> str:
        self.add_event(event)
        await asyncio.sleep(10)
        return event.id


def request(day: str = TOMORROW, time: str = "14:00", **kwargs) -> BookingRequest:
    return BookingRequest(date=day, time=time, **kwargs)


class TestSlotListing:
    def test_friday_scenario(self, availability, provider):
        provider.add_event(make_event("evt", TOMORROW, "14:00", "15:00"))
        result = asyncio.run(availability.get_available_slots(TOMORROW, 60, 30))

        assert result.error is None
        assert len(result.slots) == 15
        assert slot_times(result.slots, available=False) == ["13:30", "14:00", "14:30"]
        assert slot_times(result.available_slots)[-1] == "16:00"

    def test_closed_day_returns_empty_without_error(self, availability):
        result = asyncio.run(availability.get_available_slots(SUNDAY))
        assert result.slots == []
        assert result.error is None

    def test_invalid_date_is_validation_error(self, availability):
        result = asyncio.run(availability.get_available_slots("16/10/2026"))
        assert result.error.kind == BookingErrorKind.VALIDATION

    def test_provider_failure_yields_error_and_no_slots(self, clock):
        service = AvailabilityService(providers=[InMemoryEventSource(fail=True)], clock=clock)
        result = asyncio.run(service.get_available_slots(TOMORROW))
        assert result.slots == []
        assert result.error.kind == BookingErrorKind.PROVIDER_FAILURE

    def test_events_from_all_providers_are_merged(self, clock):
        first = InMemoryEventSource(name="first", events=[make_event("a", TOMORROW, "09:00", "10:00")])
        second = InMemoryEventSource(name="second", events=[make_event("b", TOMORROW, "15:00", "16:00")])
        service = AvailabilityService(
            config=CalendarConfig(buffer_minutes=0), providers=[first, second], clock=clock
        )
        result = asyncio.run(service.get_available_slots(TOMORROW))
        busy_ids = set().union(*(s.conflict_ids for s in result.slots))
        assert busy_ids == {"a", "b"}

    def test_slow_provider_times_out(self, clock):
        slow = InMemoryEventSource(latency=0.5)
        service = AvailabilityService(providers=[slow], clock=clock, provider_timeout=0.01)
        with pytest.raises(ProviderError):
            asyncio.run(service.get_events(at(TOMORROW, "09:00"), at(TOMORROW, "17:00")))


class TestValidation:
    def test_valid_request(self, availability):
        assert availability.validate_booking_request(request()) is None

    def test_malformed_time(self, availability):
        error = availability.validate_booking_request(request(time="25:00"))
        assert error.kind == BookingErrorKind.VALIDATION

    def test_malformed_date(self, availability):
        error = availability.validate_booking_request(request(day="2026-13-01"))
        assert error.kind == BookingErrorKind.VALIDATION

    def test_non_positive_duration(self, availability):
        error = availability.validate_booking_request(request(duration_minutes=0))
        assert error.kind == BookingErrorKind.VALIDATION

    def test_same_day_violates_advance_notice(self, availability):
        error = availability.validate_booking_request(request(day="2026-10-15", time="15:00"))
        assert error.kind == BookingErrorKind.INVALID_WINDOW

    def test_advance_notice_boundary_is_inclusive(self, availability):
        assert availability.validate_booking_request(request(time="09:00")) is None

    def test_just_before_advance_boundary(self, availability):
        # 08:30 is also outside opening hours; the window check runs first
        error = availability.validate_booking_request(request(time="08:30"))
        assert error.kind == BookingErrorKind.INVALID_WINDOW

    def test_beyond_max_booking_days(self, availability):
        assert availability.validate_booking_request(request(day="2026-12-14", time="09:00")) is None
        error = availability.validate_booking_request(request(day="2026-12-14", time="10:00"))
        assert error.kind == BookingErrorKind.INVALID_WINDOW

    def test_closed_day(self, availability):
        error = availability.validate_booking_request(request(day=SUNDAY, time="10:00"))
        assert error.kind == BookingErrorKind.OUT_OF_HOURS

    def test_overrunning_closing_time(self, availability):
        error = availability.validate_booking_request(request(day=SATURDAY, time="12:30"))
        assert error.kind == BookingErrorKind.OUT_OF_HOURS

    def test_window_checked_before_hours(self, availability):
        error = availability.validate_booking_request(request(day="2026-10-15", time="20:00"))
        assert error.kind == BookingErrorKind.INVALID_WINDOW

    def test_advance_window_moves_with_clock(self, availability, clock):
        clock.advance(hours=6)  # Thursday 15:00
        error = availability.validate_booking_request(request(time="14:00"))
        assert error.kind == BookingErrorKind.INVALID_WINDOW
        assert availability.validate_booking_request(request(time="15:00")) is None


class TestCreateBooking:
    def test_success_stores_event_and_reports_provider(self, availability, provider):
        result = asyncio.run(availability.create_booking(
            request(client_email="a@example.fr", client_phone="0612345678", notes="Premier RDV")
        ))
        assert result.success
        assert result.provider == "memory"
        assert result.event_id.startswith("memory_")
        stored = provider.events[0]
        assert stored.id == result.event_id
        assert stored.attendees == ["a@example.fr"]
        assert "Réservé via AutoBooker" in stored.description

    def test_policy_violation_is_not_raised(self, availability, provider):
        result = asyncio.run(availability.create_booking(request(day=SUNDAY, time="10:00")))
        assert not result.success
        assert result.error.kind == BookingErrorKind.OUT_OF_HOURS
        assert provider.events == []

    def test_conflict_reports_conflicting_ids(self, availability, provider):
        provider.add_event(make_event("evt", TOMORROW, "14:00", "15:00"))
        result = asyncio.run(availability.create_booking(request(time="14:30")))
        assert result.error.kind == BookingErrorKind.CONFLICT
        assert result.error.conflict_ids == ["evt"]

    def test_cancelled_event_does_not_block(self, availability, provider):
        provider.add_event(make_event("old", TOMORROW, "14:00", "15:00", status=EventStatus.CANCELLED))
        assert asyncio.run(availability.create_booking(request())).success

    def test_concurrent_identical_requests_book_once(self, provider, clock):
        provider.latency = 0.01
        service = AvailabilityService(config=CalendarConfig(buffer_minutes=0), providers=[provider], clock=clock)

        async def book_all():
            return await asyncio.gather(*(service.create_booking(request()) for _ in range(5)))

        results = asyncio.run(book_all())
        assert sum(r.success for r in results) == 1
        assert all(r.error.kind == BookingErrorKind.CONFLICT for r in results if not r.success)
        assert len([e for e in provider.events if e.blocks_time]) == 1

    def test_concurrent_overlapping_requests_book_once(self, provider, clock):
        provider.latency = 0.01
        service = AvailabilityService(config=CalendarConfig(buffer_minutes=0), providers=[provider], clock=clock)

        async def book_both():
            return await asyncio.gather(
                service.create_booking(request(time="14:00")),
                service.create_booking(request(time="14:30")),
            )

        results = asyncio.run(book_both())
        assert sum(r.success for r in results) == 1

    def test_concurrent_requests_with_different_date_spellings_book_once(self, provider, clock):
        provider.latency = 0.01
        service = AvailabilityService(config=CalendarConfig(buffer_minutes=0), providers=[provider], clock=clock)

        async def book_both():
            return await asyncio.gather(
                service.create_booking(request(day=TOMORROW, time="10:00")),
                service.create_booking(request(day=TOMORROW.replace("-", ""), time="10:00")),
            )

        results = asyncio.run(book_both())
        assert sum(r.success for r in results) == 1
        assert len([e for e in provider.events if e.blocks_time]) == 1

    def test_timeout_leaves_no_orphan_event(self, clock):
        hanging = HangingWriteSource(name="hanging")
        service = AvailabilityService(providers=[hanging], clock=clock, provider_timeout=0.05)
        result = asyncio.run(service.create_booking(request()))

        assert not result.success
        assert result.error.kind == BookingErrorKind.PROVIDER_FAILURE
        assert [e for e in hanging.events if e.blocks_time] == []

    def test_falls_back_to_next_provider(self, clock):
        primary = WriteRefusingSource(name="primary")
        backup = InMemoryEventSource(name="backup")
        service = AvailabilityService(providers=[primary, backup], clock=clock)
        result = asyncio.run(service.create_booking(request()))

        assert result.success
        assert result.provider == "backup"
        assert len(backup.events) == 1
        assert primary.events == []

    def test_all_providers_failing(self, clock):
        service = AvailabilityService(
            providers=[WriteRefusingSource(name="a"), WriteRefusingSource(name="b")], clock=clock
        )
        result = asyncio.run(service.create_booking(request()))
        assert result.error.kind == BookingErrorKind.PROVIDER_FAILURE

    def test_no_provider_configured(self, clock):
        service = AvailabilityService(clock=clock)
        result = asyncio.run(service.create_booking(request()))
        assert result.error.kind == BookingErrorKind.PROVIDER_FAILURE

    def test_check_request_does_not_book(self, availability, provider):
        assert asyncio.run(availability.check_request(request())) is None
        assert provider.events == []
        provider.add_event(make_event("evt", TOMORROW, "14:00", "15:00"))
        error = asyncio.run(availability.check_request(request()))
        assert error.kind == BookingErrorKind.CONFLICT


class TestCancelBooking:
    def test_cancel_frees_the_slot(self, availability, provider):
        booked = asyncio.run(availability.create_booking(request()))
        cancelled = asyncio.run(availability.cancel_booking(booked.event_id))

        assert cancelled.success
        assert provider.events[0].status == EventStatus.CANCELLED
        assert asyncio.run(availability.create_booking(request())).success

    def test_unknown_event(self, availability):
        result = asyncio.run(availability.cancel_booking("nope"))
        assert result.error.kind == BookingErrorKind.VALIDATION


class TestAlternatives:
    def test_skips_full_day(self, availability, provider):
        provider.add_event(make_event("full", TOMORROW, "09:00", "17:00"))
        result = asyncio.run(availability.find_alternatives(TOMORROW, 60, limit=3))
        assert len(result.slots) == 3
        assert all(s.start.date().isoformat() == SATURDAY for s in result.slots)

    def test_only_bookable_slots_are_proposed(self, availability):
        result = asyncio.run(availability.find_alternatives("2026-10-15", 60, limit=5))
        assert all(availability.is_bookable(s.start) for s in result.slots)
        assert all(s.start.date().isoformat() != "2026-10-15" for s in result.slots)


class TestConfiguration:
    def test_update_is_validated_as_a_whole(self, availability):
        before = availability.get_config()
        with pytest.raises(ValidationError):
            availability.update_config(max_booking_days=0)
        assert availability.get_config() == before

    def test_valid_update_applies(self, availability):
        updated = availability.update_config(advance_booking_days=0, buffer_minutes=10)
        assert availability.get_config() is updated
        assert updated.buffer_minutes == 10
        assert availability.validate_booking_request(request(day="2026-10-15", time="15:00")) is None

    def test_update_business_hours(self, availability):
        availability.update_config(business_hours={"sunday": {"open": "10:00", "close": "12:00"}})
        assert availability.validate_booking_request(request(day=SUNDAY, time="10:00")) is None
        # unlisted weekdays are closed
        error = availability.validate_booking_request(request(day=TOMORROW, time="10:00"))
        assert error.kind == BookingErrorKind.OUT_OF_HOURS

    def test_invalid_hours_rejected(self):
        with pytest.raises(ValidationError):
            CalendarConfig(business_hours={"monday": {"open": "18:00", "close": "09:00"}})
        with pytest.raises(ValidationError):
            CalendarConfig(business_hours={"monday": {"open": "09:00", "close": None}})

    def test_invalid_timezone_rejected(self):
        with pytest.raises(ValidationError):
            CalendarConfig(timezone="Mars/Olympus")

    def test_configure_provider_replaces_by_name(self, availability, provider):
        replacement = InMemoryEventSource(name="memory")
        availability.configure_provider(replacement)
        assert availability.providers == [replacement]

    def test_event_description(self):
        text = build_event_description(
            request(service_type="suivi", duration_minutes=30, client_phone="0612345678")
        )
        assert "Service: suivi" in text
        assert "Durée: 30 minutes" in text
        assert "Téléphone: 0612345678" in text


def test_clock_is_injected():
    clock = FakeClock()
    service = AvailabilityService(clock=clock)
    assert service.now().isoformat().startswith("2026-10-15T09:00")
