# backend/tests/unit/services/test_booking_page_service.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from smartcal.core.exceptions import (
    BusinessRuleException,
    NotFoundException,
    SlotConflictError,
    ValidationException,
)
from smartcal.core.enums import ChangeOperation
from smartcal.services.booking_page_service import BookingPageService

OWNER = "owner-pages"
MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(MONDAY.year, MONDAY.month, MONDAY.day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def service(unit_db: Session) -> BookingPageService:
    return BookingPageService(unit_db)


class TestPageManagement:
    def test_create_derives_slug(self, service: BookingPageService):
        page = service.create(OWNER, "Intro Call", 30)

        assert page.slug == "intro-call"
        assert page.owner_id == OWNER

    def test_slug_collision_gets_suffix_across_owners(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        second = service.create("another-owner", "Intro call!", 45)
        third = service.create(OWNER, "intro call", 15)

        assert second.slug == "intro-call-2"
        assert third.slug == "intro-call-3"

    def test_slug_stable_on_rename(self, service: BookingPageService):
        page = service.create(OWNER, "Intro Call", 30)

        updated = service.update_page(OWNER, page.id, name="Discovery Call", duration_minutes=45)

        assert updated.slug == "intro-call"
        assert updated.name == "Discovery Call"
        assert updated.duration_minutes == 45

    @pytest.mark.parametrize("name, duration", [("   ", 30), ("Call", 0), ("Call", 100_000)])
    def test_create_validation(self, service: BookingPageService, name, duration):
        with pytest.raises(ValidationException):
            service.create(OWNER, name, duration)

    def test_pages_are_private_to_owner(self, service: BookingPageService):
        page = service.create(OWNER, "Intro Call", 30)

        with pytest.raises(NotFoundException):
            service.get_page("someone-else", page.id)
        with pytest.raises(NotFoundException):
            service.delete_page("someone-else", page.id)
        assert service.list_pages("someone-else") == []

    def test_delete_page(self, service: BookingPageService):
        page = service.create(OWNER, "Intro Call", 30)

        service.delete_page(OWNER, page.id)

        assert service.list_pages(OWNER) == []
        with pytest.raises(NotFoundException):
            service.resolve("intro-call")


class TestPublicFlow:
    def test_resolve_is_case_insensitive(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)

        assert service.resolve("  Intro-Call ").slug == "intro-call"

    def test_resolve_unknown(self, service: BookingPageService):
        with pytest.raises(NotFoundException):
            service.resolve("nope")

    def test_public_view_reports_owner_zone(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)

        page, zone = service.public_view("intro-call")

        assert page.slug == "intro-call"
        assert zone == "UTC"

    def test_page_slots_use_page_duration(self, service: BookingPageService):
        service.create(OWNER, "Deep Dive", 90)

        page, config, slots = service.get_page_slots(
            "deep-dive", MONDAY, MONDAY + timedelta(days=1), now=NOW
        )

        assert page.duration_minutes == 90
        assert slots and all(slot.duration == 90 for slot in slots)

    def test_book_creates_meeting_on_owner_calendar(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)

        mutation = service.book("intro-call", at(9), "Sam Lee", "sam@example.com", note="Hi", now=NOW)

        meeting = mutation.meeting
        assert meeting.created_by == OWNER
        assert meeting.title == "Intro Call with Sam Lee"
        assert meeting.end_time - meeting.start_time == timedelta(minutes=30)
        assert meeting.attendees == ["sam@example.com"]
        assert meeting.description == "Hi"
        assert mutation.event.operation == ChangeOperation.CREATED

    def test_second_booking_of_same_slot_conflicts(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        service.book("intro-call", at(9), "Sam Lee", "sam@example.com", now=NOW)

        with pytest.raises(SlotConflictError):
            service.book("intro-call", at(9), "Alex Kim", "alex@example.com", now=NOW)

    def test_booked_slot_disappears_from_page(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        service.book("intro-call", at(9), "Sam Lee", "sam@example.com", now=NOW)

        _, _, slots = service.get_page_slots("intro-call", MONDAY, MONDAY + timedelta(days=1), now=NOW)

        assert [(s.start, s.end) for s in slots] == [(at(7), at(8, 45)), (at(9, 45), at(23))]


class TestPastTimes:
    def test_booking_in_the_past_rejected(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)

        with pytest.raises(BusinessRuleException) as exc_info:
            service.book("intro-call", at(9), "Sam Lee", "sam@example.com", now=at(9, 1))

        assert exc_info.value.code == "SLOT_IN_PAST"
        assert service.meeting_service.repository.search(OWNER) == []

    def test_slots_start_no_earlier_than_now(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)

        _, _, slots = service.get_page_slots(
            "intro-call", MONDAY, MONDAY + timedelta(days=1), now=at(10, 7)
        )

        assert [(s.start, s.end) for s in slots] == [(at(10, 7), at(23))]

    def test_days_already_over_have_no_slots(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)

        _, _, slots = service.get_page_slots(
            "intro-call", MONDAY, MONDAY + timedelta(days=1), now=at(23)
        )

        assert slots == []


class TestBookingLimits:
    def _limits(self, service: BookingPageService, **limits) -> None:
        values = {"max_per_day": None, "max_per_email": None, "window_days": None}
        values.update(limits)
        service.scheduling_service.availability_service.set_booking_limits(OWNER, **values)

    def test_booking_past_window_rejected(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        far_monday = MONDAY + timedelta(weeks=10)

        with pytest.raises(BusinessRuleException) as exc_info:
            service.book(
                "intro-call",
                datetime(far_monday.year, far_monday.month, far_monday.day, 9, tzinfo=timezone.utc),
                "Sam Lee",
                "sam@example.com",
                now=NOW,
            )

        assert exc_info.value.code == "BOOKING_WINDOW_EXCEEDED"

    def test_slots_stop_at_window_end(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        self._limits(service, window_days=1)
        sunday_noon = at(12) - timedelta(days=1)

        _, _, monday_slots = service.get_page_slots(
            "intro-call", MONDAY, MONDAY + timedelta(days=1), now=sunday_noon
        )
        _, _, tuesday_slots = service.get_page_slots(
            "intro-call", MONDAY + timedelta(days=1), MONDAY + timedelta(days=2), now=sunday_noon
        )

        assert [(s.start, s.latest_start) for s in monday_slots] == [(at(7), at(12))]
        assert tuesday_slots == []

    def test_daily_limit(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        self._limits(service, max_per_day=2)
        service.book("intro-call", at(9), "Sam Lee", "sam@example.com", now=NOW)
        service.book("intro-call", at(11), "Alex Kim", "alex@example.com", now=NOW)

        with pytest.raises(BusinessRuleException) as exc_info:
            service.book("intro-call", at(13), "Kai Diaz", "kai@example.com", now=NOW)

        assert exc_info.value.code == "DAILY_BOOKING_LIMIT"
        # The next day is unaffected
        tuesday_nine = at(9) + timedelta(days=1)
        service.book("intro-call", tuesday_nine, "Kai Diaz", "kai@example.com", now=NOW)

    def test_cancelled_bookings_do_not_count(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        self._limits(service, max_per_day=1)
        first = service.book("intro-call", at(9), "Sam Lee", "sam@example.com", now=NOW)

        service.meeting_service.cancel_meeting(OWNER, first.meeting.id, now=NOW)

        service.book("intro-call", at(11), "Alex Kim", "alex@example.com", now=NOW)

    def test_email_limit_ignores_case(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        self._limits(service, max_per_email=1)
        service.book("intro-call", at(9), "Sam Lee", "sam@example.com", now=NOW)

        with pytest.raises(BusinessRuleException) as exc_info:
            service.book("intro-call", at(11), "Sam Lee", "Sam@Example.com", now=NOW)

        assert exc_info.value.code == "EMAIL_BOOKING_LIMIT"
        service.book("intro-call", at(11), "Alex Kim", "alex@example.com", now=NOW)

    def test_email_limit_counts_upcoming_only(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        self._limits(service, max_per_email=1)
        service.book("intro-call", at(9), "Sam Lee", "sam@example.com", now=NOW)

        # Once the first meeting is over the address may book again
        service.book("intro-call", at(11), "Sam Lee", "sam@example.com", now=at(10))

    def test_disabled_limits_allow_bookings(self, service: BookingPageService):
        service.create(OWNER, "Intro Call", 30)
        self._limits(service)

        for hour in (8, 10, 12, 14):
            service.book("intro-call", at(hour), "Sam Lee", "sam@example.com", now=NOW)

        assert len(service.meeting_service.repository.search(OWNER)) == 4
