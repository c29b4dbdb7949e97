# backend/tests/unit/services/test_scheduling_service.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from smartcal.core.enums import Weekday
from smartcal.core.exceptions import BusinessRuleException, SlotConflictError, ValidationException
from smartcal.domain.schedule import AvailabilityConfig
from smartcal.schemas.meeting import build_meeting_draft
from smartcal.services.availability_service import AvailabilityService
from smartcal.services.meeting_service import MeetingService
from smartcal.services.scheduling_service import SchedulingService, open_percent, week_start

OWNER = "owner-scheduling"
MONDAY = date(2030, 1, 7)


def at(hour: int, minute: int = 0, days: int = 0) -> datetime:
    base = datetime(MONDAY.year, MONDAY.month, MONDAY.day, tzinfo=timezone.utc)
    return base + timedelta(days=days, hours=hour, minutes=minute)


@pytest.fixture
def scheduling(unit_db: Session) -> SchedulingService:
    return SchedulingService(unit_db)


@pytest.fixture
def meetings(unit_db: Session, scheduling: SchedulingService) -> MeetingService:
    return MeetingService(unit_db, scheduling_service=scheduling)


def book(meetings: MeetingService, start: datetime, minutes: int, title: str = "Busy"):
    draft = build_meeting_draft(
        {"title": title, "start_time": start, "end_time": start + timedelta(minutes=minutes)}
    )
    return meetings.create_meeting(OWNER, draft).meeting


class TestFindFreeSlots:
    def test_default_schedule_with_one_meeting(self, scheduling: SchedulingService, meetings: MeetingService):
        book(meetings, at(10), 30)

        config, slots = scheduling.find_free_slots(OWNER, MONDAY, MONDAY + timedelta(days=1), 30)

        assert config.timezone == "UTC"
        assert [(s.start, s.end) for s in slots] == [(at(7), at(9, 45)), (at(10, 45), at(23))]

    def test_meeting_before_span_still_blocks_through_buffer(
        self, unit_db: Session, scheduling: SchedulingService, meetings: MeetingService
    ):
        AvailabilityService(unit_db).replace_schedule(
            OWNER,
            AvailabilityConfig.build(
                {Weekday.MONDAY: (True, [(0, 180)])}, buffer_after=30, durations=[30]
            ),
        )
        book(meetings, at(23, 30, days=-1), 30)

        _, slots = scheduling.find_free_slots(OWNER, MONDAY, MONDAY + timedelta(days=1))

        assert slots[0].start == at(0, 30)

    def test_empty_span_rejected(self, scheduling: SchedulingService):
        with pytest.raises(ValidationException):
            scheduling.find_free_slots(OWNER, MONDAY, MONDAY)

    def test_oversized_span_rejected(self, scheduling: SchedulingService):
        with pytest.raises(ValidationException):
            scheduling.find_free_slots(OWNER, MONDAY, MONDAY + timedelta(days=400))

    def test_weekend_disabled_by_default(self, scheduling: SchedulingService):
        saturday = MONDAY + timedelta(days=5)

        _, slots = scheduling.find_free_slots(OWNER, saturday, saturday + timedelta(days=2))

        assert slots == []


class TestEnsureSlotFree:
    def test_free_time_passes(self, scheduling: SchedulingService):
        scheduling.ensure_slot_free(OWNER, at(9), at(9, 30))

    def test_outside_window_conflicts(self, scheduling: SchedulingService):
        with pytest.raises(SlotConflictError):
            scheduling.ensure_slot_free(OWNER, at(6, 30), at(7, 30))

    def test_inside_buffer_conflicts(self, scheduling: SchedulingService, meetings: MeetingService):
        book(meetings, at(10), 30)

        with pytest.raises(SlotConflictError) as exc:
            scheduling.ensure_slot_free(OWNER, at(10, 30), at(11))
        assert exc.value.code == "SLOT_CONFLICT"

    def test_start_in_the_past_rejected(self, scheduling: SchedulingService):
        with pytest.raises(BusinessRuleException) as exc:
            scheduling.ensure_slot_free(OWNER, at(9), at(9, 30), now=at(9, 0, days=1))
        assert exc.value.code == "SLOT_IN_PAST"
        assert exc.value.status_code == 422

    def test_start_at_now_passes(self, scheduling: SchedulingService):
        scheduling.ensure_slot_free(OWNER, at(9), at(9, 30), now=at(9))


class TestEnsureBookingLimits:
    def test_daily_limit_uses_owner_local_day(
        self, unit_db: Session, scheduling: SchedulingService, meetings: MeetingService
    ):
        availability = AvailabilityService(unit_db)
        availability.set_timezone(OWNER, "America/New_York")
        availability.set_booking_limits(OWNER, max_per_day=1, max_per_email=None, window_days=None)
        # 03:00 UTC Tuesday is still Monday evening in New York
        book(meetings, at(3, days=1), 30)

        with pytest.raises(BusinessRuleException) as exc:
            scheduling.ensure_booking_limits(OWNER, at(15), "sam@example.com", now=at(0))
        assert exc.value.code == "DAILY_BOOKING_LIMIT"
        scheduling.ensure_booking_limits(OWNER, at(15, days=1), "sam@example.com", now=at(0))

    def test_window_is_measured_from_now(self, unit_db: Session, scheduling: SchedulingService):
        AvailabilityService(unit_db).set_booking_limits(
            OWNER, max_per_day=None, max_per_email=None, window_days=2
        )

        scheduling.ensure_booking_limits(OWNER, at(9, days=2), "sam@example.com", now=at(9))
        with pytest.raises(BusinessRuleException) as exc:
            scheduling.ensure_booking_limits(OWNER, at(9, 1, days=2), "sam@example.com", now=at(9))
        assert exc.value.code == "BOOKING_WINDOW_EXCEEDED"


class TestOverview:
    def test_overview_counts(self, scheduling: SchedulingService, meetings: MeetingService):
        book(meetings, at(9), 60, "Planning")
        book(meetings, at(14), 30, "Review")
        book(meetings, at(9, days=2), 60, "Wednesday")

        data = scheduling.overview(OWNER, now=at(8))

        assert data["today_count"] == 2
        assert data["today_minutes"] == 90
        assert data["upcoming_count"] == 3
        assert data["next_meeting"].title == "Planning"
        assert data["by_calendar"] == {"work": 3}
        assert 0 < data["week_open_slot_percent"] < 100

    def test_empty_week_is_fully_open(self, scheduling: SchedulingService):
        data = scheduling.overview(OWNER, now=at(8))

        assert data["next_meeting"] is None
        assert data["week_open_slot_percent"] == 100.0


def test_week_start():
    assert week_start(MONDAY + timedelta(days=6)) == MONDAY
    assert week_start(MONDAY) == MONDAY


def test_open_percent_without_enabled_days():
    config = AvailabilityConfig.build({Weekday.MONDAY: (False, [(0, 60)])})

    assert open_percent(config, []) == 0.0
