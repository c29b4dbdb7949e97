# backend/tests/unit/services/test_availability_service.py
from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from smartcal.core.enums import WEEKDAYS, Weekday
from smartcal.core.exceptions import InvalidRangeError, NotFoundException
from smartcal.domain.schedule import (
    AvailabilityConfig,
    BookingLimits,
    BufferConfig,
    DaySchedule,
    TimeRange,
)
from smartcal.models.availability import AvailabilitySettings
from smartcal.models.user import Profile
from smartcal.services.availability_service import AvailabilityService, validate_day_ranges

USER = "user-avail"


@pytest.fixture
def service(unit_db: Session) -> AvailabilityService:
    return AvailabilityService(unit_db)


class TestDefaults:
    def test_get_schedule_initializes_defaults(self, service: AvailabilityService, unit_db: Session):
        config = service.get_schedule(USER)

        assert config.day(Weekday.MONDAY).enabled
        assert [(r.start, r.end) for r in config.day(Weekday.MONDAY).ranges] == [(420, 1380)]
        assert not config.day(Weekday.SATURDAY).enabled
        assert [(r.start, r.end) for r in config.day(Weekday.SATURDAY).ranges] == [(540, 1080)]
        assert config.durations == (30, 60)
        assert config.buffers == BufferConfig(15, 15)
        assert all(r.id for r in config.day(Weekday.MONDAY).ranges)
        assert unit_db.get(AvailabilitySettings, USER) is not None

    def test_get_config_never_writes(self, service: AvailabilityService, unit_db: Session):
        config = service.get_config(USER)

        assert config.any_enabled
        assert unit_db.get(AvailabilitySettings, USER) is None

    def test_defaults_use_profile_timezone(self, service: AvailabilityService, unit_db: Session):
        unit_db.add(Profile(id=USER, time_zone="Europe/Berlin"))
        unit_db.commit()

        assert service.get_schedule(USER).timezone == "Europe/Berlin"

    def test_ensure_defaults_reports_creation_once(self, service: AvailabilityService):
        assert service.ensure_defaults(USER) is True
        assert service.ensure_defaults(USER) is False


class TestRangeEdits:
    def test_add_range_keeps_day_sorted(self, service: AvailabilityService):
        service.replace_schedule(
            USER,
            AvailabilityConfig.build(
                {Weekday.TUESDAY: (True, [(13 * 60, 17 * 60)])}, durations=[30]
            ),
        )

        created = service.add_range(USER, Weekday.TUESDAY, 9 * 60, 12 * 60)
        ranges = service.get_schedule(USER).day(Weekday.TUESDAY).ranges

        assert created.id
        assert [(r.start, r.end) for r in ranges] == [(540, 720), (780, 1020)]

    def test_add_overlapping_range_rejected(self, service: AvailabilityService):
        service.get_schedule(USER)

        with pytest.raises(InvalidRangeError) as exc:
            service.add_range(USER, Weekday.MONDAY, 8 * 60, 9 * 60)

        assert exc.value.details["day"] == "monday"
        assert [(r.start, r.end) for r in service.get_schedule(USER).day(Weekday.MONDAY).ranges] == [
            (420, 1380)
        ]

    def test_add_inverted_range_rejected(self, service: AvailabilityService):
        with pytest.raises(InvalidRangeError):
            service.add_range(USER, Weekday.SATURDAY, 600, 540)

    def test_update_range(self, service: AvailabilityService):
        range_id = service.get_schedule(USER).day(Weekday.MONDAY).ranges[0].id

        updated = service.update_range(USER, Weekday.MONDAY, range_id, 8 * 60, 12 * 60)
        ranges = service.get_schedule(USER).day(Weekday.MONDAY).ranges

        assert updated.id == range_id
        assert [(r.id, r.start, r.end) for r in ranges] == [(range_id, 480, 720)]

    def test_update_unknown_range(self, service: AvailabilityService):
        service.get_schedule(USER)

        with pytest.raises(NotFoundException):
            service.update_range(USER, Weekday.MONDAY, "missing", 480, 540)

    def test_enabled_day_keeps_last_range(self, service: AvailabilityService):
        range_id = service.get_schedule(USER).day(Weekday.MONDAY).ranges[0].id

        with pytest.raises(InvalidRangeError):
            service.remove_range(USER, Weekday.MONDAY, range_id)

    def test_disabled_day_can_lose_every_range(self, service: AvailabilityService):
        range_id = service.get_schedule(USER).day(Weekday.SUNDAY).ranges[0].id

        service.remove_range(USER, Weekday.SUNDAY, range_id)

        assert service.get_schedule(USER).day(Weekday.SUNDAY).ranges == ()


class TestDayToggle:
    def test_enabling_empty_day_seeds_default_range(self, service: AvailabilityService):
        range_id = service.get_schedule(USER).day(Weekday.SUNDAY).ranges[0].id
        service.remove_range(USER, Weekday.SUNDAY, range_id)

        service.set_day_enabled(USER, Weekday.SUNDAY, True)
        sunday = service.get_schedule(USER).day(Weekday.SUNDAY)

        assert sunday.enabled
        assert [(r.start, r.end) for r in sunday.ranges] == [(540, 1020)]

    def test_disable_keeps_ranges(self, service: AvailabilityService):
        service.set_day_enabled(USER, Weekday.MONDAY, False)
        monday = service.get_schedule(USER).day(Weekday.MONDAY)

        assert not monday.enabled
        assert len(monday.ranges) == 1


class TestSettings:
    def test_set_buffers(self, service: AvailabilityService):
        assert service.set_buffers(USER, 5, 10) == BufferConfig(5, 10)
        assert service.get_config(USER).buffers == BufferConfig(5, 10)

    @pytest.mark.parametrize("before, after", [(-1, 0), (0, 10_000)])
    def test_set_buffers_out_of_range(self, service: AvailabilityService, before, after):
        with pytest.raises(InvalidRangeError):
            service.set_buffers(USER, before, after)

    def test_set_durations_dedupes_and_sorts(self, service: AvailabilityService):
        assert service.set_durations(USER, [60, 15, 60]) == (15, 60)
        assert service.get_config(USER).durations == (15, 60)

    def test_durations_required_while_a_day_is_enabled(self, service: AvailabilityService):
        with pytest.raises(InvalidRangeError):
            service.set_durations(USER, [])

    def test_set_timezone(self, service: AvailabilityService):
        service.set_timezone(USER, "Asia/Tokyo")

        assert service.get_config(USER).timezone == "Asia/Tokyo"

    def test_set_unknown_timezone(self, service: AvailabilityService):
        with pytest.raises(InvalidRangeError):
            service.set_timezone(USER, "Mars/Olympus")


class TestBookingLimits:
    def test_defaults(self, service: AvailabilityService):
        assert service.get_schedule(USER).limits == BookingLimits(10, 3, 60)
        assert service.get_config("never-saved").limits == BookingLimits(10, 3, 60)

    def test_set_booking_limits(self, service: AvailabilityService):
        saved = service.set_booking_limits(USER, max_per_day=4, max_per_email=None, window_days=14)

        assert saved == BookingLimits(4, None, 14)
        assert service.get_config(USER).limits == saved

    @pytest.mark.parametrize(
        "limits",
        [
            {"max_per_day": 0, "max_per_email": 3, "window_days": 60},
            {"max_per_day": 10, "max_per_email": -1, "window_days": 60},
            {"max_per_day": 10, "max_per_email": 3, "window_days": 0},
            {"max_per_day": 10, "max_per_email": 3, "window_days": 366},
        ],
    )
    def test_invalid_limits_rejected(self, service: AvailabilityService, limits):
        with pytest.raises(InvalidRangeError):
            service.set_booking_limits(USER, **limits)

        assert service.get_config(USER).limits == BookingLimits(10, 3, 60)

    def test_replace_schedule_keeps_limits(self, service: AvailabilityService):
        service.set_booking_limits(USER, max_per_day=2, max_per_email=1, window_days=7)

        saved = service.replace_schedule(
            USER, AvailabilityConfig.build({Weekday.MONDAY: (True, [(540, 600)])}, durations=[30])
        )

        assert saved.limits == BookingLimits(2, 1, 7)


class TestReplaceSchedule:
    def test_replace_whole_schedule(self, service: AvailabilityService):
        config = AvailabilityConfig.build(
            {
                Weekday.MONDAY: (True, [(540, 720), (780, 1020)]),
                Weekday.FRIDAY: (True, [(600, 660)]),
            },
            buffer_before=0,
            buffer_after=10,
            durations=[45],
            timezone="America/Chicago",
        )

        saved = service.replace_schedule(USER, config)

        assert [w for w in WEEKDAYS if saved.day(w).enabled] == [Weekday.MONDAY, Weekday.FRIDAY]
        assert saved.day(Weekday.TUESDAY).ranges == ()
        assert saved.buffers == BufferConfig(0, 10)
        assert saved.durations == (45,)
        assert saved.timezone == "America/Chicago"
        assert all(r.id for r in saved.day(Weekday.MONDAY).ranges)

    def test_rejected_payload_leaves_schedule_untouched(self, service: AvailabilityService):
        before = service.get_schedule(USER)
        bad = AvailabilityConfig(
            days={Weekday.MONDAY: DaySchedule(True, (TimeRange(540, 720), TimeRange(700, 800)))},
            buffers=BufferConfig(0, 0),
            durations=(30,),
            timezone="UTC",
        )

        with pytest.raises(InvalidRangeError):
            service.replace_schedule(USER, bad)

        assert service.get_schedule(USER) == before

    def test_enabled_day_without_ranges_rejected(self, service: AvailabilityService):
        bad = AvailabilityConfig.build({Weekday.MONDAY: (True, [])}, durations=[30])

        with pytest.raises(InvalidRangeError):
            service.replace_schedule(USER, bad)

    def test_range_ids_can_move_between_days(self, service: AvailabilityService):
        range_id = service.get_schedule(USER).day(Weekday.MONDAY).ranges[0].id
        moved = AvailabilityConfig(
            days={
                Weekday.TUESDAY: DaySchedule(True, (TimeRange(600, 700, id=range_id),)),
            },
            buffers=BufferConfig(0, 0),
            durations=(30,),
            timezone="UTC",
        )

        saved = service.replace_schedule(USER, moved)

        assert saved.day(Weekday.MONDAY).ranges == ()
        assert saved.day(Weekday.TUESDAY).ranges[0].id == range_id


def test_validate_day_ranges_allows_touching():
    ordered = validate_day_ranges(Weekday.MONDAY, [TimeRange(720, 900), TimeRange(540, 720)])

    assert [(r.start, r.end) for r in ordered] == [(540, 720), (720, 900)]
