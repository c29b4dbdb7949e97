# backend/smartcal/services/availability_service.py
"""
Availability Service for the SmartCal platform

Owns one user's recurring weekly schedule: per-weekday enabled flags and
minute-of-day ranges, the buffers applied around busy meetings, the allowed
meeting durations and the owner's time zone.

Every range edit re-validates the whole day before anything is written, so
overlapping or inverted ranges never reach the slot computer. Reads build a
fresh immutable snapshot each time; nothing is cached across an edit.
"""

from __future__ import annotations

from collections import defaultdict
import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    DEFAULT_BOOKING_WINDOW_DAYS,
    DEFAULT_BUFFER_AFTER,
    DEFAULT_BUFFER_BEFORE,
    DEFAULT_DURATIONS,
    DEFAULT_MAX_BOOKINGS_PER_DAY,
    DEFAULT_MAX_BOOKINGS_PER_EMAIL,
    DEFAULT_NEW_RANGE,
    DEFAULT_WEEKDAY_RANGE,
    DEFAULT_WEEKEND_RANGE,
    MAX_BOOKING_WINDOW_DAYS,
    MAX_RANGES_PER_DAY,
)
from ..core.enums import WEEKDAYS, Weekday
from ..core.exceptions import InvalidRangeError, NotFoundException
from ..core.timezone_utils import is_valid_timezone
from ..core.ulid_helper import generate_ulid
from ..domain.schedule import AvailabilityConfig, BookingLimits, BufferConfig, DaySchedule, TimeRange
from ..models.availability import AvailabilitySettings
from ..repositories.factory import RepositoryFactory
from .base import BaseService

if TYPE_CHECKING:
    from ..repositories.availability_repository import AvailabilityRepository
    from ..repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

_WEEKEND = (Weekday.SATURDAY, Weekday.SUNDAY)


def default_availability(timezone: Optional[str] = None) -> AvailabilityConfig:
    """
    Schedule for a user who has never saved availability.

    Weekdays 07:00-23:00 enabled, weekends 09:00-18:00 disabled,
    30 and 60 minute meetings, 15 minute buffers on both sides, at most 10
    bookings a day and 3 per email address, bookable up to 60 days ahead.
    """
    days: Dict[Weekday, tuple] = {}
    for weekday in WEEKDAYS:
        if weekday in _WEEKEND:
            days[weekday] = (False, [DEFAULT_WEEKEND_RANGE])
        else:
            days[weekday] = (True, [DEFAULT_WEEKDAY_RANGE])
    return AvailabilityConfig.build(
        days,
        buffer_before=DEFAULT_BUFFER_BEFORE,
        buffer_after=DEFAULT_BUFFER_AFTER,
        durations=DEFAULT_DURATIONS,
        timezone=timezone if is_valid_timezone(timezone) else settings.default_timezone,
        limits=BookingLimits(
            max_per_day=DEFAULT_MAX_BOOKINGS_PER_DAY,
            max_per_email=DEFAULT_MAX_BOOKINGS_PER_EMAIL,
            window_days=DEFAULT_BOOKING_WINDOW_DAYS,
        ),
    )


def validate_day_ranges(weekday: Weekday, ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Validate one weekday's complete range list.

    Returns:
        The ranges sorted by start

    Raises:
        InvalidRangeError: inverted, out-of-day or overlapping ranges
    """
    ordered = sorted(ranges)
    if len(ordered) > MAX_RANGES_PER_DAY:
        raise InvalidRangeError(
            f"{weekday.label} can have at most {MAX_RANGES_PER_DAY} ranges",
            day=weekday.value,
        )
    for item in ordered:
        if not item.is_well_formed():
            raise InvalidRangeError(
                f"Invalid range {item.label()} on {weekday.label}: start must be before end",
                day=weekday.value,
                details={"start": item.start, "end": item.end},
            )
    for previous, current in zip(ordered, ordered[1:]):
        if previous.overlaps(current):
            raise InvalidRangeError(
                f"Ranges {previous.label()} and {current.label()} overlap on {weekday.label}",
                day=weekday.value,
                details={"conflicting": [previous.label(), current.label()]},
            )
    return ordered


def validate_buffers(before: int, after: int) -> BufferConfig:
    limit = settings.max_buffer_minutes
    for name, value in (("before", before), ("after", after)):
        if value < 0 or value > limit:
            raise InvalidRangeError(
                f"Buffer {name} must be between 0 and {limit} minutes",
                details={"buffer": name, "value": value},
            )
    return BufferConfig(before, after)


def validate_durations(durations: Sequence[int], *, any_enabled: bool) -> tuple:
    limit = settings.max_meeting_duration_minutes
    cleaned = sorted(set(durations))
    for value in cleaned:
        if value <= 0 or value > limit:
            raise InvalidRangeError(
                f"Meeting duration must be between 1 and {limit} minutes",
                details={"duration": value},
            )
    if any_enabled and not cleaned:
        raise InvalidRangeError("At least one meeting duration is required while any day is enabled")
    return tuple(cleaned)


def validate_booking_limits(
    max_per_day: Optional[int], max_per_email: Optional[int], window_days: Optional[int]
) -> BookingLimits:
    """Each cap is either None (off) or a positive count; the window is at most a year."""
    for name, value in (("max_bookings_per_day", max_per_day), ("max_bookings_per_email", max_per_email)):
        if value is not None and value <= 0:
            raise InvalidRangeError(
                f"{name} must be a positive number", details={"limit": name, "value": value}
            )
    if window_days is not None and not 0 < window_days <= MAX_BOOKING_WINDOW_DAYS:
        raise InvalidRangeError(
            f"Booking window must be between 1 and {MAX_BOOKING_WINDOW_DAYS} days",
            details={"limit": "booking_window_days", "value": window_days},
        )
    return BookingLimits(max_per_day=max_per_day, max_per_email=max_per_email, window_days=window_days)


class AvailabilityService(BaseService):
    """
    Service layer for weekly availability.

    All mutations are single-writer per user; the last committed write wins.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional["AvailabilityRepository"] = None,
        profile_repository: Optional["ProfileRepository"] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_availability_repository(db)
        self.profile_repository = profile_repository or RepositoryFactory.create_profile_repository(db)

    # Reads

    @BaseService.measure_operation("get_schedule")
    def get_schedule(self, user_id: str) -> AvailabilityConfig:
        """Current schedule with range ids, initializing defaults on first access."""
        with self.transaction():
            row = self._ensure_defaults(user_id)
        return self._snapshot(user_id, row)

    @BaseService.measure_operation("get_config")
    def get_config(self, user_id: str, *, for_update: bool = False) -> AvailabilityConfig:
        """
        Immutable snapshot consumed by the slot computer.

        Never writes: a user without saved availability gets the defaults in
        memory. ``for_update`` locks the settings row for commit-time checks.
        """
        row = self.repository.get_settings(user_id, for_update=for_update)
        if row is None:
            return default_availability(self.profile_repository.get_timezone(user_id))
        return self._snapshot(user_id, row)

    @BaseService.measure_operation("ensure_defaults")
    def ensure_defaults(self, user_id: str) -> bool:
        """Persist the default schedule if the user has none. Returns True when created."""
        with self.transaction():
            existed = self.repository.get_settings(user_id) is not None
            self._ensure_defaults(user_id)
        return not existed

    # Day and range edits

    @BaseService.measure_operation("set_day_enabled")
    def set_day_enabled(self, user_id: str, weekday: Weekday, enabled: bool) -> None:
        """
        Toggle a weekday. Enabling a day with no ranges seeds 09:00-17:00.
        """
        with self.transaction():
            row = self._ensure_defaults(user_id)
            if enabled:
                if not row.durations:
                    raise InvalidRangeError(
                        "Choose at least one meeting duration before enabling a day",
                        day=weekday.value,
                    )
                if not self.repository.get_ranges(user_id, weekday.value):
                    self.repository.replace_day_ranges(
                        user_id, weekday.value, [TimeRange(*DEFAULT_NEW_RANGE)]
                    )
            self.repository.upsert_day(user_id, weekday.value, enabled)
        self.log_operation("set_day_enabled", user_id=user_id, weekday=weekday.value, enabled=enabled)

    @BaseService.measure_operation("add_range")
    def add_range(self, user_id: str, weekday: Weekday, start: int, end: int) -> TimeRange:
        with self.transaction():
            self._ensure_defaults(user_id)
            created = TimeRange(start, end, id=generate_ulid())
            current = self._day_ranges(user_id, weekday)
            ordered = validate_day_ranges(weekday, current + [created])
            self.repository.replace_day_ranges(user_id, weekday.value, ordered)
        self.log_operation("add_range", user_id=user_id, weekday=weekday.value, range=created.label())
        return created

    @BaseService.measure_operation("update_range")
    def update_range(
        self, user_id: str, weekday: Weekday, range_id: str, start: int, end: int
    ) -> TimeRange:
        with self.transaction():
            self._ensure_defaults(user_id)
            current = self._day_ranges(user_id, weekday)
            if not any(item.id == range_id for item in current):
                raise NotFoundException(f"Range {range_id} not found on {weekday.label}")
            updated = TimeRange(start, end, id=range_id)
            others = [item for item in current if item.id != range_id]
            ordered = validate_day_ranges(weekday, others + [updated])
            self.repository.replace_day_ranges(user_id, weekday.value, ordered)
        return updated

    @BaseService.measure_operation("remove_range")
    def remove_range(self, user_id: str, weekday: Weekday, range_id: str) -> None:
        """Remove a range; the last range of an enabled day cannot be removed."""
        with self.transaction():
            self._ensure_defaults(user_id)
            current = self._day_ranges(user_id, weekday)
            remaining = [item for item in current if item.id != range_id]
            if len(remaining) == len(current):
                raise NotFoundException(f"Range {range_id} not found on {weekday.label}")
            day = self.repository.get_days(user_id).get(weekday.value)
            if day is not None and day.enabled and not remaining:
                raise InvalidRangeError(
                    f"{weekday.label} is enabled and must keep at least one range",
                    day=weekday.value,
                )
            self.repository.replace_day_ranges(user_id, weekday.value, remaining)

    # Settings

    @BaseService.measure_operation("set_buffers")
    def set_buffers(self, user_id: str, before: int, after: int) -> BufferConfig:
        buffers = validate_buffers(before, after)
        with self.transaction():
            row = self._ensure_defaults(user_id)
            row.buffer_before_minutes = buffers.before
            row.buffer_after_minutes = buffers.after
        return buffers

    @BaseService.measure_operation("set_durations")
    def set_durations(self, user_id: str, durations: Sequence[int]) -> tuple:
        with self.transaction():
            row = self._ensure_defaults(user_id)
            any_enabled = any(day.enabled for day in self.repository.get_days(user_id).values())
            cleaned = validate_durations(durations, any_enabled=any_enabled)
            row.durations = list(cleaned)
        return cleaned

    @BaseService.measure_operation("set_timezone")
    def set_timezone(self, user_id: str, timezone: str) -> str:
        if not is_valid_timezone(timezone):
            raise InvalidRangeError(f"Unknown time zone: {timezone}", details={"timezone": timezone})
        with self.transaction():
            row = self._ensure_defaults(user_id)
            row.timezone = timezone
        return timezone

    @BaseService.measure_operation("set_booking_limits")
    def set_booking_limits(
        self,
        user_id: str,
        *,
        max_per_day: Optional[int],
        max_per_email: Optional[int],
        window_days: Optional[int],
    ) -> BookingLimits:
        """Replace all three public booking caps; None switches a cap off."""
        limits = validate_booking_limits(max_per_day, max_per_email, window_days)
        with self.transaction():
            row = self._ensure_defaults(user_id)
            row.max_bookings_per_day = limits.max_per_day
            row.max_bookings_per_email = limits.max_per_email
            row.booking_window_days = limits.window_days
        self.log_operation("set_booking_limits", user_id=user_id)
        return limits

    @BaseService.measure_operation("replace_schedule")
    def replace_schedule(self, user_id: str, config: AvailabilityConfig) -> AvailabilityConfig:
        """
        Replace the whole weekly schedule at once.

        Everything is validated before the first write, so a rejected
        payload leaves the stored schedule untouched.
        """
        validated: Dict[Weekday, List[TimeRange]] = {}
        for weekday in WEEKDAYS:
            day = config.day(weekday)
            ranges = validate_day_ranges(weekday, day.ranges)
            if day.enabled and not ranges:
                raise InvalidRangeError(
                    f"{weekday.label} is enabled and must have at least one range",
                    day=weekday.value,
                )
            validated[weekday] = ranges
        buffers = validate_buffers(config.buffers.before, config.buffers.after)
        durations = validate_durations(config.durations, any_enabled=config.any_enabled)
        if not is_valid_timezone(config.timezone):
            raise InvalidRangeError(
                f"Unknown time zone: {config.timezone}", details={"timezone": config.timezone}
            )

        seen_ids = set()
        for weekday, ranges in validated.items():
            fresh = []
            for item in ranges:
                if not item.id or item.id in seen_ids:
                    item = TimeRange(item.start, item.end, id=generate_ulid())
                seen_ids.add(item.id)
                fresh.append(item)
            validated[weekday] = fresh

        with self.transaction():
            row = self._ensure_defaults(user_id)
            # Clear every day first so ids can move between weekdays
            for weekday in WEEKDAYS:
                self.repository.replace_day_ranges(user_id, weekday.value, [])
            for weekday, ranges in validated.items():
                self.repository.replace_day_ranges(user_id, weekday.value, ranges)
                self.repository.upsert_day(user_id, weekday.value, config.day(weekday).enabled)
            row.buffer_before_minutes = buffers.before
            row.buffer_after_minutes = buffers.after
            row.durations = list(durations)
            row.timezone = config.timezone
        self.log_operation("replace_schedule", user_id=user_id)
        return self._snapshot(user_id, row)

    # Helpers

    def _ensure_defaults(self, user_id: str) -> AvailabilitySettings:
        """Settings row for ``user_id``, writing the defaults on first access."""
        row = self.repository.get_settings(user_id)
        if row is not None:
            return row

        defaults = default_availability(self.profile_repository.get_timezone(user_id))
        row = self.repository.create_settings(
            user_id,
            buffer_before_minutes=defaults.buffers.before,
            buffer_after_minutes=defaults.buffers.after,
            durations=list(defaults.durations),
            timezone=defaults.timezone,
            max_bookings_per_day=defaults.limits.max_per_day,
            max_bookings_per_email=defaults.limits.max_per_email,
            booking_window_days=defaults.limits.window_days,
        )
        for weekday in WEEKDAYS:
            day = defaults.day(weekday)
            self.repository.upsert_day(user_id, weekday.value, day.enabled)
            self.repository.replace_day_ranges(user_id, weekday.value, day.ranges)
        self.logger.info(f"Initialized default availability for {user_id}")
        return row

    def _day_ranges(self, user_id: str, weekday: Weekday) -> List[TimeRange]:
        return [
            TimeRange(row.start_minute, row.end_minute, id=row.id)
            for row in self.repository.get_ranges(user_id, weekday.value)
        ]

    def _snapshot(self, user_id: str, row: AvailabilitySettings) -> AvailabilityConfig:
        days = self.repository.get_days(user_id)
        ranges: Dict[str, List[TimeRange]] = defaultdict(list)
        for item in self.repository.get_ranges(user_id):
            ranges[item.weekday].append(TimeRange(item.start_minute, item.end_minute, id=item.id))

        return AvailabilityConfig(
            days={
                weekday: DaySchedule(
                    enabled=bool(days.get(weekday.value) and days[weekday.value].enabled),
                    ranges=tuple(sorted(ranges.get(weekday.value, []))),
                )
                for weekday in WEEKDAYS
            },
            buffers=BufferConfig(row.buffer_before_minutes, row.buffer_after_minutes),
            durations=tuple(sorted(row.durations or [])),
            timezone=row.timezone,
            limits=BookingLimits(
                max_per_day=row.max_bookings_per_day,
                max_per_email=row.max_bookings_per_email,
                window_days=row.booking_window_days,
            ),
        )
