# backend/smartcal/schemas/availability.py
"""
Availability schemas.

Times of day travel as 'HH:MM' strings (24:00 is accepted as an end) and are
converted to minute-of-day integers before reaching the service layer.
"""

from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.enums import WEEKDAYS, Weekday
from ..domain.schedule import (
    AvailabilityConfig,
    BufferConfig,
    DaySchedule,
    TimeRange,
    format_minute,
    parse_minute,
)
from ._strict_base import StrictModel, StrictRequestModel


class TimeRangeIn(StrictRequestModel):
    start: str = Field(..., description="Start time (HH:MM)", examples=["09:00"])
    end: str = Field(..., description="End time (HH:MM, 24:00 allowed)", examples=["17:00"])
    id: Optional[str] = Field(None, description="Existing range id when replacing a schedule")

    @field_validator("start", "end")
    @classmethod
    def _check_time(cls, value: str) -> str:
        parse_minute(value)
        return value

    @property
    def start_minute(self) -> int:
        return parse_minute(self.start)

    @property
    def end_minute(self) -> int:
        return parse_minute(self.end)

    def to_range(self) -> TimeRange:
        return TimeRange(self.start_minute, self.end_minute, id=self.id)


class TimeRangeOut(StrictModel):
    id: Optional[str]
    start: str
    end: str

    @classmethod
    def from_range(cls, item: TimeRange) -> "TimeRangeOut":
        return cls(id=item.id, start=format_minute(item.start), end=format_minute(item.end))


class DayScheduleIn(StrictRequestModel):
    enabled: bool = False
    ranges: List[TimeRangeIn] = Field(default_factory=list)


class DayScheduleOut(StrictModel):
    weekday: Weekday
    label: str
    enabled: bool
    ranges: List[TimeRangeOut]


class DayToggleRequest(StrictRequestModel):
    enabled: bool


class BuffersUpdate(StrictRequestModel):
    before: int = Field(..., ge=0, description="Minutes kept free before a meeting")
    after: int = Field(..., ge=0, description="Minutes kept free after a meeting")


class DurationsUpdate(StrictRequestModel):
    durations: List[int] = Field(..., description="Allowed meeting lengths in minutes")


class TimezoneUpdate(StrictRequestModel):
    timezone: str = Field(..., examples=["America/New_York"])


class BookingLimitsUpdate(StrictRequestModel):
    """Public booking caps; null switches a cap off."""

    max_bookings_per_day: Optional[int] = Field(None, ge=1)
    max_bookings_per_email: Optional[int] = Field(None, ge=1)
    booking_window_days: Optional[int] = Field(None, ge=1, description="How far ahead bookers may book")


class AvailabilityReplaceRequest(StrictRequestModel):
    """Full weekly schedule, as saved from the availability editor."""

    days: Dict[Weekday, DayScheduleIn]
    buffers: BuffersUpdate
    durations: List[int]
    timezone: str

    @model_validator(mode="after")
    def _fill_missing_days(self) -> "AvailabilityReplaceRequest":
        for weekday in WEEKDAYS:
            self.days.setdefault(weekday, DayScheduleIn())
        return self

    def to_config(self) -> AvailabilityConfig:
        return AvailabilityConfig(
            days={
                weekday: DaySchedule(
                    enabled=day.enabled,
                    ranges=tuple(item.to_range() for item in day.ranges),
                )
                for weekday, day in self.days.items()
            },
            buffers=BufferConfig(self.buffers.before, self.buffers.after),
            durations=tuple(self.durations),
            timezone=self.timezone,
        )


class AvailabilityResponse(StrictModel):
    days: List[DayScheduleOut]
    buffer_before: int
    buffer_after: int
    durations: List[int]
    timezone: str
    max_bookings_per_day: Optional[int] = None
    max_bookings_per_email: Optional[int] = None
    booking_window_days: Optional[int] = None

    @classmethod
    def from_config(cls, config: AvailabilityConfig) -> "AvailabilityResponse":
        return cls(
            days=[
                DayScheduleOut(
                    weekday=weekday,
                    label=weekday.label,
                    enabled=config.day(weekday).enabled,
                    ranges=[TimeRangeOut.from_range(item) for item in config.day(weekday).ranges],
                )
                for weekday in WEEKDAYS
            ],
            buffer_before=config.buffers.before,
            buffer_after=config.buffers.after,
            durations=list(config.durations),
            timezone=config.timezone,
            max_bookings_per_day=config.limits.max_per_day,
            max_bookings_per_email=config.limits.max_per_email,
            booking_window_days=config.limits.window_days,
        )
