"""
Immutable schedule values shared by the availability store and the slot computer.

Minute-of-day values run from 0 to 1440 (1440 is the following midnight).
Nothing here touches the database; snapshots are built by the store and
handed to the slot computer by value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from ..core.constants import MINUTES_PER_DAY
from ..core.enums import WEEKDAYS, Weekday


def format_minute(minute: int) -> str:
    """Render a minute-of-day as HH:MM (1440 renders as 24:00)."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def parse_minute(value: str) -> int:
    """
    Parse 'HH:MM' or 'HH:MM:00' into a minute-of-day.

    Raises:
        ValueError: malformed value, non-zero seconds or outside 00:00-24:00
    """
    parts = (value or "").strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time of day: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    seconds = int(parts[2]) if len(parts) == 3 else 0
    if minutes > 59 or seconds != 0:
        raise ValueError(f"Invalid time of day: {value!r}")
    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        raise ValueError(f"Invalid time of day: {value!r}")
    return total


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open [start, end) minute-of-day range."""

    start: int
    end: int
    id: Optional[str] = field(default=None, compare=False)

    @property
    def length(self) -> int:
        return self.end - self.start

    def is_well_formed(self) -> bool:
        return 0 <= self.start < self.end <= MINUTES_PER_DAY

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    def label(self) -> str:
        return f"{format_minute(self.start)}-{format_minute(self.end)}"


@dataclass(frozen=True)
class DaySchedule:
    enabled: bool = False
    ranges: Tuple[TimeRange, ...] = ()


@dataclass(frozen=True)
class BufferConfig:
    before: int = 0
    after: int = 0


@dataclass(frozen=True)
class BookingLimits:
    """
    Caps applied to public bookings. ``None`` disables a cap.

    max_per_day counts the owner's meetings starting on the local date;
    max_per_email counts upcoming meetings that list the booker's address;
    window_days is how far ahead of now a booking may start.
    """

    max_per_day: Optional[int] = None
    max_per_email: Optional[int] = None
    window_days: Optional[int] = None


@dataclass(frozen=True)
class AvailabilityConfig:
    """Everything the slot computer needs to know about one user's availability."""

    days: Dict[Weekday, DaySchedule]
    buffers: BufferConfig = BufferConfig()
    durations: Tuple[int, ...] = ()
    timezone: str = "UTC"
    limits: BookingLimits = BookingLimits()

    def day(self, weekday: Weekday) -> DaySchedule:
        return self.days.get(weekday, DaySchedule())

    @property
    def any_enabled(self) -> bool:
        return any(self.day(weekday).enabled for weekday in WEEKDAYS)

    @classmethod
    def build(
        cls,
        days: Dict[Weekday, Tuple[bool, Iterable[Tuple[int, int]]]],
        *,
        buffer_before: int = 0,
        buffer_after: int = 0,
        durations: Iterable[int] = (),
        timezone: str = "UTC",
        limits: Optional[BookingLimits] = None,
    ) -> "AvailabilityConfig":
        """Convenience constructor from plain tuples."""
        return cls(
            days={
                weekday: DaySchedule(
                    enabled=enabled,
                    ranges=tuple(sorted(TimeRange(start, end) for start, end in ranges)),
                )
                for weekday, (enabled, ranges) in days.items()
            },
            buffers=BufferConfig(buffer_before, buffer_after),
            durations=tuple(sorted(set(durations))),
            timezone=timezone,
            limits=limits or BookingLimits(),
        )
