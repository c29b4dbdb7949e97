# backend/smartcal/services/slot_computer.py
"""
Slot computation for the SmartCal scheduling engine.

Pure functions: an availability snapshot plus the busy intervals overlapping
a date span go in, ordered free slots come out. Nothing here touches the
database or holds state, so calls are safe from any thread or task.

For every local calendar date in the span:
    1. The weekday comes from the local date in the configured zone.
    2. Disabled weekdays produce nothing.
    3. Each range becomes a wall-clock window on that date.
    4. Busy intervals are widened by the buffers, sorted and merged.
    5. The window minus the merged busy intervals gives the gaps.
    6. Every gap at least as long as a requested duration becomes a slot.

Buffers are applied around busy intervals only; window edges are never
shrunk.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.config import settings
from ..core.enums import Weekday
from ..core.timezone_utils import ensure_utc, get_timezone, local_minute
from ..domain.schedule import AvailabilityConfig

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


@dataclass(frozen=True, order=True)
class BusyInterval:
    """An occupied [start, end) span as absolute instants."""

    start: datetime
    end: datetime

    @classmethod
    def from_meeting(cls, meeting) -> "BusyInterval":
        return cls(ensure_utc(meeting.start_time), ensure_utc(meeting.end_time))


@dataclass(frozen=True, order=True)
class FreeSlot:
    """
    A slot interval: any start in [start, latest_start] fits ``duration``.

    ``end`` is the end of the gap the slot came from. Instants are expressed
    in the owner's zone; ``day`` is the local calendar date.
    """

    start: datetime
    duration: int
    end: datetime = field(compare=False)
    day: date = field(compare=False)
    timezone: str = field(default="UTC", compare=False)

    @property
    def latest_start(self) -> datetime:
        return self.end - timedelta(minutes=self.duration)


@dataclass(frozen=True, order=True)
class BookableSlot:
    """A concrete [start, end) meeting time produced by ``discretize``."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def busy_from_meetings(meetings: Iterable) -> List[BusyInterval]:
    """Busy intervals for non-cancelled meetings with a positive length."""
    busy = []
    for meeting in meetings:
        if getattr(meeting, "is_cancelled", False):
            continue
        interval = BusyInterval.from_meeting(meeting)
        if interval.start < interval.end:
            busy.append(interval)
    return busy


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort by start and merge overlapping or touching intervals."""
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(window: Interval, busy: Sequence[Interval]) -> List[Interval]:
    """
    Complement of merged ``busy`` within ``window``.

    ``busy`` must already be sorted and merged. Zero-length gaps are dropped.
    """
    window_start, window_end = window
    gaps: List[Interval] = []
    cursor = window_start
    for busy_start, busy_end in busy:
        if busy_end <= cursor:
            continue
        if busy_start >= window_end:
            break
        if busy_start > cursor:
            gaps.append((cursor, busy_start))
        cursor = max(cursor, busy_end)
        if cursor >= window_end:
            break
    if cursor < window_end:
        gaps.append((cursor, window_end))
    return gaps


def compute_slots(
    config: AvailabilityConfig,
    busy: Iterable[BusyInterval],
    start_date: date,
    end_date: date,
    duration: Optional[int] = None,
) -> List[FreeSlot]:
    """
    Free slots for every local date in [start_date, end_date).

    Args:
        config: Availability snapshot (schedule, buffers, durations, zone)
        busy: Busy intervals overlapping the span; order does not matter
        start_date: First local date (inclusive)
        end_date: Last local date (exclusive)
        duration: Requested meeting length; the configured durations when omitted

    Returns:
        Slots ordered by (start, duration). Unsatisfiable input gives [].
    """
    durations = _requested_durations(config, duration)
    if not durations or end_date <= start_date or not config.any_enabled:
        return []

    tz = get_timezone(config.timezone)
    before = timedelta(minutes=max(config.buffers.before, 0))
    after = timedelta(minutes=max(config.buffers.after, 0))
    expanded = merge_intervals(
        (ensure_utc(item.start) - before, ensure_utc(item.end) + after)
        for item in busy
        if item.start < item.end
    )

    slots: List[FreeSlot] = []
    day = start_date
    while day < end_date:
        schedule = config.day(Weekday.from_date(day))
        if schedule.enabled:
            slots.extend(_slots_for_day(day, schedule.ranges, expanded, durations, tz, config.timezone))
        day += timedelta(days=1)

    slots.sort()
    return slots


def _requested_durations(config: AvailabilityConfig, duration: Optional[int]) -> Tuple[int, ...]:
    if duration is not None:
        return (duration,) if duration > 0 else ()
    return tuple(d for d in config.durations if d > 0)


def _slots_for_day(day, ranges, expanded, durations, tz, tz_name) -> List[FreeSlot]:
    day_start = local_minute(day, 0, tz)
    day_end = local_minute(day, 24 * 60, tz)
    todays_busy = [(s, e) for s, e in expanded if s < day_end and e > day_start]

    result = []
    for time_range in ranges:
        if not time_range.is_well_formed():
            logger.warning("Skipping malformed range %s on %s", time_range, day)
            continue
        window = (local_minute(day, time_range.start, tz), local_minute(day, time_range.end, tz))
        if window[0] >= window[1]:
            continue
        for gap_start, gap_end in subtract_intervals(window, todays_busy):
            gap_minutes = (gap_end - gap_start).total_seconds() / 60
            for minutes in durations:
                if gap_minutes >= minutes:
                    result.append(
                        FreeSlot(
                            start=gap_start.astimezone(tz),
                            duration=minutes,
                            end=gap_end.astimezone(tz),
                            day=day,
                            timezone=tz_name,
                        )
                    )
    return result


def discretize(slots: Iterable[FreeSlot], granularity: Optional[int] = None) -> List[BookableSlot]:
    """
    Expand slot intervals into concrete starts on a wall-clock grid.

    The first start is the earliest local time at or after the slot start
    that is a multiple of ``granularity`` minutes past midnight.
    """
    step = granularity or settings.slot_granularity_minutes
    if step <= 0:
        return []

    concrete = set()
    for slot in slots:
        tz = get_timezone(slot.timezone)
        local_start = slot.start.astimezone(tz)
        minute = local_start.hour * 60 + local_start.minute
        if local_start.second or local_start.microsecond:
            minute += 1
        aligned = math.ceil(minute / step) * step
        candidate = ensure_utc(local_minute(local_start.date(), aligned, tz))
        latest = ensure_utc(slot.latest_start)
        length = timedelta(minutes=slot.duration)
        while candidate <= latest:
            concrete.add(BookableSlot(candidate.astimezone(tz), (candidate + length).astimezone(tz)))
            candidate += timedelta(minutes=step)
    return sorted(concrete)


def is_slot_free(slots: Iterable[FreeSlot], start: datetime, duration: int) -> bool:
    """Whether [start, start + duration) fits inside one of ``slots``."""
    if duration <= 0:
        return False
    start_utc = ensure_utc(start)
    end_utc = start_utc + timedelta(minutes=duration)
    for slot in slots:
        if ensure_utc(slot.start) <= start_utc and end_utc <= ensure_utc(slot.end):
            return True
    return False


def clip_slots(
    slots: Iterable[FreeSlot], earliest: datetime, latest_start: Optional[datetime] = None
) -> List[FreeSlot]:
    """
    Restrict slot starts to [earliest, latest_start].

    Slots entirely outside the bounds are dropped; the rest keep their zone.
    """
    clipped = []
    for slot in slots:
        tz = get_timezone(slot.timezone)
        start = max(slot.start, earliest)
        last = slot.latest_start if latest_start is None else min(slot.latest_start, latest_start)
        if start > last:
            continue
        clipped.append(
            replace(
                slot,
                start=start.astimezone(tz),
                end=(last + timedelta(minutes=slot.duration)).astimezone(tz),
            )
        )
    return clipped
