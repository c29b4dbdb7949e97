# backend/smartcal/services/scheduling_service.py
"""
Scheduling Service for the SmartCal platform

Glue between the availability store, the meeting repository and the slot
computer:
- free slot queries over a date span
- the commit-time "is this slot still free" check
- dashboard numbers (today, upcoming, open share of the current week)
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MAX_QUERY_LIMIT
from ..core.exceptions import BusinessRuleException, SlotConflictError, ValidationException
from ..core.timezone_utils import (
    ensure_utc,
    get_timezone,
    local_date,
    local_midnight,
    now_utc,
)
from ..domain.schedule import AvailabilityConfig
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .availability_service import AvailabilityService
from .base import BaseService
from .slot_computer import FreeSlot, busy_from_meetings, compute_slots, is_slot_free

if TYPE_CHECKING:
    from ..repositories.meeting_repository import MeetingRepository

logger = logging.getLogger(__name__)


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


class SchedulingService(BaseService):
    """Slot queries and availability checks for one owner at a time."""

    def __init__(
        self,
        db: Session,
        availability_service: Optional[AvailabilityService] = None,
        meeting_repository: Optional["MeetingRepository"] = None,
    ):
        super().__init__(db)
        self.availability_service = availability_service or AvailabilityService(db)
        self.meeting_repository = meeting_repository or RepositoryFactory.create_meeting_repository(db)

    @BaseService.measure_operation("find_free_slots")
    def find_free_slots(
        self,
        owner_id: str,
        start_date: date,
        end_date: date,
        duration: Optional[int] = None,
        *,
        for_update: bool = False,
        source: str = "availability",
    ) -> Tuple[AvailabilityConfig, List[FreeSlot]]:
        """
        Free slots for ``owner_id`` on local dates [start_date, end_date).

        Args:
            owner_id: Calendar owner
            start_date: First local date
            end_date: Day after the last local date
            duration: Meeting length in minutes; the owner's durations when omitted
            for_update: Lock the owner's availability row (commit-time checks)
            source: Metrics label

        Returns:
            The availability snapshot used and the slots it produced

        Raises:
            ValidationException: empty or oversized date span
        """
        if end_date <= start_date:
            raise ValidationException("end_date must be after start_date")
        if (end_date - start_date).days > settings.max_slot_span_days:
            raise ValidationException(
                f"Slot queries are limited to {settings.max_slot_span_days} days",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        config = self.availability_service.get_config(owner_id, for_update=for_update)
        tz = get_timezone(config.timezone)
        # A meeting just outside the span can still reach into it through its buffers
        span_start = local_midnight(start_date, tz) - timedelta(minutes=config.buffers.after)
        span_end = local_midnight(end_date, tz) + timedelta(minutes=config.buffers.before)
        meetings = self.meeting_repository.list_overlapping(owner_id, span_start, span_end)

        slots = compute_slots(config, busy_from_meetings(meetings), start_date, end_date, duration)
        prometheus_metrics.inc_slots_computed(source, len(slots))
        return config, slots

    def ensure_slot_free(
        self, owner_id: str, start: datetime, end: datetime, now: Optional[datetime] = None
    ) -> None:
        """
        Re-check a concrete meeting time against the authoritative store.

        Must run inside the caller's transaction; the owner's availability
        row is locked so two bookings cannot both pass the check.

        Raises:
            BusinessRuleException: the start is already in the past
            SlotConflictError: the time no longer fits any free slot
        """
        start_utc, end_utc = ensure_utc(start), ensure_utc(end)
        moment = ensure_utc(now) if now else now_utc()
        if start_utc < moment:
            raise BusinessRuleException(
                "Cannot book a time in the past",
                code="SLOT_IN_PAST",
                details={"start_time": start_utc.isoformat()},
            )
        duration = int((end_utc - start_utc).total_seconds() // 60)
        config = self.availability_service.get_config(owner_id)
        day = local_date(start_utc, get_timezone(config.timezone))
        _, slots = self.find_free_slots(
            owner_id, day, day + timedelta(days=1), duration, for_update=True, source="commit_check"
        )
        if not is_slot_free(slots, start_utc, duration):
            self.logger.info(f"Slot {start_utc.isoformat()} ({duration}m) no longer free for {owner_id}")
            raise SlotConflictError(
                details={"start_time": start_utc.isoformat(), "duration_minutes": duration}
            )

    def ensure_booking_limits(
        self, owner_id: str, start: datetime, booker_email: str, now: Optional[datetime] = None
    ) -> None:
        """
        Apply the owner's public booking caps to one prospective booking.

        The daily cap counts every meeting the owner has starting on the same
        local day. The email cap counts the booker's meetings that have not
        ended yet.

        Raises:
            BusinessRuleException: BOOKING_WINDOW_EXCEEDED, DAILY_BOOKING_LIMIT
                or EMAIL_BOOKING_LIMIT
        """
        start_utc = ensure_utc(start)
        moment = ensure_utc(now) if now else now_utc()
        config = self.availability_service.get_config(owner_id)
        limits = config.limits

        if limits.window_days is not None and start_utc > moment + timedelta(days=limits.window_days):
            raise BusinessRuleException(
                f"Bookings are only open {limits.window_days} days ahead",
                code="BOOKING_WINDOW_EXCEEDED",
                details={"booking_window_days": limits.window_days},
            )

        if limits.max_per_day is not None:
            tz = get_timezone(config.timezone)
            day = local_date(start_utc, tz)
            booked = self.meeting_repository.count_starting_between(
                owner_id, local_midnight(day, tz), local_midnight(day + timedelta(days=1), tz)
            )
            if booked >= limits.max_per_day:
                raise BusinessRuleException(
                    f"No more bookings are accepted on {day.isoformat()}",
                    code="DAILY_BOOKING_LIMIT",
                    details={"date": day.isoformat(), "max_bookings_per_day": limits.max_per_day},
                )

        if limits.max_per_email is not None:
            booked = self.meeting_repository.count_upcoming_with_attendee(owner_id, booker_email, moment)
            if booked >= limits.max_per_email:
                raise BusinessRuleException(
                    "This email address already has the maximum number of upcoming bookings",
                    code="EMAIL_BOOKING_LIMIT",
                    details={"max_bookings_per_email": limits.max_per_email},
                )

    @BaseService.measure_operation("overview")
    def overview(self, owner_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Dashboard numbers in the owner's zone.

        Returns:
            today_count, today_minutes, upcoming_count, week_open_slot_percent,
            next_meeting (or None), by_calendar and timezone
        """
        moment = ensure_utc(now) if now else now_utc()
        config = self.availability_service.get_config(owner_id)
        tz = get_timezone(config.timezone)
        today = local_date(moment, tz)

        todays = self.meeting_repository.list_overlapping(
            owner_id, local_midnight(today, tz), local_midnight(today + timedelta(days=1), tz)
        )
        today_minutes = sum(
            int((ensure_utc(m.end_time) - ensure_utc(m.start_time)).total_seconds() // 60) for m in todays
        )

        upcoming = self.meeting_repository.search(owner_id, start_after=moment, limit=MAX_QUERY_LIMIT)
        by_calendar: Dict[str, int] = {}
        for meeting in upcoming:
            by_calendar[meeting.calendar_type] = by_calendar.get(meeting.calendar_type, 0) + 1

        monday = week_start(today)
        _, gaps = self.find_free_slots(owner_id, monday, monday + timedelta(days=7), 1, source="overview")

        return {
            "timezone": config.timezone,
            "today_count": len(todays),
            "today_minutes": today_minutes,
            "upcoming_count": len(upcoming),
            "week_open_slot_percent": open_percent(config, gaps),
            "next_meeting": upcoming[0] if upcoming else None,
            "by_calendar": by_calendar,
        }


def open_percent(config: AvailabilityConfig, gaps: List[FreeSlot]) -> float:
    """Share of the week's enabled window minutes that are still free."""
    total = sum(
        item.length
        for day in config.days.values()
        if day.enabled
        for item in day.ranges
    )
    if total <= 0:
        return 0.0
    free = sum((ensure_utc(gap.end) - ensure_utc(gap.start)).total_seconds() / 60 for gap in gaps)
    return round(min(free / total, 1.0) * 100, 1)
