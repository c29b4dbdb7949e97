# backend/smartcal/core/enums.py
"""
Core enums for the SmartCal platform.

Weekday names are stored lowercase; ``position`` follows ``date.weekday()``
(Monday is 0) so local calendar dates map onto the weekly schedule directly.
"""

from __future__ import annotations

from datetime import date
from enum import Enum


class RoleName(str, Enum):
    """Roles supplied by the identity provider."""

    ADMIN = "admin"
    MEMBER = "member"


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def position(self) -> int:
        return _WEEKDAY_ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_position(cls, position: int) -> "Weekday":
        return _WEEKDAY_ORDER[position % 7]

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return _WEEKDAY_ORDER[day.weekday()]

    @classmethod
    def parse(cls, raw: str) -> "Weekday":
        """Accept 'monday', 'Monday' or 'MON'."""
        normalized = (raw or "").strip().lower()
        for weekday in _WEEKDAY_ORDER:
            if weekday.value == normalized or weekday.value[:3] == normalized:
                return weekday
        raise ValueError(f"Unknown weekday: {raw!r}")


_WEEKDAY_ORDER = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
    Weekday.SUNDAY,
)
WEEKDAYS = _WEEKDAY_ORDER


class MeetingState(str, Enum):
    """
    Meeting lifecycle.

    PROPOSED only exists client-side (optimistic drafts). COMPLETED is never
    stored; it is derived when a persisted meeting has already ended.
    """

    PROPOSED = "proposed"
    PERSISTED = "persisted"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ChangeOperation(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
