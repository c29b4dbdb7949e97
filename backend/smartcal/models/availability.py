# backend/smartcal/models/availability.py
"""
Weekly availability models.

A user's recurring schedule is three tables:
- AvailabilitySettings: one row per user (buffers, durations, zone, booking limits)
- AvailabilityDay: one row per (user, weekday) holding the enabled flag
- AvailabilityRange: minute-of-day ranges belonging to a weekday

Ranges are validated as a whole day by the service before they are written,
so rows for one (user, weekday) never overlap.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from ..core.constants import (
    DEFAULT_BOOKING_WINDOW_DAYS,
    DEFAULT_MAX_BOOKINGS_PER_DAY,
    DEFAULT_MAX_BOOKINGS_PER_EMAIL,
)
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import IntArrayType, UTCDateTime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilitySettings(Base):
    __tablename__ = "availability_settings"

    user_id = Column(String(64), primary_key=True)
    buffer_before_minutes = Column(Integer, nullable=False, default=0)
    buffer_after_minutes = Column(Integer, nullable=False, default=0)
    durations = Column(IntArrayType(), nullable=False, default=list)
    timezone = Column(String(64), nullable=False, default="UTC")
    # NULL disables the cap
    max_bookings_per_day = Column(Integer, nullable=True, default=DEFAULT_MAX_BOOKINGS_PER_DAY)
    max_bookings_per_email = Column(Integer, nullable=True, default=DEFAULT_MAX_BOOKINGS_PER_EMAIL)
    booking_window_days = Column(Integer, nullable=True, default=DEFAULT_BOOKING_WINDOW_DAYS)
    updated_at = Column(UTCDateTime(), nullable=False, default=_now_utc, onupdate=_now_utc)

    __table_args__ = (
        CheckConstraint("buffer_before_minutes >= 0", name="ck_avail_buffer_before"),
        CheckConstraint("buffer_after_minutes >= 0", name="ck_avail_buffer_after"),
        CheckConstraint(
            "max_bookings_per_day IS NULL OR max_bookings_per_day > 0", name="ck_avail_max_per_day"
        ),
        CheckConstraint(
            "max_bookings_per_email IS NULL OR max_bookings_per_email > 0", name="ck_avail_max_per_email"
        ),
        CheckConstraint(
            "booking_window_days IS NULL OR booking_window_days > 0", name="ck_avail_booking_window"
        ),
    )


class AvailabilityDay(Base):
    __tablename__ = "availability_days"

    user_id = Column(String(64), primary_key=True)
    weekday = Column(String(10), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)


class AvailabilityRange(Base):
    __tablename__ = "availability_ranges"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    user_id = Column(String(64), nullable=False)
    weekday = Column(String(10), nullable=False)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("start_minute >= 0", name="ck_avail_range_start"),
        CheckConstraint("end_minute <= 1440", name="ck_avail_range_end"),
        CheckConstraint("start_minute < end_minute", name="ck_avail_range_order"),
        UniqueConstraint("user_id", "weekday", "start_minute", name="uq_avail_range_start"),
        Index("ix_avail_ranges_user_day", "user_id", "weekday"),
    )
