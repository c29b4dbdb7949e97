# backend/smartcal/models/booking_page.py
"""Booking page model: a named, shareable fixed-duration configuration."""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Integer, String

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BookingPage(Base):
    __tablename__ = "booking_pages"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    # Unique across all owners; shared links resolve on slug alone
    slug = Column(String(140), nullable=False, unique=True, index=True)
    created_at = Column(UTCDateTime(), nullable=False, default=_now_utc)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=_now_utc)

    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_booking_pages_duration"),)
