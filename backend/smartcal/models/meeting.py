# backend/smartcal/models/meeting.py
"""
Meeting model for the SmartCal platform.

The column layout (title, start_time, end_time, calendar_type, attendees,
is_virtual, location, platform, description, created_by, created_at) matches
the records written by earlier clients and must not change. status and
cancelled_at are additive.

MeetingChange is the append-only change log. Its autoincrement sequence is
the ordering key every change-feed subscriber relies on.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    Integer,
    String,
    Text,
)

from ..core.enums import MeetingState
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import StringArrayType, UTCDateTime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    title = Column(String(255), nullable=False)
    start_time = Column(UTCDateTime(), nullable=False, index=True)
    end_time = Column(UTCDateTime(), nullable=False)
    calendar_type = Column(String(50), nullable=False, default="work")
    attendees = Column(StringArrayType(), nullable=False, default=list)
    is_virtual = Column(Boolean, nullable=False, default=True)
    location = Column(Text, nullable=True)
    platform = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=False, index=True)
    created_at = Column(UTCDateTime(), nullable=False, default=_now_utc)

    status = Column(String(20), nullable=False, default=MeetingState.PERSISTED.value, index=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_meetings_time_order"),
        Index("ix_meetings_owner_start", "created_by", "start_time"),
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == MeetingState.CANCELLED.value

    def state_at(self, moment: datetime) -> MeetingState:
        """Lifecycle state as seen at ``moment``; COMPLETED is never stored."""
        if self.is_cancelled:
            return MeetingState.CANCELLED
        if self.end_time < moment:
            return MeetingState.COMPLETED
        return MeetingState.PERSISTED

    def __repr__(self) -> str:
        return f"<Meeting {self.id} {self.title!r} {self.start_time:%Y-%m-%d %H:%M}>"


class MeetingChange(Base):
    __tablename__ = "meeting_changes"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), nullable=False, index=True)
    meeting_id = Column(String(26), nullable=False)
    operation = Column(String(20), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=_now_utc)
