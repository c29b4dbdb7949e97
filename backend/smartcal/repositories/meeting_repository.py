# backend/smartcal/repositories/meeting_repository.py
"""
Meeting Repository for the SmartCal platform.

Handles meeting queries and the change log. Every mutation a service makes
is paired with a MeetingChange row in the same transaction; the row's
sequence is what change-feed subscribers order by.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import ChangeOperation, MeetingState
from ..core.exceptions import RepositoryException
from ..models.meeting import Meeting, MeetingChange
from .base_repository import BaseRepository


class MeetingRepository(BaseRepository[Meeting]):
    """Repository for meetings and their change log."""

    def __init__(self, db: Session):
        super().__init__(db, Meeting)

    def list_overlapping(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        *,
        include_cancelled: bool = False,
        calendar_type: Optional[str] = None,
    ) -> List[Meeting]:
        """
        Meetings owned by ``owner_id`` that intersect [start, end), ordered by start.

        Uses the standard half-open overlap test: m.start < end AND m.end > start.
        """
        query = self.db.query(Meeting).filter(
            Meeting.created_by == owner_id,
            Meeting.start_time < end,
            Meeting.end_time > start,
        )
        if not include_cancelled:
            query = query.filter(Meeting.status != MeetingState.CANCELLED.value)
        if calendar_type:
            query = query.filter(Meeting.calendar_type == calendar_type)
        return self._execute_query(query.order_by(Meeting.start_time, Meeting.id))

    def search(
        self,
        owner_id: str,
        *,
        text: Optional[str] = None,
        calendar_type: Optional[str] = None,
        start_after: Optional[datetime] = None,
        end_before: Optional[datetime] = None,
        include_cancelled: bool = False,
        limit: int = 100,
        offset: int = 0,
        newest_first: bool = False,
    ) -> List[Meeting]:
        query = self.db.query(Meeting).filter(Meeting.created_by == owner_id)
        if text:
            pattern = f"%{text.lower()}%"
            query = query.filter(
                or_(
                    func.lower(Meeting.title).like(pattern),
                    func.lower(func.coalesce(Meeting.description, "")).like(pattern),
                )
            )
        if calendar_type:
            query = query.filter(Meeting.calendar_type == calendar_type)
        if start_after is not None:
            query = query.filter(Meeting.start_time >= start_after)
        if end_before is not None:
            query = query.filter(Meeting.end_time < end_before)
        if not include_cancelled:
            query = query.filter(Meeting.status != MeetingState.CANCELLED.value)
        order = Meeting.start_time.desc() if newest_first else Meeting.start_time
        return self._execute_query(query.order_by(order, Meeting.id).offset(offset).limit(limit))

    def count_starting_between(self, owner_id: str, start: datetime, end: datetime) -> int:
        """Non-cancelled meetings whose start falls in [start, end)."""
        return (
            self.db.query(func.count(Meeting.id))
            .filter(
                Meeting.created_by == owner_id,
                Meeting.start_time >= start,
                Meeting.start_time < end,
                Meeting.status != MeetingState.CANCELLED.value,
            )
            .scalar()
            or 0
        )

    def count_upcoming_with_attendee(self, owner_id: str, email: str, after: datetime) -> int:
        """
        Non-cancelled meetings ending after ``after`` that list ``email``.

        Attendees are an array column (JSON text outside PostgreSQL), so the
        case-insensitive match runs in Python over the owner's upcoming rows.
        """
        wanted = email.strip().lower()
        query = self.db.query(Meeting).filter(
            Meeting.created_by == owner_id,
            Meeting.end_time > after,
            Meeting.status != MeetingState.CANCELLED.value,
        )
        return sum(
            1
            for meeting in self._execute_query(query)
            if any(attendee.strip().lower() == wanted for attendee in meeting.attendees or [])
        )

    # Change log

    def record_change(
        self, owner_id: str, meeting_id: str, operation: ChangeOperation
    ) -> MeetingChange:
        """Append a change row; the flushed sequence is the feed ordering key."""
        try:
            change = MeetingChange(
                owner_id=owner_id,
                meeting_id=meeting_id,
                operation=operation.value,
            )
            self.db.add(change)
            self.db.flush()
            return change
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording change for meeting {meeting_id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to record meeting change: {str(e)}")

    def latest_sequence(self, owner_id: str) -> int:
        value = (
            self.db.query(func.max(MeetingChange.sequence))
            .filter(MeetingChange.owner_id == owner_id)
            .scalar()
        )
        return int(value or 0)

    def changes_since(self, owner_id: str, sequence: int, limit: int = 500) -> List[MeetingChange]:
        """Change rows after ``sequence``; used for SSE catch-up on reconnect."""
        query = (
            self.db.query(MeetingChange)
            .filter(MeetingChange.owner_id == owner_id, MeetingChange.sequence > sequence)
            .order_by(MeetingChange.sequence)
            .limit(limit)
        )
        return self._execute_query(query)
