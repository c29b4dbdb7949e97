# backend/smartcal/services/meeting_service.py
"""
Meeting Service for the SmartCal platform

Synchronous meeting lifecycle: create, cancel, read and search. Every
mutation writes a MeetingChange row in the same transaction and returns the
resulting change event; publishing it is left to the async boundary once
the transaction has committed.

State machine:
    Proposed (client draft) -> Persisted -> Cancelled
    Persisted -> Completed is a read-time view once the meeting has ended
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import TYPE_CHECKING, List, Literal, NamedTuple, Optional

from sqlalchemy.orm import Session

from ..core.constants import ALL_CALENDARS, DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ..core.enums import ChangeOperation, MeetingState
from ..core.exceptions import BusinessRuleException, ConflictException, NotFoundException
from ..core.timezone_utils import ensure_utc, now_utc
from ..core.ulid_helper import generate_ulid
from ..models.meeting import Meeting
from ..repositories.factory import RepositoryFactory
from ..schemas.meeting import MeetingChangeEvent, MeetingDraft
from .base import BaseService

if TYPE_CHECKING:
    from ..repositories.meeting_repository import MeetingRepository
    from .scheduling_service import SchedulingService

logger = logging.getLogger(__name__)

MeetingScope = Literal["upcoming", "past", "all"]


class MeetingMutation(NamedTuple):
    meeting: Meeting
    event: MeetingChangeEvent


class MeetingService(BaseService):
    """Service layer for meetings owned by a single principal per call."""

    def __init__(
        self,
        db: Session,
        repository: Optional["MeetingRepository"] = None,
        scheduling_service: Optional["SchedulingService"] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_meeting_repository(db)
        self._scheduling_service = scheduling_service

    @property
    def scheduling_service(self) -> "SchedulingService":
        if self._scheduling_service is None:
            from .scheduling_service import SchedulingService

            self._scheduling_service = SchedulingService(self.db, meeting_repository=self.repository)
        return self._scheduling_service

    # Mutations

    @BaseService.measure_operation("create_meeting")
    def create_meeting(
        self,
        owner_id: str,
        draft: MeetingDraft,
        *,
        require_free_slot: bool = False,
        booker_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MeetingMutation:
        """
        Persist a validated draft for ``owner_id``.

        Args:
            owner_id: Calendar owner (becomes created_by)
            draft: Validated meeting form state
            require_free_slot: Re-check the time against availability and
                existing meetings before writing (booking pages)
            booker_email: Apply the owner's public booking caps for this address
            now: Reference time for the past and booking-window checks

        Raises:
            ConflictException: a meeting with the draft's id already exists
            SlotConflictError: require_free_slot and the time is taken
            BusinessRuleException: the time is in the past or a booking cap is reached
            PersistenceError: the store rejected the write
        """
        with self.transaction():
            meeting_id = draft.id or generate_ulid()
            if draft.id and self.repository.get_by_id(draft.id) is not None:
                raise ConflictException(f"Meeting {draft.id} already exists")
            if require_free_slot:
                self.scheduling_service.ensure_slot_free(
                    owner_id, draft.start_time, draft.end_time, now=now
                )
            if booker_email:
                self.scheduling_service.ensure_booking_limits(
                    owner_id, draft.start_time, booker_email, now=now
                )

            meeting = self.repository.create(
                id=meeting_id,
                title=draft.title,
                start_time=draft.start_time,
                end_time=draft.end_time,
                calendar_type=draft.calendar_type,
                attendees=list(draft.attendees),
                is_virtual=draft.is_virtual,
                # A virtual meeting keeps only the platform, an in-person one only the location
                location=None if draft.is_virtual else draft.location,
                platform=draft.platform if draft.is_virtual else None,
                description=draft.description,
                created_by=owner_id,
                status=MeetingState.PERSISTED.value,
            )
            change = self.repository.record_change(owner_id, meeting.id, ChangeOperation.CREATED)

        self.log_operation("create_meeting", meeting_id=meeting.id, owner_id=owner_id)
        return MeetingMutation(meeting, _event(change.operation, meeting.id, change.sequence))

    @BaseService.measure_operation("cancel_meeting")
    def cancel_meeting(self, owner_id: str, meeting_id: str, now: Optional[datetime] = None) -> MeetingMutation:
        """
        Cancel a persisted meeting. Cancelled is terminal.

        Raises:
            NotFoundException: unknown meeting or not owned by ``owner_id``
            BusinessRuleException: already cancelled or already ended
        """
        moment = ensure_utc(now) if now else now_utc()
        with self.transaction():
            meeting = self._owned(owner_id, meeting_id)
            state = meeting.state_at(moment)
            if state == MeetingState.CANCELLED:
                raise BusinessRuleException("Meeting is already cancelled", code="ALREADY_CANCELLED")
            if state == MeetingState.COMPLETED:
                raise BusinessRuleException("Meeting has already ended", code="ALREADY_COMPLETED")
            meeting.status = MeetingState.CANCELLED.value
            meeting.cancelled_at = moment
            self.repository.flush()
            change = self.repository.record_change(owner_id, meeting.id, ChangeOperation.UPDATED)

        self.log_operation("cancel_meeting", meeting_id=meeting.id, owner_id=owner_id)
        return MeetingMutation(meeting, _event(change.operation, meeting.id, change.sequence))

    @BaseService.measure_operation("delete_meeting")
    def delete_meeting(self, owner_id: str, meeting_id: str) -> MeetingChangeEvent:
        """Remove a meeting record entirely."""
        with self.transaction():
            meeting = self._owned(owner_id, meeting_id)
            self.repository.delete(meeting.id)
            change = self.repository.record_change(owner_id, meeting_id, ChangeOperation.DELETED)
        return _event(change.operation, meeting_id, change.sequence)

    # Reads

    @BaseService.measure_operation("get_meeting")
    def get_meeting(self, owner_id: str, meeting_id: str) -> Meeting:
        return self._owned(owner_id, meeting_id)

    @BaseService.measure_operation("list_meetings")
    def list_meetings(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        *,
        calendar_type: Optional[str] = None,
        include_cancelled: bool = False,
    ) -> List[Meeting]:
        """Meetings intersecting [start, end) ordered by start."""
        return self.repository.list_overlapping(
            owner_id,
            ensure_utc(start),
            ensure_utc(end),
            include_cancelled=include_cancelled,
            calendar_type=None if calendar_type in (None, ALL_CALENDARS) else calendar_type,
        )

    @BaseService.measure_operation("search_meetings")
    def search_meetings(
        self,
        owner_id: str,
        *,
        text: Optional[str] = None,
        calendar_type: Optional[str] = None,
        scope: MeetingScope = "all",
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> List[Meeting]:
        """
        Meetings list page: text search, calendar filter and upcoming/past split.

        Upcoming meetings are ordered soonest first, past meetings most recent first.
        """
        moment = ensure_utc(now) if now else now_utc()
        return self.repository.search(
            owner_id,
            text=(text or "").strip() or None,
            calendar_type=None if calendar_type in (None, ALL_CALENDARS) else calendar_type,
            start_after=moment if scope == "upcoming" else None,
            end_before=moment if scope == "past" else None,
            limit=min(max(limit, 1), MAX_QUERY_LIMIT),
            offset=max(offset, 0),
            newest_first=scope == "past",
        )

    def latest_sequence(self, owner_id: str) -> int:
        return self.repository.latest_sequence(owner_id)

    def changes_since(self, owner_id: str, sequence: int) -> List[MeetingChangeEvent]:
        return [
            _event(row.operation, row.meeting_id, row.sequence)
            for row in self.repository.changes_since(owner_id, sequence)
        ]

    def _owned(self, owner_id: str, meeting_id: str) -> Meeting:
        meeting = self.repository.get_by_id(meeting_id)
        if meeting is None or meeting.created_by != owner_id:
            raise NotFoundException(f"Meeting {meeting_id} not found")
        return meeting


def _event(operation: str, meeting_id: str, sequence: int) -> MeetingChangeEvent:
    return MeetingChangeEvent(
        operation=ChangeOperation(operation), meeting_id=meeting_id, sequence=sequence
    )
