# backend/tests/unit/services/test_meeting_service.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from smartcal.core.enums import ChangeOperation, MeetingState
from smartcal.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    SlotConflictError,
)
from smartcal.core.ulid_helper import generate_ulid
from smartcal.models.meeting import Meeting, MeetingChange
from smartcal.schemas.meeting import build_meeting_draft
from smartcal.services.meeting_service import MeetingService

OWNER = "owner-meetings"
MONDAY = datetime(2030, 1, 7, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, days: int = 0) -> datetime:
    return MONDAY + timedelta(days=days, hours=hour, minutes=minute)


def draft(**overrides):
    data = {
        "title": "Design review",
        "start_time": at(10),
        "end_time": at(10, 30),
        "calendar_type": "work",
        "attendees": ["ana@example.com"],
    }
    data.update(overrides)
    return build_meeting_draft(data)


@pytest.fixture
def service(unit_db: Session) -> MeetingService:
    return MeetingService(unit_db)


class TestCreateMeeting:
    def test_create_persists_record_and_change(self, service: MeetingService, unit_db: Session):
        mutation = service.create_meeting(OWNER, draft())

        meeting = unit_db.get(Meeting, mutation.meeting.id)
        assert meeting is not None
        assert meeting.created_by == OWNER
        assert meeting.attendees == ["ana@example.com"]
        assert meeting.status == MeetingState.PERSISTED.value
        assert mutation.event.operation == ChangeOperation.CREATED
        assert mutation.event.meeting_id == meeting.id
        assert mutation.event.sequence == service.latest_sequence(OWNER)

    def test_client_id_becomes_persisted_id(self, service: MeetingService):
        client_id = generate_ulid()

        mutation = service.create_meeting(OWNER, draft(id=client_id))

        assert mutation.meeting.id == client_id

    def test_duplicate_client_id_conflicts(self, service: MeetingService):
        client_id = generate_ulid()
        service.create_meeting(OWNER, draft(id=client_id))

        with pytest.raises(ConflictException):
            service.create_meeting(OWNER, draft(id=client_id))

    def test_virtual_meeting_drops_location(self, service: MeetingService):
        mutation = service.create_meeting(
            OWNER, draft(is_virtual=True, platform="Zoom", location="Room 4")
        )

        assert mutation.meeting.platform == "Zoom"
        assert mutation.meeting.location is None

    def test_in_person_meeting_drops_platform(self, service: MeetingService):
        mutation = service.create_meeting(
            OWNER, draft(is_virtual=False, platform="Zoom", location="Room 4")
        )

        assert mutation.meeting.location == "Room 4"
        assert mutation.meeting.platform is None

    def test_sequences_increase(self, service: MeetingService):
        first = service.create_meeting(OWNER, draft())
        second = service.create_meeting(OWNER, draft(start_time=at(12), end_time=at(13)))

        assert second.event.sequence > first.event.sequence

    def test_require_free_slot_rejects_taken_time(self, service: MeetingService, unit_db: Session):
        service.create_meeting(OWNER, draft())

        with pytest.raises(SlotConflictError):
            service.create_meeting(
                OWNER, draft(start_time=at(10, 15), end_time=at(10, 45)), require_free_slot=True
            )
        assert unit_db.query(Meeting).count() == 1

    def test_require_free_slot_accepts_open_time(self, service: MeetingService):
        mutation = service.create_meeting(
            OWNER, draft(start_time=at(14), end_time=at(14, 30)), require_free_slot=True
        )

        assert mutation.meeting.start_time == at(14)


class TestCancelMeeting:
    def test_cancel_is_terminal(self, service: MeetingService):
        created = service.create_meeting(OWNER, draft()).meeting

        mutation = service.cancel_meeting(OWNER, created.id, now=at(8))

        assert mutation.meeting.status == MeetingState.CANCELLED.value
        assert mutation.meeting.cancelled_at == at(8)
        assert mutation.event.operation == ChangeOperation.UPDATED
        with pytest.raises(BusinessRuleException) as exc:
            service.cancel_meeting(OWNER, created.id, now=at(9))
        assert exc.value.code == "ALREADY_CANCELLED"

    def test_cannot_cancel_completed(self, service: MeetingService):
        created = service.create_meeting(OWNER, draft()).meeting

        with pytest.raises(BusinessRuleException) as exc:
            service.cancel_meeting(OWNER, created.id, now=at(12))
        assert exc.value.code == "ALREADY_COMPLETED"

    def test_cannot_cancel_someone_elses_meeting(self, service: MeetingService):
        created = service.create_meeting(OWNER, draft()).meeting

        with pytest.raises(NotFoundException):
            service.cancel_meeting("intruder", created.id, now=at(8))

    def test_cancelled_meeting_frees_its_time(self, service: MeetingService):
        created = service.create_meeting(OWNER, draft()).meeting
        service.cancel_meeting(OWNER, created.id, now=at(8))

        mutation = service.create_meeting(
            OWNER, draft(start_time=at(10), end_time=at(10, 30)), require_free_slot=True
        )

        assert mutation.meeting.id != created.id


class TestDeleteMeeting:
    def test_delete_records_change(self, service: MeetingService, unit_db: Session):
        created = service.create_meeting(OWNER, draft()).meeting

        event = service.delete_meeting(OWNER, created.id)

        assert event.operation == ChangeOperation.DELETED
        assert unit_db.get(Meeting, created.id) is None
        assert unit_db.query(MeetingChange).count() == 2


class TestReads:
    def test_list_meetings_window_and_filter(self, service: MeetingService):
        service.create_meeting(OWNER, draft(title="Standup", start_time=at(9), end_time=at(9, 15)))
        service.create_meeting(
            OWNER, draft(title="Gym", calendar_type="personal", start_time=at(18), end_time=at(19))
        )
        service.create_meeting(OWNER, draft(title="Next week", start_time=at(9, days=7), end_time=at(10, days=7)))
        service.create_meeting("someone-else", draft(title="Other"))

        week = service.list_meetings(OWNER, at(0), at(0, days=7))
        personal = service.list_meetings(OWNER, at(0), at(0, days=7), calendar_type="personal")
        everything = service.list_meetings(OWNER, at(0), at(0, days=7), calendar_type="all")

        assert [m.title for m in week] == ["Standup", "Gym"]
        assert [m.title for m in personal] == ["Gym"]
        assert len(everything) == 2

    def test_list_excludes_cancelled_by_default(self, service: MeetingService):
        created = service.create_meeting(OWNER, draft()).meeting
        service.cancel_meeting(OWNER, created.id, now=at(8))

        assert service.list_meetings(OWNER, at(0), at(23)) == []
        assert len(service.list_meetings(OWNER, at(0), at(23), include_cancelled=True)) == 1

    def test_search_scopes(self, service: MeetingService):
        service.create_meeting(OWNER, draft(title="Past sync", start_time=at(9), end_time=at(10)))
        service.create_meeting(OWNER, draft(title="Future sync", start_time=at(15), end_time=at(16)))
        service.create_meeting(OWNER, draft(title="Lunch", start_time=at(12), end_time=at(13)))

        upcoming = service.search_meetings(OWNER, scope="upcoming", now=at(11))
        past = service.search_meetings(OWNER, scope="past", now=at(11))
        text = service.search_meetings(OWNER, text="SYNC")

        assert [m.title for m in upcoming] == ["Lunch", "Future sync"]
        assert [m.title for m in past] == ["Past sync"]
        assert [m.title for m in text] == ["Past sync", "Future sync"]

    def test_get_meeting_scoped_to_owner(self, service: MeetingService):
        created = service.create_meeting(OWNER, draft()).meeting

        assert service.get_meeting(OWNER, created.id).id == created.id
        with pytest.raises(NotFoundException):
            service.get_meeting("someone-else", created.id)

    def test_changes_since(self, service: MeetingService):
        first = service.create_meeting(OWNER, draft()).event
        second = service.create_meeting(OWNER, draft(start_time=at(12), end_time=at(13))).event

        missed = service.changes_since(OWNER, first.sequence)

        assert [e.sequence for e in missed] == [second.sequence]
        assert service.changes_since(OWNER, second.sequence) == []
