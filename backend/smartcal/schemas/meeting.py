# backend/smartcal/schemas/meeting.py
"""
Meeting schemas for the SmartCal platform.

MeetingDraft is the validated form state that crosses into the repository.
Only the title and a well-ordered time span are mandatory; everything else
has a default. Validation failures are reported as MeetingValidationError
by ``build_meeting_draft``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import EmailStr, Field, ValidationError, field_validator, model_validator

from ..core.config import settings
from ..core.enums import ChangeOperation, MeetingState
from ..core.exceptions import MeetingValidationError
from ..core.timezone_utils import ensure_utc
from ..core.ulid_helper import is_valid_ulid
from ._strict_base import StrictModel, StrictRequestModel


class MeetingDraft(StrictRequestModel):
    """
    A meeting about to be created.

    ``id`` is optional and client generated. When present it becomes the
    persisted meeting's id, which lets an optimistic draft be matched with
    its confirmed record.
    """

    id: Optional[str] = Field(None, description="Client-generated ULID for optimistic drafts")
    title: str = Field(..., min_length=1, max_length=255)
    start_time: datetime
    end_time: datetime
    calendar_type: str = Field("work", description="Calendar tag")
    attendees: List[EmailStr] = Field(default_factory=list)
    is_virtual: bool = True
    location: Optional[str] = Field(None, max_length=500)
    platform: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_ulid(value):
            raise ValueError("id must be a ULID")
        return value

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Meeting title is required")
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("calendar_type")
    @classmethod
    def _check_calendar(cls, value: str) -> str:
        value = (value or "").strip().lower()
        if value not in settings.calendar_tags:
            raise ValueError(f"calendar_type must be one of {', '.join(settings.calendar_tags)}")
        return value

    @field_validator("attendees", mode="before")
    @classmethod
    def _split_attendees(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("attendees")
    @classmethod
    def _dedupe_attendees(cls, value: List[str]) -> List[str]:
        seen: List[str] = []
        for address in value:
            if address.lower() not in (item.lower() for item in seen):
                seen.append(address)
        return seen

    @model_validator(mode="after")
    def _check_span(self) -> "MeetingDraft":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.end_time - self.start_time > timedelta(minutes=settings.max_meeting_duration_minutes):
            raise ValueError(
                f"Meetings cannot be longer than {settings.max_meeting_duration_minutes} minutes"
            )
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


def build_meeting_draft(data: Mapping[str, Any]) -> MeetingDraft:
    """
    Validate raw form data into a MeetingDraft.

    Raises:
        MeetingValidationError: with one entry per failing field
    """
    try:
        return MeetingDraft.model_validate(dict(data))
    except ValidationError as exc:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"]) or "__root__",
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        summary = errors[0]["message"] if errors else "Invalid meeting"
        raise MeetingValidationError(summary, errors=errors) from exc


class MeetingResponse(StrictModel):
    """
    Persisted meeting record.

    The first eleven fields are the stored record layout; ``state`` is
    derived at read time (completed once the meeting has ended).
    """

    id: str
    title: str
    start_time: datetime
    end_time: datetime
    calendar_type: str
    attendees: List[str]
    is_virtual: bool
    location: Optional[str]
    platform: Optional[str]
    description: Optional[str]
    created_by: str
    created_at: datetime
    state: MeetingState
    cancelled_at: Optional[datetime] = None
    join_target: Optional[str] = None

    @classmethod
    def from_meeting(cls, meeting: Any, now: Optional[datetime] = None) -> "MeetingResponse":
        moment = now or datetime.now(timezone.utc)
        return cls(
            id=meeting.id,
            title=meeting.title,
            start_time=meeting.start_time,
            end_time=meeting.end_time,
            calendar_type=meeting.calendar_type,
            attendees=list(meeting.attendees or []),
            is_virtual=meeting.is_virtual,
            location=meeting.location,
            platform=meeting.platform,
            description=meeting.description,
            created_by=meeting.created_by,
            created_at=meeting.created_at,
            state=meeting.state_at(moment),
            cancelled_at=meeting.cancelled_at,
            join_target=meeting.platform if meeting.is_virtual else meeting.location,
        )


class MeetingListResponse(StrictModel):
    meetings: List[MeetingResponse]
    total: int
    scope: Literal["upcoming", "past", "all"] = "all"


class MeetingChangeEvent(StrictModel):
    """Payload carried on the change feed; subscribers refetch on receipt."""

    operation: ChangeOperation
    meeting_id: str
    sequence: int

    def to_message(self) -> str:
        return self.model_dump_json()


class MeetingOverviewResponse(StrictModel):
    """Dashboard numbers for the caller's local today and current week."""

    timezone: str
    today_count: int
    today_minutes: int
    upcoming_count: int
    week_open_slot_percent: float
    next_meeting: Optional[MeetingResponse] = None
    by_calendar: Dict[str, int] = Field(default_factory=dict)
