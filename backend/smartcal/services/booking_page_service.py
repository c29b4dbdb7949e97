# backend/smartcal/services/booking_page_service.py
"""
Booking Page Service for the SmartCal platform

A booking page is a named, shareable configuration that exposes one fixed
meeting duration from its owner's availability. Slugs are derived from the
name once, at creation, and stay stable across renames so shared links keep
working.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import ensure_utc, get_timezone, local_date, now_utc
from ..domain.schedule import AvailabilityConfig
from ..models.booking_page import BookingPage
from ..repositories.factory import RepositoryFactory
from ..schemas.meeting import build_meeting_draft
from ..utils.slug import slugify, unique_slug
from .base import BaseService
from .meeting_service import MeetingMutation, MeetingService
from .scheduling_service import SchedulingService
from .slot_computer import FreeSlot, clip_slots

if TYPE_CHECKING:
    from ..repositories.booking_page_repository import BookingPageRepository

logger = logging.getLogger(__name__)


class BookingPageService(BaseService):
    def __init__(
        self,
        db: Session,
        repository: Optional["BookingPageRepository"] = None,
        scheduling_service: Optional[SchedulingService] = None,
        meeting_service: Optional[MeetingService] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_page_repository(db)
        self.scheduling_service = scheduling_service or SchedulingService(db)
        self.meeting_service = meeting_service or MeetingService(
            db, scheduling_service=self.scheduling_service
        )

    # Owner management

    @BaseService.measure_operation("create_page")
    def create(self, owner_id: str, name: str, duration_minutes: int) -> BookingPage:
        """
        Create a page; the slug is the slugified name with -2, -3, ... on collision.

        Raises:
            ValidationException: blank name or duration out of range
        """
        name = (name or "").strip()
        if not name:
            raise ValidationException("Booking page name is required")
        _check_duration(duration_minutes)

        with self.transaction():
            base = slugify(name)
            slug = unique_slug(base, self.repository.slugs_with_prefix(base))
            page = self.repository.create(
                owner_id=owner_id,
                name=name,
                duration_minutes=duration_minutes,
                slug=slug,
            )
        self.log_operation("create_page", page_id=page.id, slug=slug, owner_id=owner_id)
        return page

    @BaseService.measure_operation("list_pages")
    def list_pages(self, owner_id: str) -> List[BookingPage]:
        return self.repository.list_for_owner(owner_id)

    @BaseService.measure_operation("get_page")
    def get_page(self, owner_id: str, page_id: str) -> BookingPage:
        page = self.repository.get_by_id(page_id)
        if page is None or page.owner_id != owner_id:
            raise NotFoundException(f"Booking page {page_id} not found")
        return page

    @BaseService.measure_operation("update_page")
    def update_page(
        self,
        owner_id: str,
        page_id: str,
        *,
        name: Optional[str] = None,
        duration_minutes: Optional[int] = None,
    ) -> BookingPage:
        """Rename and/or change the duration. The slug is left untouched."""
        if name is not None and not name.strip():
            raise ValidationException("Booking page name is required")
        if duration_minutes is not None:
            _check_duration(duration_minutes)

        with self.transaction():
            page = self.get_page(owner_id, page_id)
            if name is not None:
                page.name = name.strip()
            if duration_minutes is not None:
                page.duration_minutes = duration_minutes
            self.repository.flush()
        return page

    @BaseService.measure_operation("delete_page")
    def delete_page(self, owner_id: str, page_id: str) -> None:
        with self.transaction():
            page = self.get_page(owner_id, page_id)
            self.repository.delete(page.id)
        self.log_operation("delete_page", page_id=page_id, owner_id=owner_id)

    # Public flow

    @BaseService.measure_operation("resolve_page")
    def resolve(self, slug: str) -> BookingPage:
        """
        Raises:
            NotFoundException: no page with this slug
        """
        page = self.repository.get_by_slug((slug or "").strip().lower())
        if page is None:
            raise NotFoundException(f"Booking page '{slug}' not found")
        return page

    @BaseService.measure_operation("public_view")
    def public_view(self, slug: str) -> Tuple[BookingPage, str]:
        """The page and the zone its slots are shown in."""
        page = self.resolve(slug)
        config = self.scheduling_service.availability_service.get_config(page.owner_id)
        return page, config.timezone

    def get_page_slots(
        self, slug: str, start_date: date, end_date: date, now: Optional[datetime] = None
    ) -> Tuple[BookingPage, AvailabilityConfig, List[FreeSlot]]:
        """
        Free slots of the page's duration on the owner's calendar.

        Only starts between ``now`` and the end of the owner's booking window
        are offered; a span lying wholly past the window yields no slots.
        """
        page = self.resolve(slug)
        moment = ensure_utc(now) if now else now_utc()
        config = self.scheduling_service.availability_service.get_config(page.owner_id)
        latest = None
        if config.limits.window_days is not None:
            latest = moment + timedelta(days=config.limits.window_days)
            if end_date > start_date:
                last_day = local_date(latest, get_timezone(config.timezone)) + timedelta(days=1)
                end_date = min(end_date, last_day)
                if end_date <= start_date:
                    return page, config, []
        config, slots = self.scheduling_service.find_free_slots(
            page.owner_id, start_date, end_date, page.duration_minutes, source="booking_page"
        )
        return page, config, clip_slots(slots, moment, latest)

    @BaseService.measure_operation("book")
    def book(
        self,
        slug: str,
        start: datetime,
        booker_name: str,
        booker_email: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MeetingMutation:
        """
        Book ``start`` on the page's owner calendar.

        The slot is re-validated against the authoritative store inside the
        creating transaction, together with the owner's booking caps.

        Raises:
            NotFoundException: unknown slug
            SlotConflictError: the slot is no longer free
            BusinessRuleException: the slot is in the past or a booking cap is reached
        """
        page = self.resolve(slug)
        start_utc = ensure_utc(start)
        draft = build_meeting_draft(
            {
                "title": f"{page.name} with {booker_name.strip()}"[:255],
                "start_time": start_utc,
                "end_time": start_utc + timedelta(minutes=page.duration_minutes),
                "calendar_type": settings.calendar_tags[0] if settings.calendar_tags else "work",
                "attendees": [booker_email],
                "is_virtual": True,
                "description": note,
            }
        )
        mutation = self.meeting_service.create_meeting(
            page.owner_id, draft, require_free_slot=True, booker_email=booker_email, now=now
        )
        self.log_operation("book", slug=page.slug, meeting_id=mutation.meeting.id)
        return mutation


def _check_duration(duration_minutes: int) -> None:
    limit = settings.max_meeting_duration_minutes
    if duration_minutes <= 0 or duration_minutes > limit:
        raise ValidationException(
            f"Booking page duration must be between 1 and {limit} minutes",
            details={"duration_minutes": duration_minutes},
        )
