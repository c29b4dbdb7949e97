# backend/smartcal/routes/v1/public.py
"""
V1 Public routes for SmartCal.

These routes do not require authentication. A visitor resolves a booking
page by slug, sees its free slots and books one. The owner's id is never
exposed.
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import get_booking_page_service
from ...core.exceptions import DomainException
from ...schemas.booking_page import (
    BookingConfirmation,
    BookingRequest,
    PublicBookingPageResponse,
    public_url,
)
from ...schemas.slots import BookableSlotResponse, SlotIntervalResponse, SlotsResponse
from ...services.booking_page_service import BookingPageService
from ...services.change_feed import publish_meeting_change
from ...services.slot_computer import discretize

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/public
router = APIRouter(tags=["public"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/booking-pages/{slug}", response_model=PublicBookingPageResponse)
async def get_public_booking_page(
    slug: str,
    service: BookingPageService = Depends(get_booking_page_service),
) -> PublicBookingPageResponse:
    try:
        page, page_timezone = await asyncio.to_thread(service.public_view, slug)
    except DomainException as e:
        handle_domain_exception(e)
    return PublicBookingPageResponse(
        name=page.name,
        slug=page.slug,
        duration_minutes=page.duration_minutes,
        url=public_url(page.slug),
        timezone=page_timezone,
    )


@router.get("/booking-pages/{slug}/slots", response_model=SlotsResponse)
async def get_public_booking_slots(
    slug: str,
    start_date: date = Query(..., description="First local date (inclusive)"),
    end_date: date = Query(..., description="Last local date (exclusive)"),
    granularity: Optional[int] = Query(None, ge=1, le=240),
    service: BookingPageService = Depends(get_booking_page_service),
) -> SlotsResponse:
    """Bookable starts of the page's duration in the owner's zone."""
    try:
        _, config, slots = await asyncio.to_thread(service.get_page_slots, slug, start_date, end_date)
    except DomainException as e:
        handle_domain_exception(e)

    return SlotsResponse(
        timezone=config.timezone,
        start_date=start_date,
        end_date=end_date,
        intervals=[SlotIntervalResponse.from_slot(slot) for slot in slots],
        slots=[BookableSlotResponse.from_slot(slot) for slot in discretize(slots, granularity)],
    )


@router.post(
    "/booking-pages/{slug}/book",
    response_model=BookingConfirmation,
    status_code=status.HTTP_201_CREATED,
)
async def book_public_slot(
    slug: str,
    payload: BookingRequest,
    service: BookingPageService = Depends(get_booking_page_service),
) -> BookingConfirmation:
    """
    Book a slot. The slot is re-checked at commit time; a slot taken since
    the visitor loaded the page returns 409 SLOT_CONFLICT. A start in the
    past or one that breaks the owner's booking caps returns 422.
    """
    try:
        mutation = await asyncio.to_thread(
            service.book, slug, payload.start_time, payload.name, payload.email, payload.note
        )
    except DomainException as e:
        handle_domain_exception(e)

    meeting = mutation.meeting
    await publish_meeting_change(meeting.created_by, mutation.event)
    return BookingConfirmation(
        meeting_id=meeting.id,
        page_slug=slug.strip().lower(),
        start_time=meeting.start_time,
        end_time=meeting.end_time,
        title=meeting.title,
    )
