# backend/smartcal/routes/v1/booking_pages.py
"""
Booking page routes - API v1

Owner-side management of shareable booking pages. The public side lives in
``public.py``.
"""

import asyncio
import logging
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ...api.dependencies import get_booking_page_service, get_current_user_id
from ...core.exceptions import DomainException
from ...schemas.booking_page import BookingPageCreate, BookingPageResponse, BookingPageUpdate
from ...services.booking_page_service import BookingPageService

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/booking-pages
router = APIRouter(tags=["booking-pages-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("", response_model=List[BookingPageResponse])
async def list_booking_pages(
    user_id: str = Depends(get_current_user_id),
    service: BookingPageService = Depends(get_booking_page_service),
) -> List[BookingPageResponse]:
    pages = await asyncio.to_thread(service.list_pages, user_id)
    return [BookingPageResponse.from_page(page) for page in pages]


@router.post("", response_model=BookingPageResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_page(
    payload: BookingPageCreate,
    user_id: str = Depends(get_current_user_id),
    service: BookingPageService = Depends(get_booking_page_service),
) -> BookingPageResponse:
    """Create a page; the slug comes from the name and never changes afterwards."""
    try:
        page = await asyncio.to_thread(service.create, user_id, payload.name, payload.duration_minutes)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingPageResponse.from_page(page)


@router.get("/{page_id}", response_model=BookingPageResponse)
async def get_booking_page(
    page_id: str,
    user_id: str = Depends(get_current_user_id),
    service: BookingPageService = Depends(get_booking_page_service),
) -> BookingPageResponse:
    try:
        page = await asyncio.to_thread(service.get_page, user_id, page_id)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingPageResponse.from_page(page)


@router.patch("/{page_id}", response_model=BookingPageResponse)
async def update_booking_page(
    page_id: str,
    payload: BookingPageUpdate,
    user_id: str = Depends(get_current_user_id),
    service: BookingPageService = Depends(get_booking_page_service),
) -> BookingPageResponse:
    try:
        page = await asyncio.to_thread(
            service.update_page,
            user_id,
            page_id,
            name=payload.name,
            duration_minutes=payload.duration_minutes,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingPageResponse.from_page(page)


@router.delete("/{page_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking_page(
    page_id: str,
    user_id: str = Depends(get_current_user_id),
    service: BookingPageService = Depends(get_booking_page_service),
) -> Response:
    try:
        await asyncio.to_thread(service.delete_page, user_id, page_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
