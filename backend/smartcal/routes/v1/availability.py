# backend/smartcal/routes/v1/availability.py
"""
Availability routes - API v1

The caller's weekly schedule: enabled days, time ranges, buffers, allowed
durations and time zone, plus free-slot queries over a date span.

Endpoints:
    GET    /                                  - Current schedule (defaults on first access)
    PUT    /                                  - Replace the whole schedule
    PUT    /days/{weekday}                    - Enable or disable a day
    POST   /days/{weekday}/ranges             - Add a range
    PUT    /days/{weekday}/ranges/{range_id}  - Change a range
    DELETE /days/{weekday}/ranges/{range_id}  - Remove a range
    PUT    /buffers                           - Set buffers
    PUT    /durations                         - Set allowed durations
    PUT    /timezone                          - Set the schedule's zone
    PUT    /booking-limits                    - Set public booking caps
    GET    /slots                             - Free slots for a date span
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ...api.dependencies import get_availability_service, get_current_user_id, get_scheduling_service
from ...core.enums import Weekday
from ...core.exceptions import DomainException, ValidationException
from ...schemas.availability import (
    AvailabilityReplaceRequest,
    AvailabilityResponse,
    BookingLimitsUpdate,
    BuffersUpdate,
    DayToggleRequest,
    DurationsUpdate,
    TimeRangeIn,
    TimeRangeOut,
    TimezoneUpdate,
)
from ...schemas.slots import BookableSlotResponse, SlotIntervalResponse, SlotsResponse
from ...services.availability_service import AvailabilityService
from ...services.scheduling_service import SchedulingService
from ...services.slot_computer import discretize

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/availability
router = APIRouter(tags=["availability-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _weekday(raw: str) -> Weekday:
    try:
        return Weekday.parse(raw)
    except ValueError as e:
        raise ValidationException(str(e), code="INVALID_WEEKDAY") from e


async def _schedule_response(service: AvailabilityService, user_id: str) -> AvailabilityResponse:
    config = await asyncio.to_thread(service.get_schedule, user_id)
    return AvailabilityResponse.from_config(config)


@router.get("", response_model=AvailabilityResponse)
async def get_availability(
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Weekly schedule; a first visit stores and returns the defaults."""
    try:
        return await _schedule_response(service, user_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("", response_model=AvailabilityResponse)
async def replace_availability(
    payload: AvailabilityReplaceRequest,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    try:
        config = await asyncio.to_thread(service.replace_schedule, user_id, payload.to_config())
        return AvailabilityResponse.from_config(config)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/days/{weekday}", response_model=AvailabilityResponse)
async def set_day_enabled(
    weekday: str,
    payload: DayToggleRequest,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    try:
        await asyncio.to_thread(service.set_day_enabled, user_id, _weekday(weekday), payload.enabled)
        return await _schedule_response(service, user_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/days/{weekday}/ranges",
    response_model=TimeRangeOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_range(
    weekday: str,
    payload: TimeRangeIn,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> TimeRangeOut:
    try:
        created = await asyncio.to_thread(
            service.add_range, user_id, _weekday(weekday), payload.start_minute, payload.end_minute
        )
        return TimeRangeOut.from_range(created)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/days/{weekday}/ranges/{range_id}", response_model=TimeRangeOut)
async def update_range(
    weekday: str,
    range_id: str,
    payload: TimeRangeIn,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> TimeRangeOut:
    try:
        updated = await asyncio.to_thread(
            service.update_range,
            user_id,
            _weekday(weekday),
            range_id,
            payload.start_minute,
            payload.end_minute,
        )
        return TimeRangeOut.from_range(updated)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/days/{weekday}/ranges/{range_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_range(
    weekday: str,
    range_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> Response:
    try:
        await asyncio.to_thread(service.remove_range, user_id, _weekday(weekday), range_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/buffers", response_model=AvailabilityResponse)
async def set_buffers(
    payload: BuffersUpdate,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    try:
        await asyncio.to_thread(service.set_buffers, user_id, payload.before, payload.after)
        return await _schedule_response(service, user_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/durations", response_model=AvailabilityResponse)
async def set_durations(
    payload: DurationsUpdate,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    try:
        await asyncio.to_thread(service.set_durations, user_id, payload.durations)
        return await _schedule_response(service, user_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/booking-limits", response_model=AvailabilityResponse)
async def set_booking_limits(
    payload: BookingLimitsUpdate,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    try:
        await asyncio.to_thread(
            service.set_booking_limits,
            user_id,
            max_per_day=payload.max_bookings_per_day,
            max_per_email=payload.max_bookings_per_email,
            window_days=payload.booking_window_days,
        )
        return await _schedule_response(service, user_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/timezone", response_model=AvailabilityResponse)
async def set_timezone(
    payload: TimezoneUpdate,
    user_id: str = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    try:
        await asyncio.to_thread(service.set_timezone, user_id, payload.timezone)
        return await _schedule_response(service, user_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/slots", response_model=SlotsResponse)
async def get_free_slots(
    start_date: date = Query(..., description="First local date (inclusive)"),
    end_date: date = Query(..., description="Last local date (exclusive)"),
    duration: Optional[int] = Query(None, ge=1, description="Meeting length in minutes"),
    granularity: Optional[int] = Query(None, ge=1, le=240, description="Minutes between starts"),
    user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> SlotsResponse:
    """
    Free slots for the caller on [start_date, end_date).

    ``intervals`` are the raw gaps (any start up to ``latest_start`` fits);
    ``slots`` are concrete starts aligned to the granularity.
    """
    try:
        config, slots = await asyncio.to_thread(
            service.find_free_slots, user_id, start_date, end_date, duration
        )
    except DomainException as e:
        handle_domain_exception(e)

    return SlotsResponse(
        timezone=config.timezone,
        start_date=start_date,
        end_date=end_date,
        intervals=[SlotIntervalResponse.from_slot(slot) for slot in slots],
        slots=[BookableSlotResponse.from_slot(slot) for slot in discretize(slots, granularity)],
    )
