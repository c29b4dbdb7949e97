# backend/smartcal/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_service import AvailabilityService
from ...services.booking_page_service import BookingPageService
from ...services.meeting_service import MeetingService
from ...services.scheduling_service import SchedulingService
from .database import get_db


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Get availability service instance."""
    return AvailabilityService(db)


def get_scheduling_service(
    db: Session = Depends(get_db),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> SchedulingService:
    return SchedulingService(db, availability_service=availability_service)


def get_meeting_service(
    db: Session = Depends(get_db),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> MeetingService:
    """Get meeting service instance sharing the request's scheduling service."""
    return MeetingService(db, scheduling_service=scheduling_service)


def get_booking_page_service(
    db: Session = Depends(get_db),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> BookingPageService:
    return BookingPageService(
        db, scheduling_service=scheduling_service, meeting_service=meeting_service
    )
