# backend/smartcal/repositories/factory.py
"""
Repository Factory for the SmartCal platform

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .booking_page_repository import BookingPageRepository
    from .meeting_repository import MeetingRepository
    from .profile_repository import ProfileRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        return BaseRepository(db, model)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for weekly availability."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_meeting_repository(db: Session) -> "MeetingRepository":
        """Create repository for meetings and their change log."""
        from .meeting_repository import MeetingRepository

        return MeetingRepository(db)

    @staticmethod
    def create_booking_page_repository(db: Session) -> "BookingPageRepository":
        """Create repository for booking pages."""
        from .booking_page_repository import BookingPageRepository

        return BookingPageRepository(db)

    @staticmethod
    def create_profile_repository(db: Session) -> "ProfileRepository":
        """Create repository for profile lookups."""
        from .profile_repository import ProfileRepository

        return ProfileRepository(db)
