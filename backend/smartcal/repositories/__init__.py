"""
Repository Pattern Implementation for the SmartCal platform

Key Components:
- BaseRepository: generic CRUD foundation
- RepositoryFactory: creates repository instances
- AvailabilityRepository: weekly schedule rows
- MeetingRepository: meetings and the change log
- BookingPageRepository: shareable booking pages
- ProfileRepository: identity-provider profile lookups

Usage:
    from smartcal.repositories import RepositoryFactory

    repository = RepositoryFactory.create_meeting_repository(db)
    meetings = repository.list_overlapping(user_id, start, end)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository, IRepository
from .booking_page_repository import BookingPageRepository
from .factory import RepositoryFactory
from .meeting_repository import MeetingRepository
from .profile_repository import ProfileRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "BookingPageRepository",
    "IRepository",
    "MeetingRepository",
    "ProfileRepository",
    "RepositoryFactory",
]
