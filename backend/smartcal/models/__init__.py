"""
Database models for the SmartCal platform.

- Profile: identity-provider mirror
- AvailabilitySettings / AvailabilityDay / AvailabilityRange: weekly schedule
- Meeting / MeetingChange: meetings and their change log
- BookingPage: shareable booking configurations
"""

from .availability import AvailabilityDay, AvailabilityRange, AvailabilitySettings
from .booking_page import BookingPage
from .meeting import Meeting, MeetingChange
from .user import Profile

__all__ = [
    "AvailabilityDay",
    "AvailabilityRange",
    "AvailabilitySettings",
    "BookingPage",
    "Meeting",
    "MeetingChange",
    "Profile",
]
