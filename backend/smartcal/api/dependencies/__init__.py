# backend/smartcal/api/dependencies/__init__.py
"""
FastAPI dependencies: database session, caller identity and services.
"""

from .auth import get_current_user_id, get_session_context
from .database import get_db
from .services import (
    get_availability_service,
    get_booking_page_service,
    get_meeting_service,
    get_scheduling_service,
)

__all__ = [
    "get_db",
    "get_session_context",
    "get_current_user_id",
    "get_availability_service",
    "get_scheduling_service",
    "get_meeting_service",
    "get_booking_page_service",
]
