"""Application-wide constants for the SmartCal platform."""

from __future__ import annotations

BRAND_NAME = "SmartCal"

MINUTES_PER_DAY = 24 * 60

# Query limits
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000

# Availability constraints
MAX_RANGES_PER_DAY = 12
DEFAULT_NEW_RANGE = (9 * 60, 17 * 60)  # 09:00-17:00, seeded when a day is added or enabled

# Defaults for a user who has never saved availability
DEFAULT_WEEKDAY_RANGE = (7 * 60, 23 * 60)
DEFAULT_WEEKEND_RANGE = (9 * 60, 18 * 60)
DEFAULT_DURATIONS = (30, 60)
DEFAULT_BUFFER_BEFORE = 15
DEFAULT_BUFFER_AFTER = 15

# Booking limits for public booking pages
DEFAULT_MAX_BOOKINGS_PER_DAY = 10
DEFAULT_MAX_BOOKINGS_PER_EMAIL = 3
DEFAULT_BOOKING_WINDOW_DAYS = 60
MAX_BOOKING_WINDOW_DAYS = 365

# Calendar filter value that disables tag filtering
ALL_CALENDARS = "all"

# SSE path for the meeting change feed
SSE_PATH_PREFIX = "/api/v1/meetings/stream"

# API metadata
API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = "Weekly availability, meetings, live change feed and public booking pages"
API_VERSION = "1.0.0"
