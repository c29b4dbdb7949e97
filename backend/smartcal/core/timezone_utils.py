"""
Timezone utilities for the SmartCal platform.

Meetings are stored as absolute UTC instants; availability is expressed in
the owner's wall-clock zone. Everything crossing between the two goes
through these helpers.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Optional

import pytz
from pytz.tzinfo import BaseTzInfo

from .config import settings

logger = logging.getLogger(__name__)


def is_valid_timezone(name: Optional[str]) -> bool:
    return bool(name) and name in pytz.all_timezones_set


def get_timezone(name: Optional[str]) -> BaseTzInfo:
    """
    Resolve a zone name, falling back to the configured default.

    Args:
        name: IANA zone name (may be None)

    Returns:
        pytz timezone object
    """
    if is_valid_timezone(name):
        return pytz.timezone(name)
    if name:
        logger.warning("Invalid timezone '%s', using %s", name, settings.default_timezone)
    return pytz.timezone(settings.default_timezone)


def ensure_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are assumed to be UTC."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_zone(dt: datetime, tz: BaseTzInfo) -> datetime:
    """Convert an instant into the given zone."""
    return ensure_utc(dt).astimezone(tz)


def local_midnight(day: date, tz: BaseTzInfo) -> datetime:
    return tz.localize(datetime.combine(day, time.min))


def local_minute(day: date, minute_of_day: int, tz: BaseTzInfo) -> datetime:
    """
    Wall-clock ``day + minute_of_day`` in ``tz`` as an aware datetime.

    1440 resolves to the next local midnight. Wall-clock arithmetic happens
    before localization so DST days keep their configured clock times.
    """
    naive = datetime.combine(day, time.min) + timedelta(minutes=minute_of_day)
    return tz.normalize(tz.localize(naive))


def local_date(dt: datetime, tz: BaseTzInfo) -> date:
    return to_zone(dt, tz).date()


def now_utc() -> datetime:
    return datetime.now(pytz.UTC)


def today_in(tz: BaseTzInfo) -> date:
    return datetime.now(tz).date()
