# backend/smartcal/repositories/availability_repository.py
"""
Availability Repository for the SmartCal platform.

Data access for a user's weekly schedule: the settings row, per-weekday
enabled flags and the minute-of-day ranges.
"""

from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..core.ulid_helper import generate_ulid
from ..domain.schedule import TimeRange
from ..models.availability import AvailabilityDay, AvailabilityRange, AvailabilitySettings
from .base_repository import BaseRepository


class AvailabilityRepository(BaseRepository[AvailabilityRange]):
    """Repository for weekly availability rows."""

    def __init__(self, db: Session):
        super().__init__(db, AvailabilityRange)

    # Settings row

    def get_settings(self, user_id: str, *, for_update: bool = False) -> Optional[AvailabilitySettings]:
        try:
            query = self.db.query(AvailabilitySettings).filter(AvailabilitySettings.user_id == user_id)
            if for_update:
                # Serializes commit-time slot checks per owner (no-op on SQLite)
                query = query.with_for_update()
            return query.one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading availability settings for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to load availability settings: {str(e)}")

    def create_settings(self, user_id: str, **fields) -> AvailabilitySettings:
        row = AvailabilitySettings(user_id=user_id, **fields)
        self.db.add(row)
        self.db.flush()
        return row

    # Days

    def get_days(self, user_id: str) -> Dict[str, AvailabilityDay]:
        rows = self._execute_query(
            self.db.query(AvailabilityDay).filter(AvailabilityDay.user_id == user_id)
        )
        return {row.weekday: row for row in rows}

    def upsert_day(self, user_id: str, weekday: str, enabled: bool) -> AvailabilityDay:
        row = self.db.get(AvailabilityDay, (user_id, weekday))
        if row is None:
            row = AvailabilityDay(user_id=user_id, weekday=weekday, enabled=enabled)
            self.db.add(row)
        else:
            row.enabled = enabled
        self.db.flush()
        return row

    # Ranges

    def get_ranges(self, user_id: str, weekday: Optional[str] = None) -> List[AvailabilityRange]:
        query = self.db.query(AvailabilityRange).filter(AvailabilityRange.user_id == user_id)
        if weekday is not None:
            query = query.filter(AvailabilityRange.weekday == weekday)
        return self._execute_query(query.order_by(AvailabilityRange.start_minute))

    def replace_day_ranges(
        self, user_id: str, weekday: str, ranges: Iterable[TimeRange]
    ) -> List[AvailabilityRange]:
        """
        Swap a weekday's ranges for an already-validated list.

        Ids are preserved. Old rows are flushed out before the new ones go in
        so the (user, weekday, start) unique constraint never sees both.
        """
        try:
            for row in self.get_ranges(user_id, weekday):
                self.db.delete(row)
            self.db.flush()
            fresh: List[AvailabilityRange] = []
            for item in ranges:
                row = AvailabilityRange(
                    id=item.id or generate_ulid(),
                    user_id=user_id,
                    weekday=weekday,
                    start_minute=item.start,
                    end_minute=item.end,
                )
                self.db.add(row)
                fresh.append(row)
            self.db.flush()
            return fresh
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing ranges for {user_id}/{weekday}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to save availability ranges: {str(e)}")
