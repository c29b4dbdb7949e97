# backend/smartcal/repositories/booking_page_repository.py
"""Booking Page Repository for the SmartCal platform."""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.booking_page import BookingPage
from .base_repository import BaseRepository


class BookingPageRepository(BaseRepository[BookingPage]):
    def __init__(self, db: Session):
        super().__init__(db, BookingPage)

    def list_for_owner(self, owner_id: str) -> List[BookingPage]:
        query = (
            self.db.query(BookingPage)
            .filter(BookingPage.owner_id == owner_id)
            .order_by(BookingPage.created_at, BookingPage.id)
        )
        return self._execute_query(query)

    def get_by_slug(self, slug: str) -> Optional[BookingPage]:
        return self.find_one_by(slug=slug)

    def slugs_with_prefix(self, base: str) -> List[str]:
        """Slugs equal to ``base`` or shaped like ``base-<n>``."""
        rows = (
            self.db.query(BookingPage.slug)
            .filter((BookingPage.slug == base) | BookingPage.slug.like(f"{base}-%"))
            .all()
        )
        return [row[0] for row in rows]
