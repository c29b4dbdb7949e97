# backend/smartcal/repositories/profile_repository.py
"""Read access to identity-provider profiles."""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.user import Profile
from .base_repository import BaseRepository


class ProfileRepository(BaseRepository[Profile]):
    def __init__(self, db: Session):
        super().__init__(db, Profile)

    def get_timezone(self, user_id: str) -> Optional[str]:
        profile = self.get_by_id(user_id)
        return profile.time_zone if profile else None
