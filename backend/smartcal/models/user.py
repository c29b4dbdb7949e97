# backend/smartcal/models/user.py
"""
Profile model.

Mirror of the identity provider's profile row. Accounts are created and
edited elsewhere; the scheduler only reads ids, role and time zone.
"""

from sqlalchemy import Column, String
from sqlalchemy.sql import func

from ..core.enums import RoleName
from ..database import Base
from .types import UTCDateTime


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    username = Column(String(100), nullable=True, unique=True)
    full_name = Column(String(200), nullable=True)
    time_zone = Column(String(64), nullable=True)
    role = Column(String(20), nullable=False, default=RoleName.MEMBER.value)
    updated_at = Column(UTCDateTime(), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Profile {self.id} ({self.username})>"
