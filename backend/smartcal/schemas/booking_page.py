# backend/smartcal/schemas/booking_page.py
"""Booking page schemas (owner management and the public booking flow)."""

from datetime import datetime
from typing import Any, Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from ..core.config import settings
from ._strict_base import StrictModel, StrictRequestModel


def public_url(slug: str) -> str:
    return f"{settings.public_booking_base_url}/{slug}"


class BookingPageCreate(StrictRequestModel):
    name: str = Field(..., min_length=1, max_length=120)
    duration_minutes: int = Field(..., gt=0)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Booking page name is required")
        return value


class BookingPageUpdate(StrictRequestModel):
    """Partial update; the slug never changes."""

    name: Optional[str] = Field(None, min_length=1, max_length=120)
    duration_minutes: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def _require_change(self) -> "BookingPageUpdate":
        if self.name is None and self.duration_minutes is None:
            raise ValueError("Provide name or duration_minutes")
        return self


class BookingPageResponse(StrictModel):
    id: str
    owner_id: str
    name: str
    duration_minutes: int
    slug: str
    url: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_page(cls, page: Any) -> "BookingPageResponse":
        return cls(
            id=page.id,
            owner_id=page.owner_id,
            name=page.name,
            duration_minutes=page.duration_minutes,
            slug=page.slug,
            url=public_url(page.slug),
            created_at=page.created_at,
            updated_at=page.updated_at,
        )


class PublicBookingPageResponse(StrictModel):
    """What an anonymous visitor sees; the owner's id stays private."""

    name: str
    slug: str
    duration_minutes: int
    url: str
    timezone: str


class BookingRequest(StrictRequestModel):
    start_time: datetime = Field(..., description="Chosen slot start (ISO 8601)")
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    note: Optional[str] = Field(None, max_length=2000)


class BookingConfirmation(StrictModel):
    meeting_id: str
    page_slug: str
    start_time: datetime
    end_time: datetime
    title: str
