"""Slot response schemas shared by the availability and public booking routes."""

from datetime import date, datetime
from typing import List

from pydantic import Field

from ..services.slot_computer import BookableSlot, FreeSlot
from ._strict_base import StrictModel


class SlotIntervalResponse(StrictModel):
    """A gap that fits ``duration_minutes``: any start up to ``latest_start`` works."""

    day: date
    start: datetime
    latest_start: datetime
    end: datetime
    duration_minutes: int

    @classmethod
    def from_slot(cls, slot: FreeSlot) -> "SlotIntervalResponse":
        return cls(
            day=slot.day,
            start=slot.start,
            latest_start=slot.latest_start,
            end=slot.end,
            duration_minutes=slot.duration,
        )


class BookableSlotResponse(StrictModel):
    start: datetime
    end: datetime
    duration_minutes: int

    @classmethod
    def from_slot(cls, slot: BookableSlot) -> "BookableSlotResponse":
        return cls(start=slot.start, end=slot.end, duration_minutes=slot.duration)


class SlotsResponse(StrictModel):
    timezone: str
    start_date: date
    end_date: date
    intervals: List[SlotIntervalResponse] = Field(default_factory=list)
    slots: List[BookableSlotResponse] = Field(default_factory=list)
