# backend/app/schemas/availability.py
"""
Availability schemas for ThoughtCloud.

Range and date checks live in the slot allocator so they surface as 400
business errors rather than request-shape errors.
"""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field

from ._strict_base import StrictModel, StrictRequestModel


class AvailabilitySlotCreate(StrictRequestModel):
    """Schema for publishing a new availability slot."""

    date: date
    start_time: time
    end_time: time


class AvailabilitySlotResponse(StrictModel):
    """Schema for returning availability slot data."""

    id: str
    mentor_id: str
    date: date
    start_time: time
    end_time: time
    is_booked: bool
    created_at: Optional[datetime] = None


class AvailabilitySlotList(StrictModel):
    mentor_id: str
    slots: List[AvailabilitySlotResponse] = Field(default_factory=list)
