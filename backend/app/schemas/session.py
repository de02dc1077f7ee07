"""Request/response schemas for mentoring sessions."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field

from ._strict_base import StrictModel


class SessionResponse(StrictModel):
    id: str
    mentor_id: str
    mentee_id: str
    slot_id: str
    date: date
    start_time: time
    end_time: time
    status: str
    payment_status: str
    payment_amount: int = Field(..., description="Amount in minor units")
    currency: str
    notes: Optional[str] = None
    meeting_link: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class SessionListResponse(StrictModel):
    sessions: List[SessionResponse] = Field(default_factory=list)
    total: int
