# backend/app/models/availability.py
"""
Availability models for ThoughtCloud.

A mentor publishes bookable slots for a date. A slot's ``is_booked`` flag is
the reservation token for that interval: it is set by the slot allocator's
conditional reserve and cleared by its release, never written elsewhere.

Classes:
    AvailabilitySlot: A mentor-published bookable time interval
"""

import logging

from sqlalchemy import Boolean, Column, Date, DateTime, Index, String, Time, false
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class AvailabilitySlot(Base):
    """Mentor-published bookable interval ``[start_time, end_time)`` on ``date``."""

    __tablename__ = "availability_slots"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id = Column(String(26), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_availability_slots_mentor_date", "mentor_id", "date"),)

    def time_range(self) -> str:
        return f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"

    def __repr__(self) -> str:
        return f"<AvailabilitySlot {self.mentor_id} {self.date} {self.time_range()} booked={self.is_booked}>"
