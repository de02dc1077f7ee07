# backend/app/models/mentoring_session.py
"""
Mentoring session model for ThoughtCloud.

A session binds one reserved availability slot to one payment authorization.
It copies the slot's date and times so the record stays meaningful after the
slot is released.

Lifecycle (status / payment_status):
    scheduled/pending  -> completed/completed   (mentor completes, capture + transfer)
    scheduled/pending  -> cancelled/refunded    (either party cancels, refund)
    scheduled/pending  -> cancelled/voided      (authorization expired or failed)
"""

from enum import Enum
import logging

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Session lifecycle statuses."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SessionPaymentStatus(str, Enum):
    """Payment state as seen from the session."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    VOIDED = "voided"


class MentoringSession(Base):
    """A booked mentoring session between a mentor and a mentee."""

    __tablename__ = "mentoring_sessions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id = Column(String(26), nullable=False, index=True)
    mentee_id = Column(String(26), nullable=False, index=True)
    slot_id = Column(String(26), ForeignKey("availability_slots.id"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default=SessionStatus.SCHEDULED.value)
    payment_status = Column(String(20), nullable=False, default=SessionPaymentStatus.PENDING.value)
    payment_amount = Column(Integer, nullable=False, comment="Amount in minor units")
    currency = Column(String(3), nullable=False, default="usd")

    notes = Column(Text, nullable=True)
    meeting_link = Column(String(500), nullable=True)

    cancelled_by = Column(String(26), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'completed', 'cancelled')",
            name="ck_mentoring_sessions_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'completed', 'refunded', 'voided')",
            name="ck_mentoring_sessions_payment_status",
        ),
        CheckConstraint("payment_amount > 0", name="ck_mentoring_sessions_amount_positive"),
        Index("idx_mentoring_sessions_status_created", "status", "created_at"),
    )

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.mentor_id, self.mentee_id)

    def __repr__(self) -> str:
        return f"<MentoringSession {self.id} {self.status}/{self.payment_status}>"
