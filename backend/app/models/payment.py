"""
Payment models for Stripe integration.

This module defines the payment ledger (one row per processor authorization)
and the mentor's Stripe Connect account used as transfer and payout
destination.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from app.database import Base


class PaymentStatus(str, Enum):
    AUTHORIZED = "authorized"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    VOIDED = "voided"


class OnboardingStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class Payment(Base):
    """Ledger entry for a session's payment. Rows are never deleted."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    session_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    mentor_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    mentee_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, comment="Amount in minor units")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.AUTHORIZED.value)
    external_intent_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    transfer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    platform_fee: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="Platform fee in minor units")
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, comment="Charge id")
    refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (Index("idx_payments_session_status", "session_id", "status"),)

    @property
    def transfer_amount(self) -> Optional[int]:
        if self.platform_fee is None:
            return None
        return self.amount - self.platform_fee

    def __repr__(self) -> str:
        return f"<Payment(session_id={self.session_id}, amount={self.amount}, status={self.status})>"


class MentorPayoutAccount(Base):
    """Mentor Stripe Connect accounts for receiving transfers and payouts."""

    __tablename__ = "mentor_payout_accounts"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id: Mapped[str] = mapped_column(String(26), unique=True, nullable=False)
    external_account_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    onboarding_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OnboardingStatus.PENDING.value
    )
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def onboarding_completed(self) -> bool:
        return self.onboarding_status == OnboardingStatus.COMPLETE.value

    def __repr__(self) -> str:
        return f"<MentorPayoutAccount(mentor_id={self.mentor_id}, status={self.onboarding_status})>"
